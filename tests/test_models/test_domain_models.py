"""
Tests for domain model id helpers, validators and vocabularies.

What we test
------------
1. Deterministic id formats for events, ranking rows, snapshots and groups.
2. Field validators (date key, detail URL, rank allow-list, sequence).
3. Frozen models reject mutation; ExecutionRecord is mutable.
4. Category helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from cityleague_pipeline.models.curation import BatchUpdateResult, CurationError, GROUP_NOT_FOUND
from cityleague_pipeline.models.event import event_key, make_event_id
from cityleague_pipeline.models.meta import ExecutionRecord
from cityleague_pipeline.models.ranking import make_ranking_id
from cityleague_pipeline.models.snapshot import make_group_id, make_snapshot_id
from cityleague_pipeline.taxonomy.categories import Category, ExecutionStatus, RunPhase

T0 = datetime(2025, 3, 8, tzinfo=timezone.utc)


class TestIds:
    def test_event_id(self):
        assert make_event_id("20250307", Category.OPEN, 3) == "event-20250307-open-03"
        assert make_event_id("20250307", Category.JUNIOR, 12) == "event-20250307-junior-12"

    def test_event_key(self):
        assert event_key("event-20250307-open-03") == "20250307-open-03"
        assert event_key("20250307-open-03") == "20250307-open-03"

    def test_ranking_id(self):
        assert make_ranking_id("event-20250307-open-01", 3, 1) == "rank-20250307-open-01-3-01"

    def test_snapshot_and_group_ids(self):
        assert make_snapshot_id("20250307", Category.SENIOR) == "20250307-senior"
        assert make_group_id("20250307", "event-20250307-open-01", 3, 1) == (
            "20250307_event-20250307-open-01_3_01"
        )


class TestEventValidation:
    def test_bad_date_key(self, make_event):
        with pytest.raises(ValidationError):
            make_event(date_key="2025-03-07")

    def test_blank_detail_url(self, make_event):
        with pytest.raises(ValidationError):
            make_event(detail_url="   ")

    def test_detail_url_trimmed(self, make_event):
        ev = make_event(detail_url=" https://players.pokemon-card.com/event/detail/1/result ")
        assert ev.detail_url == "https://players.pokemon-card.com/event/detail/1/result"

    def test_frozen(self, make_event):
        ev = make_event()
        with pytest.raises(ValidationError):
            ev.rankings_collected = True  # type: ignore[misc]

    def test_key_property(self, make_event):
        assert make_event(seq=7).key == "20250307-open-07"


class TestRankingValidation:
    @pytest.mark.parametrize("rank", [0, 4, 8, 17])
    def test_invalid_rank(self, make_row, rank):
        with pytest.raises(ValidationError):
            make_row("event-20250307-open-01", rank)

    def test_negative_sequence(self, make_row):
        with pytest.raises(ValidationError):
            make_row("event-20250307-open-01", 1, sequence_within_rank=-1)

    def test_deckable(self, make_row):
        assert make_row("event-20250307-open-01", 1, deck_id="abc").is_deckable
        assert not make_row("event-20250307-open-01", 1).is_deckable


class TestExecutionRecord:
    def test_defaults_and_mutation(self):
        record = ExecutionRecord(id="20250308-060000-000", started_at=T0)
        assert record.status is ExecutionStatus.RUNNING
        assert record.phase is RunPhase.START
        assert not record.is_terminal

        record.status = ExecutionStatus.ERROR
        assert record.is_terminal

    def test_round_trip_json(self):
        record = ExecutionRecord(id="x", started_at=T0, logs=["a"])
        data = record.model_dump(mode="json")
        assert data["status"] == "running"
        assert ExecutionRecord.model_validate(data) == record


class TestCurationModels:
    def test_batch_result_ok(self):
        assert BatchUpdateResult(snapshot_id="s").ok
        bad = BatchUpdateResult(
            snapshot_id="s",
            errors=[CurationError(group_id="g", code=GROUP_NOT_FOUND, message="missing")],
        )
        assert not bad.ok


class TestCategory:
    def test_known_order(self):
        assert Category.known() == (Category.OPEN, Category.SENIOR, Category.JUNIOR)

    def test_others(self):
        assert Category.OPEN.others() == (Category.SENIOR, Category.JUNIOR)
        assert Category.JUNIOR.others() == (Category.OPEN, Category.SENIOR)

    def test_unknown_is_not_known(self):
        assert not Category.UNKNOWN.is_known
        assert Category("senior").code == "senior"
