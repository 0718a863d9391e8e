"""
Tests for the typed repositories over the document store.

What we test
------------
1. EventRepository: insert, dedup by detail URL, per-day counts and the
   partial ``rankings_collected`` update.
2. RankingRepository: merge upserts never clobber curated deck names,
   chunked multi-event reads, ``set_deck_name`` on absent rows.
3. SnapshotRepository: whole-document replace and ``modify`` transactions.
4. ExecutionRepository: latest run is the lexicographically largest id.
5. WorkSummaryRepository: day ranges are filtered by league.
6. Transient store errors are retried through the run log; others are not.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from cityleague_pipeline.config import RetryConfig
from cityleague_pipeline.db.repositories.event_repo import EventRepository
from cityleague_pipeline.db.repositories.execution_repo import ExecutionRepository
from cityleague_pipeline.db.repositories.ranking_repo import RankingRepository
from cityleague_pipeline.db.repositories.snapshot_repo import SnapshotRepository
from cityleague_pipeline.db.repositories.work_summary_repo import WorkSummaryRepository
from cityleague_pipeline.errors import DocumentNotFoundError, TransientStoreError
from cityleague_pipeline.models.curation import WorkDaySummary, WorkMonthSummary
from cityleague_pipeline.models.meta import ExecutionRecord
from cityleague_pipeline.models.snapshot import DailySnapshot, SnapshotEntry
from cityleague_pipeline.taxonomy.categories import Category, ExecutionStatus
from cityleague_pipeline.utils.logging import RunLog

T0 = datetime(2025, 3, 8, 0, 0, tzinfo=timezone.utc)


# ── Events ────────────────────────────────────────────────────────────────────

class TestEventRepository:
    def test_insert_and_get(self, store, make_event):
        repo = EventRepository(store)
        ev = make_event()
        assert repo.insert_many([ev]) == 1
        loaded = repo.get(ev.id)
        assert loaded == ev
        assert repo.get("event-missing") is None

    def test_insert_empty_is_noop(self, store):
        assert EventRepository(store).insert_many([]) == 0

    def test_exists_by_detail_url(self, store, make_event):
        repo = EventRepository(store)
        ev = make_event()
        repo.insert_many([ev])
        assert repo.exists_by_detail_url(ev.detail_url)
        assert not repo.exists_by_detail_url(ev.detail_url + "?x=1")

    def test_count_for_date_category(self, store, make_event):
        repo = EventRepository(store)
        repo.insert_many([
            make_event(seq=1, holding_id="1"),
            make_event(seq=2, holding_id="2"),
            make_event(seq=1, category=Category.SENIOR, holding_id="3"),
            make_event(seq=1, date_key="20250308", holding_id="4"),
        ])
        assert repo.count_for_date_category("20250307", Category.OPEN) == 2
        assert repo.count_for_date_category("20250307", Category.SENIOR) == 1
        assert repo.count_for_date_category("20250307", Category.JUNIOR) == 0
        assert len(repo.list_for_date("20250307")) == 3

    def test_mark_rankings_collected_is_partial(self, store, make_event):
        repo = EventRepository(store)
        ev = make_event()
        repo.insert_many([ev])
        repo.mark_rankings_collected(ev.id, T0)
        loaded = repo.get(ev.id)
        assert loaded.rankings_collected is True
        assert loaded.rankings_collected_at == T0
        assert loaded.title == ev.title

    def test_mark_missing_event_raises(self, store):
        with pytest.raises(DocumentNotFoundError):
            EventRepository(store).mark_rankings_collected("event-nope", T0)


# ── Rankings ──────────────────────────────────────────────────────────────────

class TestRankingRepository:
    def test_upsert_preserves_curated_deck_name(self, store, make_row):
        repo = RankingRepository(store)
        row = make_row("event-20250307-open-01", 1)
        repo.upsert_rows([row])
        assert repo.set_deck_name(row.id, "Dragapult ex", T0.isoformat()) is True

        repo.upsert_rows([row.model_copy(update={"points": 50})])
        loaded = repo.get(row.id)
        assert loaded.points == 50
        assert loaded.deck_name == "Dragapult ex"

    def test_collector_rows_never_write_deck_name(self, store, make_row):
        repo = RankingRepository(store)
        row = make_row("event-20250307-open-01", 1, deck_name="ignored")
        repo.upsert_rows([row])
        assert "deck_name" not in store.get("rankings", row.id)

    def test_set_deck_name_on_missing_row(self, store):
        assert RankingRepository(store).set_deck_name("rank-nope", "X", T0.isoformat()) is False
        assert not store.exists("rankings", "rank-nope")

    def test_list_for_events_chunks_and_filters(self, store, make_row):
        repo = RankingRepository(store)
        rows = []
        for i in range(1, 13):
            event_id = f"event-20250307-open-{i:02d}"
            rows.append(make_row(event_id, 1))
        rows.append(make_row("event-20250307-senior-01", 1, category=Category.SENIOR))
        repo.upsert_rows(rows)

        event_ids = [f"event-20250307-open-{i:02d}" for i in range(1, 13)] + ["event-20250307-senior-01"]
        opens = repo.list_for_events(event_ids, category=Category.OPEN, chunk_size=5)
        assert len(opens) == 12
        assert all(r.category is Category.OPEN for r in opens)
        assert len(repo.list_for_events(event_ids)) == 13

    def test_list_for_event(self, store, make_row):
        repo = RankingRepository(store)
        repo.upsert_rows([make_row("event-20250307-open-01", 3, seq=s) for s in range(2)])
        assert [r.sequence_within_rank for r in repo.list_for_event("event-20250307-open-01")] == [0, 1]


# ── Snapshots ─────────────────────────────────────────────────────────────────

def _snapshot(entries: list[SnapshotEntry]) -> DailySnapshot:
    return DailySnapshot(
        id="20250307-open",
        date_key="20250307",
        date_label="3/7",
        category=Category.OPEN,
        rankings=entries,
        groups=[],
        generated_at=T0,
        schema_version=1,
    )


class TestSnapshotRepository:
    def test_replace_overwrites_whole_document(self, store):
        repo = SnapshotRepository(store)
        repo.replace(_snapshot([SnapshotEntry(rank=1), SnapshotEntry(rank=2)]))
        repo.replace(_snapshot([SnapshotEntry(rank=1)]))
        assert len(repo.get("20250307-open").rankings) == 1
        assert repo.exists("20250307-open")
        assert repo.get("20250307-senior") is None

    def test_modify_sees_current_body(self, store):
        repo = SnapshotRepository(store)
        repo.replace(_snapshot([SnapshotEntry(rank=1, group_id="g1")]))

        def _rename(current):
            entries = [dict(e, deck_name="Named") for e in current["rankings"]]
            return {"rankings": entries}, len(entries)

        assert repo.modify("20250307-open", _rename) == 1
        assert repo.get("20250307-open").rankings[0].deck_name == "Named"


# ── Executions ────────────────────────────────────────────────────────────────

class TestExecutionRepository:
    def test_latest_is_largest_id(self, store):
        repo = ExecutionRepository(store)
        for exec_id in ("20250307-060000-000", "20250309-060000-000", "20250308-060000-000"):
            repo.save(ExecutionRecord(id=exec_id, started_at=T0))
        assert repo.latest().id == "20250309-060000-000"

    def test_latest_empty(self, store):
        assert ExecutionRepository(store).latest() is None

    def test_save_merges_progress(self, store):
        repo = ExecutionRepository(store)
        record = ExecutionRecord(id="20250308-060000-000", started_at=T0)
        repo.save(record)
        record.status = ExecutionStatus.FINISHED
        record.ok = True
        record.logs.append("done")
        repo.save(record)
        loaded = repo.get(record.id)
        assert loaded.status is ExecutionStatus.FINISHED
        assert loaded.logs == ["done"]
        assert loaded.is_terminal


# ── Work summaries ────────────────────────────────────────────────────────────

class TestWorkSummaryRepository:
    def test_list_days_filters_by_range_and_league(self, store):
        repo = WorkSummaryRepository(store)
        for date, league in [
            ("2025-03-01", "open"), ("2025-03-31", "open"),
            ("2025-04-01", "open"), ("2025-03-07", "senior"),
        ]:
            repo.save_day(WorkDaySummary(
                id=f"{date.replace('-', '')}-{league}", date=date, league=league,
                total_targets=3, completed_targets=3, all_complete=True,
            ))
        days = repo.list_days("2025-03-01", "2025-03-31", "open")
        assert sorted(d.date for d in days) == ["2025-03-01", "2025-03-31"]

    def test_month_round_trip(self, store):
        repo = WorkSummaryRepository(store)
        repo.save_month(WorkMonthSummary(
            id="2025-03-open", month="2025-03", league="open",
            total_days=2, completed_days=1, all_complete=False,
        ))
        assert repo.get_month("2025-03-open").completed_days == 1
        assert repo.get_month("2025-04-open") is None


# ── Retry behaviour ───────────────────────────────────────────────────────────

class TestRepositoryRetry:
    def test_transient_error_retried_then_succeeds(self, sleeps, fake_sleep):
        fake_store = MagicMock()
        fake_store.get.side_effect = [TransientStoreError("database is locked"), {"status": "finished", "started_at": T0.isoformat()}]
        logs = RunLog()
        repo = ExecutionRepository(fake_store, logs=logs, retry=RetryConfig(), sleep=fake_sleep)

        record = repo.get("20250308-060000-000")
        assert record.status is ExecutionStatus.FINISHED
        assert sleeps == [1.0]
        assert any("store-retry 1/5" in line for line in logs.lines)

    def test_permanent_error_not_retried(self, sleeps, fake_sleep):
        fake_store = MagicMock()
        fake_store.update.side_effect = DocumentNotFoundError("events/x not found")
        repo = EventRepository(fake_store, sleep=fake_sleep)
        with pytest.raises(DocumentNotFoundError):
            repo.mark_rankings_collected("x", T0)
        assert sleeps == []
        assert fake_store.update.call_count == 1
