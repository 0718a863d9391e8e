"""
Tests for AutoRunOrchestrator: phase sequence, terminal states and the
execution record.

What we test
------------
1. A day with events runs every phase and ends ``finished``.
2. A day without events notifies the empty-day message and finishes.
3. Failures (component setup, malformed input) end in ``error`` with the
   message and logs kept; ``run()`` never raises.
4. Invalid date overrides fall back to the previous day with a warning.
5. Record write failures do not change the outcome.
6. Run components are always released.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from cityleague_pipeline.acquisition.base import AcquisitionResult
from cityleague_pipeline.acquisition.ladder import AcquisitionLadder
from cityleague_pipeline.db.repositories.execution_repo import ExecutionRepository
from cityleague_pipeline.db.repositories.snapshot_repo import SnapshotRepository
from cityleague_pipeline.errors import MalformedSourceInputError, PermanentStoreError
from cityleague_pipeline.pipeline.orchestrator import AutoRunOrchestrator, RunComponents
from cityleague_pipeline.taxonomy.categories import ExecutionStatus, RunPhase

NOW = datetime(2025, 3, 8, 0, 30, tzinfo=timezone.utc)   # 3/8 09:30 at UTC+9


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def closer():
    return MagicMock()


@pytest.fixture
def listing_with_open_event(config, fake_listing, make_listing_page):
    url = config.source.listing_url
    page = make_listing_page(
        url, [("3/7（金）", "Tokyo Hall", "シティリーグ シーズン5 オープン", "/event/detail/700001/result")]
    )
    return fake_listing({url: page})


def _factory(listing, strategy, closer):
    resolver = MagicMock()
    resolver.resolve.return_value = None

    def _build(config, logs):
        return RunComponents(
            listing=listing,
            ladder=AcquisitionLadder([strategy], logs),
            resolver=resolver,
            _closers=(closer,),
        )

    return _build


def _orchestrator(config, store, notifier, components, fake_sleep):
    return AutoRunOrchestrator(
        config, store, notifier=notifier, components=components, clock=lambda: NOW, sleep=fake_sleep
    )


class TestSuccessfulRun:
    def test_full_day(
        self, config, store, notifier, closer, listing_with_open_event,
        fake_strategy, make_acquired, fake_sleep,
    ):
        api = fake_strategy("api", {
            "open": AcquisitionResult(
                organizer="Shop A",
                rows=[make_acquired(1, "p1", "a"), make_acquired(2, "p2", "b")],
            ),
        })
        orch = _orchestrator(
            config, store, notifier, _factory(listing_with_open_event, api, closer), fake_sleep
        )
        record = orch.run()

        assert record.status is ExecutionStatus.FINISHED
        assert record.phase is RunPhase.FINISH
        assert record.ok is True
        assert record.id == "20250308-093000-000"
        assert record.target_date_key == "20250307"
        assert record.target_date_label == "3/7"
        assert record.duration_human.endswith("s")
        assert any(line == "target date: ymd=20250307 md=3/7" for line in record.logs)

        phases = [line for line in record.logs if line.startswith("phase: ")]
        assert phases == [
            "phase: determine_target_date",
            "phase: probe",
            "phase: collect",
            "phase: build_snapshots",
            "phase: summarize_counts",
            "phase: notify",
        ]
        assert len(SnapshotRepository(store).get("20250307-open").rankings) == 2

        notifier.send.assert_called_once()
        message = notifier.send.call_args[0][0]
        assert "Rankings: total 2 (open: 2" in message

        stored = ExecutionRepository(store).latest()
        assert stored.id == record.id
        assert stored.status is ExecutionStatus.FINISHED
        assert stored.logs == record.logs
        closer.assert_called_once()

    def test_empty_day(self, config, store, notifier, closer, fake_listing, fake_strategy, fake_sleep):
        api = fake_strategy("api")
        record = _orchestrator(
            config, store, notifier, _factory(fake_listing({}), api, closer), fake_sleep
        ).run()

        assert record.status is ExecutionStatus.FINISHED
        assert "phase: notify_empty" in record.logs
        assert "phase: collect" not in record.logs
        assert "no events" in notifier.send.call_args[0][0]
        assert api.calls == []

    def test_valid_override(self, config, store, notifier, closer, fake_listing, fake_strategy, fake_sleep):
        record = _orchestrator(
            config, store, notifier, _factory(fake_listing({}), fake_strategy(), closer), fake_sleep
        ).run(date_override="20250301")
        assert record.target_date_key == "20250301"
        assert record.target_date_label == "3/1"

    def test_invalid_override_falls_back(
        self, config, store, notifier, closer, fake_listing, fake_strategy, fake_sleep
    ):
        record = _orchestrator(
            config, store, notifier, _factory(fake_listing({}), fake_strategy(), closer), fake_sleep
        ).run(date_override="2025-03-01")
        assert record.status is ExecutionStatus.FINISHED
        assert record.target_date_key == "20250307"
        assert any("invalid date override" in line for line in record.logs)

    def test_explicit_execution_id(self, config, store, notifier, closer, fake_listing, fake_strategy, fake_sleep):
        record = _orchestrator(
            config, store, notifier, _factory(fake_listing({}), fake_strategy(), closer), fake_sleep
        ).run(execution_id="20250308-060000-000", force_rankings=True)
        assert record.id == "20250308-060000-000"
        assert record.force_rankings is True
        assert ExecutionRepository(store).get("20250308-060000-000") is not None


class TestFailedRun:
    def test_component_setup_failure(self, config, store, notifier, fake_sleep):
        def _broken(config, logs):
            raise RuntimeError("browser launch failed")

        record = _orchestrator(config, store, notifier, _broken, fake_sleep).run()

        assert record.status is ExecutionStatus.ERROR
        assert record.phase is RunPhase.ERROR
        assert record.ok is False
        assert record.error == "browser launch failed"
        assert any("error during determine_target_date" in line for line in record.logs)
        notifier.send.assert_not_called()
        assert ExecutionRepository(store).latest().status is ExecutionStatus.ERROR

    def test_malformed_input_fails_in_collect(
        self, config, store, notifier, closer, listing_with_open_event, fake_strategy, fake_sleep
    ):
        api = fake_strategy("api", error=MalformedSourceInputError("cannot extract event_holding_id"))
        record = _orchestrator(
            config, store, notifier, _factory(listing_with_open_event, api, closer), fake_sleep
        ).run()

        assert record.status is ExecutionStatus.ERROR
        assert "cannot extract event_holding_id" in record.error
        assert any("error during collect" in line for line in record.logs)
        assert "phase: probe" in record.logs
        closer.assert_called_once()

    def test_empty_exception_message_uses_class_name(self, config, store, notifier, fake_sleep):
        def _broken(config, logs):
            raise KeyError()

        record = _orchestrator(config, store, notifier, _broken, fake_sleep).run()
        assert record.error == "KeyError"


class TestRecordPersistence:
    def test_write_failures_do_not_change_outcome(
        self, config, store, notifier, closer, fake_listing, fake_strategy, fake_sleep
    ):
        orch = _orchestrator(
            config, store, notifier, _factory(fake_listing({}), fake_strategy(), closer), fake_sleep
        )
        orch._records = MagicMock()
        orch._records.save.side_effect = PermanentStoreError("disk I/O error")

        record = orch.run()
        assert record.status is ExecutionStatus.FINISHED
        assert orch._records.save.call_count >= 2
