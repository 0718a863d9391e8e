"""
Tests for the background run trigger.

What we test
------------
1. ``trigger()`` acknowledges immediately with a timestamp execution id.
2. The background run uses its own connection; its record is readable by id.
3. The kill-switch raises ``ScraperDisabledError`` and starts nothing.
4. A crashing background run is logged, never raised to the caller.
5. Finished run threads are not kept around across triggers.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.db.repositories.execution_repo import ExecutionRepository
from cityleague_pipeline.errors import ScraperDisabledError
from cityleague_pipeline.models.meta import ExecutionRecord
from cityleague_pipeline.taxonomy.categories import ExecutionStatus
from cityleague_pipeline.trigger import RunTrigger

T0 = datetime(2025, 3, 8, 0, 30, tzinfo=timezone.utc)


class _FakeOrchestrator:
    runs: list[dict] = []

    def __init__(self, config, store):
        self.store = store

    def run(self, date_override=None, force_rankings=False, execution_id=None):
        _FakeOrchestrator.runs.append(
            {"date_override": date_override, "force_rankings": force_rankings, "execution_id": execution_id}
        )
        record = ExecutionRecord(
            id=execution_id,
            started_at=T0,
            status=ExecutionStatus.FINISHED,
            ok=True,
            target_date_key=date_override,
        )
        ExecutionRepository(self.store).save(record)
        return record


@pytest.fixture(autouse=True)
def _reset_runs():
    _FakeOrchestrator.runs = []


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "trigger.db")


class TestRunTrigger:
    def test_ack_and_background_record(self, db_path):
        trigger = RunTrigger(AppConfig(), db_path=db_path, orchestrator_factory=_FakeOrchestrator)
        ack = trigger.trigger(date_override="20250307", force_rankings=True)

        assert ack.accepted is True
        assert ack.mode == "background"
        assert re.fullmatch(r"\d{8}-\d{6}-\d{3}", ack.execution_id)

        trigger.join(timeout=10)
        assert _FakeOrchestrator.runs == [
            {"date_override": "20250307", "force_rankings": True, "execution_id": ack.execution_id}
        ]
        record = trigger.get(ack.execution_id)
        assert record.status is ExecutionStatus.FINISHED
        assert record.target_date_key == "20250307"
        assert trigger.latest().id == ack.execution_id

    def test_disabled(self, db_path):
        trigger = RunTrigger(
            AppConfig(scraper_enabled=False), db_path=db_path, orchestrator_factory=_FakeOrchestrator
        )
        with pytest.raises(ScraperDisabledError):
            trigger.trigger()
        trigger.join(timeout=1)
        assert _FakeOrchestrator.runs == []

    def test_latest_before_any_run(self, db_path):
        assert RunTrigger(AppConfig(), db_path=db_path).latest() is None

    def test_crashing_run_is_contained(self, db_path):
        def _broken(config, store):
            raise RuntimeError("cannot build orchestrator")

        trigger = RunTrigger(AppConfig(), db_path=db_path, orchestrator_factory=_broken)
        ack = trigger.trigger()
        trigger.join(timeout=10)
        assert trigger.get(ack.execution_id) is None

    def test_finished_threads_are_dropped(self, db_path):
        trigger = RunTrigger(AppConfig(), db_path=db_path, orchestrator_factory=_FakeOrchestrator)
        for _ in range(3):
            trigger.trigger()
            trigger.join(timeout=10)

        assert len(_FakeOrchestrator.runs) == 3
        assert len(trigger._threads) == 1
