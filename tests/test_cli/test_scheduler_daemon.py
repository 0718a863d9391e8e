"""
Tests for the daily scheduler daemon (no real subprocesses are started).

What we test
------------
1. ``_next_daily_run`` picks today's slot if still ahead, else tomorrow's.
2. ``auto_run_args`` forwards the database and config paths.
3. ``run_daily`` maps exit codes, timeouts and runner errors to a bool
   and remembers the outcome in ``last_ok``.
"""

from __future__ import annotations

import subprocess
from datetime import datetime
from unittest.mock import MagicMock

from cityleague_pipeline.scheduler import RUN_TIMEOUT_S, SchedulerDaemon, _next_daily_run


def _daemon(runner, config_path=None):
    return SchedulerDaemon(
        db_path="data/db/cityleague.db",
        daily_time="06:00",
        config_path=config_path,
        cli_exe="/venv/bin/cityleague",
        runner=runner,
    )


class TestNextDailyRun:
    def test_later_today(self):
        now = datetime(2025, 3, 8, 5, 59, 30)
        assert _next_daily_run("06:00", now) == datetime(2025, 3, 8, 6, 0)

    def test_already_passed(self):
        now = datetime(2025, 3, 8, 6, 0)
        assert _next_daily_run("06:00", now) == datetime(2025, 3, 9, 6, 0)

    def test_month_rollover(self):
        now = datetime(2025, 3, 31, 23, 0)
        assert _next_daily_run("06:30", now) == datetime(2025, 4, 1, 6, 30)


class TestRunDaily:
    def test_command_line(self):
        runner = MagicMock(return_value=subprocess.CompletedProcess(args=[], returncode=0))
        assert _daemon(runner, config_path="config/local.toml").run_daily() is True

        cmd = runner.call_args[0][0]
        assert cmd == [
            "/venv/bin/cityleague", "auto-run",
            "--db-path", "data/db/cityleague.db",
            "--config", "config/local.toml",
        ]
        assert runner.call_args[1]["timeout"] == RUN_TIMEOUT_S

    def test_without_config(self):
        assert _daemon(MagicMock()).auto_run_args() == ["auto-run", "--db-path", "data/db/cityleague.db"]

    def test_non_zero_exit(self):
        runner = MagicMock(return_value=subprocess.CompletedProcess(args=[], returncode=1))
        daemon = _daemon(runner)
        assert daemon.run_daily() is False
        assert daemon.last_ok is False

    def test_timeout(self):
        runner = MagicMock(side_effect=subprocess.TimeoutExpired(cmd="cityleague", timeout=RUN_TIMEOUT_S))
        assert _daemon(runner).run_daily() is False

    def test_runner_error(self):
        runner = MagicMock(side_effect=OSError("exec format error"))
        assert _daemon(runner).run_daily() is False
