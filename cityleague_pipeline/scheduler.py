"""Daily scheduler for ``cityleague auto-run``.

``cityleague start-scheduler`` keeps one process alive and, once per day at
``scheduler.daily_time`` (host-local ``HH:MM``), launches::

    cityleague auto-run --db-path <db> [--config <toml>]

as a child process.  The child picks the previous site day itself, writes
its own ExecutionRecord and exits; the daemon only looks at the exit code.
A failed, crashed or hung child is logged and the next day's slot is still
scheduled.
"""

from __future__ import annotations

import logging
import platform
import signal
import subprocess
import sys
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

log = logging.getLogger(__name__)

# A full run (probe, every event's ladder, snapshots) stays well inside this.
RUN_TIMEOUT_S = 3600
TICK_S = 30


def _find_cli_exe() -> str:
    """Path of the ``cityleague`` console script next to the interpreter."""
    bin_dir = Path(sys.executable).parent
    names = ["cityleague.exe", "cityleague"] if platform.system() == "Windows" else ["cityleague"]
    for name in names:
        exe = bin_dir / name
        if exe.exists():
            return str(exe)
    raise RuntimeError(
        f"cityleague console script not found in {bin_dir}; install the project "
        "into this environment (pip install -e .)."
    )


def _next_daily_run(daily_time: str, now: Optional[datetime] = None) -> datetime:
    """Next occurrence of *daily_time* strictly after *now*."""
    hour, minute = (int(p) for p in daily_time.split(":"))
    now = now or datetime.now()
    slot = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    return slot if slot > now else slot + timedelta(days=1)


class SchedulerDaemon:
    """Fire one ``auto-run`` child process per day.

    Args:
        db_path:     Forwarded to the child as ``--db-path``.
        daily_time:  Host-local ``HH:MM`` slot.
        config_path: Forwarded as ``--config`` when given.
        cli_exe:     Console script path; located next to the interpreter
                     when omitted.
        runner:      ``subprocess.run`` replacement for tests.
        clock:       Naive local ``datetime.now`` replacement.
        tick_s:      Seconds between slot checks.
    """

    def __init__(
        self,
        db_path: str,
        daily_time: str = "06:00",
        config_path: Optional[str] = None,
        cli_exe: Optional[str] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        clock: Callable[[], datetime] = datetime.now,
        tick_s: float = TICK_S,
    ) -> None:
        self.db_path = db_path
        self.daily_time = daily_time
        self.config_path = config_path
        self.cli_exe = cli_exe or _find_cli_exe()
        self.runner = runner
        self.clock = clock
        self.tick_s = tick_s
        self.last_ok: Optional[bool] = None
        self._running = False

    def auto_run_args(self) -> list[str]:
        args = ["auto-run", "--db-path", self.db_path]
        if self.config_path:
            args += ["--config", self.config_path]
        return args

    def run_daily(self) -> bool:
        """Launch one auto-run child and wait for it.  ``True`` on exit code 0."""
        cmd = [self.cli_exe, *self.auto_run_args()]
        log.info("auto-run child starting: %s", " ".join(cmd))
        try:
            proc = self.runner(cmd, timeout=RUN_TIMEOUT_S)
        except subprocess.TimeoutExpired:
            log.error("auto-run child killed after %d s", RUN_TIMEOUT_S)
            ok = False
        except Exception as exc:
            log.error("auto-run child could not run: %s", exc, exc_info=True)
            ok = False
        else:
            ok = proc.returncode == 0
            if ok:
                log.info("auto-run child finished (exit 0); see latest-run for the record")
            else:
                log.error("auto-run child exited with code %d", proc.returncode)
        self.last_ok = ok
        return ok

    def stop(self) -> None:
        self._running = False

    def start(self) -> None:
        """Loop until SIGINT/SIGTERM or ``stop()``."""
        next_run = _next_daily_run(self.daily_time, self.clock())
        log.info(
            "scheduler up: daily_time=%s db=%s next=%s",
            self.daily_time, self.db_path, next_run.isoformat(timespec="minutes"),
        )

        def _on_signal(signum, frame):  # noqa: ANN001
            log.info("signal %d: stopping scheduler", signum)
            self.stop()

        signal.signal(signal.SIGINT, _on_signal)
        if platform.system() != "Windows":
            signal.signal(signal.SIGTERM, _on_signal)

        self._running = True
        while self._running:
            now = self.clock()
            if now >= next_run:
                self.run_daily()
                next_run = _next_daily_run(self.daily_time, now)
                log.info("next auto-run: %s", next_run.isoformat(timespec="minutes"))
            time.sleep(self.tick_s)

        log.info("scheduler stopped")
