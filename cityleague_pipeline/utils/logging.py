"""
Logging for the City League pipeline.

Two channels:

1. The process log.  ``configure_logging(config.logging)`` is called once by
   each CLI command; library modules only ever do
   ``logger = logging.getLogger(__name__)``.  Output goes to stdout and,
   when ``log_file`` is set, to that file.  ``json_format = true`` switches
   both to one JSON object per line, rendered by structlog::

       {"ts": "2025-03-08T00:30:00Z", "level": "info", "logger": "...", "msg": "..."}

2. The run log.  Every auto-run keeps a ``list[str]`` that is stored verbatim
   in its ExecutionRecord (``logs``).  Stages, the ladder and the retry
   wrappers write through a ``RunLog``, which appends the line there and
   forwards it to a process logger in one call.
"""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import structlog

if TYPE_CHECKING:
    from cityleague_pipeline.config import LoggingConfig

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s | %(message)s"
TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Per-request chatter from the HTTP and browser clients.
_QUIET_LOGGERS = ("httpx", "httpcore", "playwright", "asyncio")


class _UTCFormatter(logging.Formatter):
    converter = time.gmtime


def _add_record_time(logger, method_name, event_dict):
    record = event_dict.get("_record")
    created = record.created if record is not None else time.time()
    event_dict["ts"] = time.strftime(TIME_FORMAT, time.gmtime(created))
    return event_dict


def _json_formatter() -> logging.Formatter:
    """One JSON object per record; ``extra=`` keys are copied to the top level."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            _add_record_time,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("msg"),
            structlog.processors.JSONRenderer(ensure_ascii=False, default=str),
        ],
    )


def _handlers(config: "LoggingConfig") -> list[logging.Handler]:
    formatter: logging.Formatter = (
        _json_formatter() if config.json_format else _UTCFormatter(TEXT_FORMAT, TIME_FORMAT)
    )
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        path = Path(config.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(config: "LoggingConfig") -> None:
    """(Re)configure the root logger from the ``[logging]`` config section.

    Safe to call more than once; existing root handlers are replaced.
    """
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, handlers=_handlers(config), force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class RunLog:
    """Run-scoped log: a line sink plus a mirror logger.

    Args:
        sink:   List the lines are appended to, normally
                ``ExecutionRecord.logs``.  A fresh list when omitted.
        logger: Process logger each line is forwarded to.
    """

    def __init__(
        self,
        sink: Optional[list[str]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.lines: list[str] = sink if sink is not None else []
        self._logger = logger or logging.getLogger(__name__)

    def info(self, msg: str) -> None:
        self.lines.append(msg)
        self._logger.info(msg)

    def warning(self, msg: str) -> None:
        self.lines.append(msg)
        self._logger.warning(msg)

    def __len__(self) -> int:
        return len(self.lines)
