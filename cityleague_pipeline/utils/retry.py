"""
Bounded retry with exponential backoff.

Two wrappers share one backoff schedule.  The wait after failed attempt ``i``
(0-based) is ``min(max_wait_ms, base_wait_ms * 2**i)``, i.e. 1s, 2s, 4s, 8s,
16s, 16s, ... with the defaults:

  ``with_retry``: retries any exception.
  ``with_store_retry``: retries only transient store errors
                          (``is_transient_store_error``); anything else is
                          re-raised on the spot.

Both run the operation at most ``max_retry + 1`` times, append one line per
failed attempt to the caller's ``RunLog`` under the caller's label, and
re-raise the last error on exhaustion.  No sleep follows the final attempt.

Acquisition tiers do not use these wrappers; the ladder escalates instead.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Optional, TypeVar

from cityleague_pipeline.errors import TransientStoreError
from cityleague_pipeline.utils.logging import RunLog

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_WAIT_MS = 1000
DEFAULT_MAX_WAIT_MS = 16_000
DEFAULT_STORE_MAX_RETRY = 4

_TRANSIENT_MARKERS = ("unavailable", "deadline", "timeout", "timed out", "etimedout")
# Status codes only as standalone numbers; date keys like 20250307 contain "503".
_TRANSIENT_STATUS_RE = re.compile(r"(?<!\d)50[34](?!\d)")


def backoff_ms(
    attempt: int,
    base_wait_ms: int = DEFAULT_BASE_WAIT_MS,
    max_wait_ms: int = DEFAULT_MAX_WAIT_MS,
) -> int:
    """Wait in milliseconds after failed attempt ``attempt`` (0-based)."""
    return min(max_wait_ms, base_wait_ms * (2 ** attempt))


def _has_transient_marker(text: str) -> bool:
    return any(marker in text for marker in _TRANSIENT_MARKERS) or bool(
        _TRANSIENT_STATUS_RE.search(text)
    )


def is_transient_store_error(exc: BaseException) -> bool:
    """Classify a store failure as retryable.

    ``TransientStoreError`` always qualifies.  For other exceptions the
    ``code``/``status``/``status_code`` attribute decides when present;
    otherwise the message is searched for unavailable / deadline / timeout /
    503 / 504 markers.
    """
    if isinstance(exc, TransientStoreError):
        return True

    code = None
    for attr in ("code", "status", "status_code"):
        code = getattr(exc, attr, None)
        if code is not None:
            break
    if code is not None and str(code) != "":
        # A code, when present, is authoritative over the message.
        return _has_transient_marker(str(code).lower())

    return _has_transient_marker(str(exc).lower())


def with_retry(
    fn: Callable[[], T],
    max_retry: int,
    logs: RunLog,
    label: str,
    *,
    base_wait_ms: int = DEFAULT_BASE_WAIT_MS,
    max_wait_ms: int = DEFAULT_MAX_WAIT_MS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``fn`` up to ``max_retry + 1`` times, retrying on any exception.

    Args:
        fn:         Zero-argument operation.
        max_retry:  Number of retries after the first attempt.
        logs:       Run log sink receiving one line per failure.
        label:      Prefix for log lines, e.g. ``"probe: commit"``.
        sleep:      Injected for tests; receives seconds.

    Returns:
        Whatever ``fn`` returns on its first success.

    Raises:
        Exception: The last error once all attempts have failed.
    """
    last_exc: Optional[BaseException] = None
    attempts = max_retry + 1
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as exc:
            last_exc = exc
            if attempt == attempts - 1:
                logs.warning(f"{label}: giving up after {attempts} attempts: {exc}")
                break
            wait = backoff_ms(attempt, base_wait_ms, max_wait_ms)
            logs.warning(f"{label}: retry {attempt + 1}/{attempts} after {wait}ms: {exc}")
            sleep(wait / 1000)
    assert last_exc is not None
    raise last_exc


def with_store_retry(
    fn: Callable[[], T],
    logs: RunLog,
    label: str,
    max_retry: int = DEFAULT_STORE_MAX_RETRY,
    *,
    base_wait_ms: int = DEFAULT_BASE_WAIT_MS,
    max_wait_ms: int = DEFAULT_MAX_WAIT_MS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run a store operation, retrying only transient failures.

    Non-transient errors propagate immediately after a ``no-retry`` log line.

    Raises:
        Exception: The first non-transient error, or the last transient one
            once ``max_retry + 1`` attempts have failed.
    """
    attempts = max_retry + 1
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as exc:
            if not is_transient_store_error(exc) or attempt == attempts - 1:
                logs.warning(f"{label}: no-retry ({attempt}/{max_retry}) -> {exc}")
                raise
            wait = backoff_ms(attempt, base_wait_ms, max_wait_ms)
            logs.warning(f"{label}: store-retry {attempt + 1}/{attempts} after {wait}ms: {exc}")
            sleep(wait / 1000)
    raise RuntimeError(f"{label}: retry loop exited without result")  # pragma: no cover
