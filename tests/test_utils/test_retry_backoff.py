"""
Tests for the retry wrappers.

What we test
------------
1. Backoff schedule doubles from the base wait and is capped.
2. ``with_retry`` runs at most max_retry + 1 times and sleeps between attempts only.
3. ``with_store_retry`` retries transient store errors and surfaces others at once.
4. Transient classification by type, code attribute and message; a
   non-transient code wins over a transient-sounding message.
"""

from __future__ import annotations

import pytest

from cityleague_pipeline.errors import (
    DocumentNotFoundError,
    PermanentStoreError,
    TransientStoreError,
)
from cityleague_pipeline.utils.logging import RunLog
from cityleague_pipeline.utils.retry import (
    backoff_ms,
    is_transient_store_error,
    with_retry,
    with_store_retry,
)


def _failing(times: int, exc: Exception, result: str = "ok"):
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if calls["n"] <= times:
            raise exc
        return result

    return fn, calls


# ── Backoff ───────────────────────────────────────────────────────────────────

class TestBackoff:
    def test_default_schedule(self):
        assert [backoff_ms(i) for i in range(6)] == [1000, 2000, 4000, 8000, 16000, 16000]

    def test_custom_cap(self):
        assert backoff_ms(3, base_wait_ms=100, max_wait_ms=500) == 500


# ── with_retry ────────────────────────────────────────────────────────────────

class TestWithRetry:
    def test_success_after_failures(self, sleeps, fake_sleep):
        fn, calls = _failing(2, RuntimeError("boom"))
        log = RunLog()
        assert with_retry(fn, 3, log, "probe: fetch", sleep=fake_sleep) == "ok"
        assert calls["n"] == 3
        assert sleeps == [1.0, 2.0]
        assert len(log) == 2

    def test_exhaustion_reraises_last_error(self, sleeps, fake_sleep):
        fn, calls = _failing(10, ValueError("bad page"))
        with pytest.raises(ValueError, match="bad page"):
            with_retry(fn, 2, RunLog(), "probe: fetch", sleep=fake_sleep)
        assert calls["n"] == 3
        # No sleep after the final attempt.
        assert sleeps == [1.0, 2.0]

    def test_zero_retries_runs_once(self, sleeps, fake_sleep):
        fn, calls = _failing(1, RuntimeError("x"))
        with pytest.raises(RuntimeError):
            with_retry(fn, 0, RunLog(), "label", sleep=fake_sleep)
        assert calls["n"] == 1
        assert sleeps == []


# ── with_store_retry ──────────────────────────────────────────────────────────

class TestWithStoreRetry:
    def test_transient_failures_are_retried_with_waits(self, sleeps, fake_sleep):
        fn, calls = _failing(4, TransientStoreError("UNAVAILABLE: locked"))
        log = RunLog()
        assert with_store_retry(fn, log, "rankings: commit", max_retry=4, sleep=fake_sleep) == "ok"
        assert calls["n"] == 5
        assert sleeps == [1.0, 2.0, 4.0, 8.0]
        assert all("store-retry" in line for line in log.lines)

    def test_bounded_attempts(self, sleeps, fake_sleep):
        fn, calls = _failing(100, TransientStoreError("UNAVAILABLE"))
        log = RunLog()
        with pytest.raises(TransientStoreError):
            with_store_retry(fn, log, "events: commit", max_retry=4, sleep=fake_sleep)
        assert calls["n"] == 5
        assert sleeps == [1.0, 2.0, 4.0, 8.0]
        assert "no-retry (4/4)" in log.lines[-1]

    def test_permanent_error_is_not_retried(self, sleeps, fake_sleep):
        fn, calls = _failing(1, DocumentNotFoundError("missing"))
        log = RunLog()
        with pytest.raises(DocumentNotFoundError):
            with_store_retry(fn, log, "events: mark", sleep=fake_sleep)
        assert calls["n"] == 1
        assert sleeps == []
        assert log.lines == ["events: mark: no-retry (0/4) -> missing"]

    def test_non_store_error_is_not_retried(self, sleeps, fake_sleep):
        fn, calls = _failing(1, KeyError("oops"))
        with pytest.raises(KeyError):
            with_store_retry(fn, RunLog(), "label", sleep=fake_sleep)
        assert calls["n"] == 1


# ── Classification ────────────────────────────────────────────────────────────

class _CodedError(Exception):
    def __init__(self, code, message="failure"):
        super().__init__(message)
        self.code = code


class TestIsTransient:
    @pytest.mark.parametrize(
        "exc",
        [
            TransientStoreError("x"),
            _CodedError("UNAVAILABLE"),
            _CodedError(503),
            _CodedError("deadline-exceeded"),
            RuntimeError("Deadline exceeded while writing"),
            RuntimeError("connect ETIMEDOUT 10.0.0.1"),
            RuntimeError("upstream answered 504"),
        ],
    )
    def test_transient(self, exc):
        assert is_transient_store_error(exc)

    @pytest.mark.parametrize(
        "exc",
        [
            PermanentStoreError("timeout in message but typed permanent"),
            DocumentNotFoundError("x"),
            _CodedError("permission-denied"),
            _CodedError("permission-denied", "request timeout while checking rules"),
            _CodedError(403, "Service Unavailable upstream"),
            ValueError("bad input"),
            RuntimeError("Snapshot 20250307-open not found."),
        ],
    )
    def test_not_transient(self, exc):
        assert not is_transient_store_error(exc)
