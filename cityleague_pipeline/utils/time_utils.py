"""
Time and date utilities for the results calendar.

Key concepts:
  - Date key: ``YYYYMMDD`` string identifying a tournament day.
  - Date label: ``M/D`` as displayed on the results listing (no leading zeros).
  - Site-local time: the results site runs on a fixed UTC+9 offset; "yesterday"
    and execution ids are computed in that offset, not in host-local time.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from cityleague_pipeline.errors import InvalidTargetDateError

DEFAULT_UTC_OFFSET_HOURS = 9

_DATE_KEY_RE = re.compile(r"^\d{8}$")


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(tz=timezone.utc)


def site_tz(offset_hours: int = DEFAULT_UTC_OFFSET_HOURS) -> timezone:
    """Fixed-offset timezone for the results site."""
    return timezone(timedelta(hours=offset_hours))


def site_now(offset_hours: int = DEFAULT_UTC_OFFSET_HOURS) -> datetime:
    """Return the current time in the site's fixed offset."""
    return datetime.now(tz=site_tz(offset_hours))


# ── Date keys and labels ──────────────────────────────────────────────────────

def parse_date_key(date_key: str) -> date:
    """Parse and validate a ``YYYYMMDD`` key.

    Raises:
        InvalidTargetDateError: If the key is not eight digits or not a real
            calendar date (e.g. ``"20250230"``).
    """
    if not isinstance(date_key, str) or not _DATE_KEY_RE.match(date_key):
        raise InvalidTargetDateError(f"Date key must be 8 digits (YYYYMMDD), got {date_key!r}.")
    try:
        return datetime.strptime(date_key, "%Y%m%d").date()
    except ValueError as exc:
        raise InvalidTargetDateError(f"Not a calendar date: {date_key!r}.") from exc


def to_date_key(d: date) -> str:
    return d.strftime("%Y%m%d")


def to_date_label(d: date) -> str:
    """``date(2025, 3, 7)`` → ``"3/7"``."""
    return f"{d.month}/{d.day}"


def date_key_to_label(date_key: str) -> str:
    return to_date_label(parse_date_key(date_key))


def normalize_month_day(label: str) -> str:
    """Strip leading zeros from an ``M/D`` label: ``"03/07"`` → ``"3/7"``.

    Labels that do not parse are returned unchanged.
    """
    parts = label.strip().split("/")
    if len(parts) != 2:
        return label.strip()
    try:
        return f"{int(parts[0])}/{int(parts[1])}"
    except ValueError:
        return label.strip()


def resolve_target_date(
    override: Optional[str] = None,
    now: Optional[datetime] = None,
    offset_hours: int = DEFAULT_UTC_OFFSET_HOURS,
) -> tuple[str, str, bool]:
    """Decide which tournament day a run targets.

    A valid ``YYYYMMDD`` override wins.  Otherwise (no override, or one that
    fails validation) the previous calendar day at the site offset is used.

    Args:
        override: Optional ``YYYYMMDD`` string.
        now:      Reference instant (aware). Defaults to the current time.
        offset_hours: Site UTC offset.

    Returns:
        Tuple of ``(date_key, date_label, used_override)``.
    """
    if override:
        try:
            d = parse_date_key(override)
            return to_date_key(d), to_date_label(d), True
        except InvalidTargetDateError:
            pass

    ref = now or utcnow()
    if ref.tzinfo is None:
        ref = ref.replace(tzinfo=timezone.utc)
    previous = (ref.astimezone(site_tz(offset_hours)) - timedelta(days=1)).date()
    return to_date_key(previous), to_date_label(previous), False


# ── Execution ids and durations ───────────────────────────────────────────────

def compact_timestamp(
    at: Optional[datetime] = None,
    offset_hours: int = DEFAULT_UTC_OFFSET_HOURS,
) -> str:
    """Human-sortable ``YYYYMMDD-HHMMSS-mmm`` in the site offset.

    Used as the ExecutionRecord id so a descending sort on id is a sort by
    start time.
    """
    ref = at or utcnow()
    if ref.tzinfo is None:
        ref = ref.replace(tzinfo=timezone.utc)
    local = ref.astimezone(site_tz(offset_hours))
    return local.strftime("%Y%m%d-%H%M%S-") + f"{local.microsecond // 1000:03d}"


def format_duration_human(seconds: float) -> str:
    """Format an elapsed time for run records.

    Examples::

        format_duration_human(4.2)      -> "4.200s"
        format_duration_human(83.5)     -> "1m 23.500s"
        format_duration_human(3723.01)  -> "1h 02m 03.010s"

    Negative or non-finite input yields ``"0.000s"``.
    """
    if not math.isfinite(seconds) or seconds < 0:
        return "0.000s"
    total_ms = int(round(seconds * 1000))
    total_sec, ms = divmod(total_ms, 1000)
    total_min, sec = divmod(total_sec, 60)
    hours, minutes = divmod(total_min, 60)
    if hours > 0:
        return f"{hours}h {minutes:02d}m {sec:02d}.{ms:03d}s"
    if total_min > 0:
        return f"{total_min}m {sec:02d}.{ms:03d}s"
    return f"{sec}.{ms:03d}s"
