"""
Deck-name curation for daily snapshots.

Curators assign names to the podium decks of one snapshot, addressed by
``group_id``.  ``DeckNameCurator.batch_update`` is partial-success:

  1. Validate items in order.  Blank group id, a group id repeated in the
     batch, a blank name or a name longer than the configured limit become
     per-item errors; the rest are applied.
  2. Apply the valid names to the snapshot's ``rankings`` and ``groups`` in
     one single-document transaction.  Group ids found in neither list are
     reported as ``group-not-found``.
  3. Copy each applied name onto the underlying ranking row so the next
     snapshot rebuild carries it forward.
  4. When anything changed, recompute the day's curation summary and the
     month roll-up for the snapshot's league.

A missing snapshot raises ``SnapshotNotFoundError`` and nothing is written.

Summaries can also be rebuilt on demand (``recompute_summaries``) and
listed for the curators' month and day views.  ``DeckNameDictionary``
keeps the names curators pick from.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional, Union

from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.db.repositories.deck_name_repo import DeckNameRepository
from cityleague_pipeline.db.repositories.ranking_repo import RankingRepository
from cityleague_pipeline.db.repositories.snapshot_repo import SnapshotRepository
from cityleague_pipeline.db.repositories.work_summary_repo import WorkSummaryRepository
from cityleague_pipeline.db.store import DocumentStore
from cityleague_pipeline.errors import (
    InvalidDeckNameError,
    InvalidTargetDateError,
    SnapshotNotFoundError,
)
from cityleague_pipeline.models.curation import (
    DECK_NAME_TOO_LONG,
    DUPLICATE_GROUP_ID,
    GROUP_NOT_FOUND,
    INVALID_DECK_NAME,
    INVALID_GROUP_ID,
    BatchUpdateResult,
    CurationError,
    DeckNameEntry,
    DeckNameUpdate,
    PodiumTarget,
    WorkDaySummary,
    WorkMonthSummary,
)
from cityleague_pipeline.models.ranking import make_ranking_id
from cityleague_pipeline.taxonomy.categories import SummaryScope
from cityleague_pipeline.utils.logging import RunLog
from cityleague_pipeline.utils.time_utils import site_tz, utcnow

logger = logging.getLogger(__name__)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


def validate_items(
    items: Iterable[DeckNameUpdate],
    max_length: int = 64,
) -> tuple[dict[str, str], list[CurationError]]:
    """Split a batch into ``{group_id: deck_name}`` and per-item errors.

    Values are trimmed first.  The first occurrence of a group id claims it;
    later ones are reported as duplicates even when the first was invalid.
    """
    accepted: dict[str, str] = {}
    errors: list[CurationError] = []
    seen: set[str] = set()

    for item in items:
        group_id = (item.group_id or "").strip()
        deck_name = (item.deck_name or "").strip()
        if not group_id:
            errors.append(CurationError(group_id="", code=INVALID_GROUP_ID, message="group_id is empty"))
            continue
        if group_id in seen:
            errors.append(
                CurationError(
                    group_id=group_id,
                    code=DUPLICATE_GROUP_ID,
                    message="group_id appears more than once in the batch",
                )
            )
            continue
        seen.add(group_id)
        if not deck_name:
            errors.append(
                CurationError(group_id=group_id, code=INVALID_DECK_NAME, message="deck_name is empty")
            )
            continue
        if len(deck_name) > max_length:
            errors.append(
                CurationError(
                    group_id=group_id,
                    code=DECK_NAME_TOO_LONG,
                    message=f"deck_name exceeds {max_length} characters",
                )
            )
            continue
        accepted[group_id] = deck_name
    return accepted, errors


def _is_iso_date(value: Optional[str]) -> bool:
    if not value or not _ISO_DATE_RE.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _occurrence_from_group_id(group_id: str) -> Optional[int]:
    tail = group_id.rsplit("_", 1)[-1]
    return int(tail) if tail.isdigit() else None


def _apply_names(
    body: dict[str, Any],
    names: dict[str, str],
) -> tuple[dict[str, Any], list[dict[str, Any]], set[str]]:
    """Rewrite ``rankings`` and ``groups`` of a raw snapshot body.

    Returns:
        ``(fields_to_write, renamed_ranking_entries, group_ids_found)``.
    """
    fields: dict[str, Any] = {}
    renamed: list[dict[str, Any]] = []
    found: set[str] = set()

    rankings = body.get("rankings")
    if isinstance(rankings, list):
        updated = []
        changed = False
        for entry in rankings:
            gid = str((entry or {}).get("group_id") or "")
            if gid and gid in names:
                entry = {**entry, "deck_name": names[gid]}
                renamed.append(entry)
                found.add(gid)
                changed = True
            updated.append(entry)
        if changed:
            fields["rankings"] = updated

    groups = body.get("groups")
    if isinstance(groups, list):
        updated_groups = []
        changed = False
        for group in groups:
            members = (group or {}).get("rankings")
            if isinstance(members, list):
                new_members = []
                for entry in members:
                    gid = str((entry or {}).get("group_id") or "")
                    if gid and gid in names:
                        entry = {**entry, "deck_name": names[gid]}
                        found.add(gid)
                        changed = True
                    new_members.append(entry)
                group = {**group, "rankings": new_members}
            updated_groups.append(group)
        if changed:
            fields["groups"] = updated_groups

    return fields, renamed, found


class DeckNameCurator:
    """Podium deck-name listing and batch updates for snapshots.

    Args:
        config: Application config (name length limit, podium ranks, retry).
        store:  Document store.
        logs:   Optional run log sink for store retries.
        sleep:  Backoff sleep, injected in tests.
    """

    def __init__(
        self,
        config: AppConfig,
        store: DocumentStore,
        logs: Optional[RunLog] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.logs = logs if logs is not None else RunLog(logger=logger)
        self.snapshots = SnapshotRepository(store, self.logs, config.retry, sleep)
        self.rankings = RankingRepository(store, self.logs, config.retry, sleep)
        self.summaries = WorkSummaryRepository(store, self.logs, config.retry, sleep)

    # ── Reads ─────────────────────────────────────────────────────────────────

    def podium_targets(self, snapshot_id: str) -> list[PodiumTarget]:
        """Podium entries of a snapshot that carry a group id, in snapshot order.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist.
        """
        snapshot = self.snapshots.get(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(f"Snapshot {snapshot_id} not found.")
        podium = set(self.config.snapshot.group_ranks)
        return [
            PodiumTarget(
                group_id=e.group_id,
                rank=e.rank,
                deck_list_image_url=e.deck_list_image_url,
                deck_name=e.deck_name or None,
            )
            for e in snapshot.rankings
            if e.rank in podium and e.group_id
        ]

    # ── Writes ────────────────────────────────────────────────────────────────

    def batch_update(
        self,
        snapshot_id: str,
        items: Iterable[DeckNameUpdate],
    ) -> BatchUpdateResult:
        """Apply curated deck names to one snapshot.

        Args:
            snapshot_id: ``{date_key}-{category}``.
            items:       Requested assignments.

        Returns:
            ``BatchUpdateResult`` with the updated ids and per-item errors.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist.
        """
        names, errors = validate_items(items, self.config.curation.max_deck_name_length)

        def _modify(current: Optional[dict[str, Any]]):
            if current is None:
                raise SnapshotNotFoundError(f"Snapshot {snapshot_id} not found.")
            fields, renamed, found = _apply_names(current, names)
            return fields, (current, renamed, found)

        body, renamed, found = self.snapshots.modify(snapshot_id, _modify)

        for gid in names:
            if gid not in found:
                errors.append(
                    CurationError(
                        group_id=gid,
                        code=GROUP_NOT_FOUND,
                        message="group_id does not exist in the snapshot",
                    )
                )

        updated_ids = [str(e["group_id"]) for e in renamed]
        if updated_ids:
            self._propagate_to_rows(renamed)
            date_key = str(body.get("date_key") or snapshot_id[:8])
            league = str(body.get("category") or snapshot_id[9:])
            self.recompute_day_summary(snapshot_id, date_key, league)
            self.recompute_month_summary(f"{date_key[:4]}-{date_key[4:6]}", league)

        logger.info(
            "Curation %s | updated=%d errors=%d", snapshot_id, len(updated_ids), len(errors)
        )
        return BatchUpdateResult(
            snapshot_id=snapshot_id,
            updated_count=len(updated_ids),
            updated_ids=updated_ids,
            errors=errors,
        )

    def _propagate_to_rows(self, renamed: list[dict[str, Any]]) -> None:
        stamp = utcnow().isoformat()
        for entry in renamed:
            event_id = entry.get("event_id")
            occurrence = _occurrence_from_group_id(str(entry.get("group_id") or ""))
            if not event_id or occurrence is None:
                continue
            ranking_id = make_ranking_id(event_id, int(entry["rank"]), occurrence)
            if not self.rankings.set_deck_name(ranking_id, entry["deck_name"], stamp):
                logger.warning("Curation: ranking row %s not found for %s", ranking_id, entry["group_id"])

    # ── Summaries ─────────────────────────────────────────────────────────────

    def recompute_day_summary(self, snapshot_id: str, date_key: str, league: str) -> WorkDaySummary:
        """Count podium targets and how many of them are named."""
        snapshot = self.snapshots.get(snapshot_id)
        podium = set(self.config.snapshot.group_ranks)
        targets = [e for e in (snapshot.rankings if snapshot else []) if e.rank in podium]
        completed = sum(1 for e in targets if (e.deck_name or "").strip())
        summary = WorkDaySummary(
            id=snapshot_id,
            date=f"{date_key[:4]}-{date_key[4:6]}-{date_key[6:8]}",
            league=league,
            total_targets=len(targets),
            completed_targets=completed,
            all_complete=bool(targets) and completed == len(targets),
            updated_at=utcnow(),
        )
        self.summaries.save_day(summary)
        return summary

    def recompute_month_summary(self, month: str, league: str) -> WorkMonthSummary:
        """Roll up the month's day summaries for one league (``month`` is ``YYYY-MM``)."""
        days = self.summaries.list_days(f"{month}-01", f"{month}-31", league)
        completed = sum(1 for d in days if d.all_complete)
        summary = WorkMonthSummary(
            id=f"{month}-{league}",
            month=month,
            league=league,
            total_days=len(days),
            completed_days=completed,
            all_complete=bool(days) and completed == len(days),
            updated_at=utcnow(),
        )
        self.summaries.save_month(summary)
        return summary

    def recompute_summaries(
        self,
        scope: SummaryScope,
        date: Optional[str] = None,
        league: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Union[WorkDaySummary, WorkMonthSummary]:
        """Rebuild one day's or one month's summary on demand.

        ``daily`` takes ``YYYY-MM-DD`` and defaults to the previous site day;
        ``monthly`` takes ``YYYY-MM`` and defaults to the current site month.
        A ``date`` that does not fit the scope falls back to the default.

        Raises:
            ValueError: If ``scope`` is not a ``SummaryScope`` value.
        """
        scope = SummaryScope(scope)
        league = league or self.config.curation.default_league
        ref = now or utcnow()
        if ref.tzinfo is None:
            ref = ref.replace(tzinfo=timezone.utc)
        local = ref.astimezone(site_tz(self.config.orchestrator.utc_offset_hours))

        if scope is SummaryScope.DAILY:
            if not _is_iso_date(date):
                if date:
                    self.logs.info(f"recompute: date {date!r} is not YYYY-MM-DD, using the previous day")
                date = (local - timedelta(days=1)).strftime("%Y-%m-%d")
            date_key = date.replace("-", "")
            return self.recompute_day_summary(f"{date_key}-{league}", date_key, league)

        if not (date and _MONTH_RE.match(date)):
            if date:
                self.logs.info(f"recompute: month {date!r} is not YYYY-MM, using the current month")
            date = local.strftime("%Y-%m")
        return self.recompute_month_summary(date, league)

    # ── Work listings ─────────────────────────────────────────────────────────

    def work_months(self, limit: Optional[int] = None) -> list[WorkMonthSummary]:
        """Month summaries, most recently updated first."""
        return self.summaries.list_months(limit or self.config.curation.work_months_limit)

    def work_days(self, month: str, league: Optional[str] = None) -> list[WorkDaySummary]:
        """Day summaries of one ``YYYY-MM`` month and league, newest date first.

        Raises:
            InvalidTargetDateError: If ``month`` is not ``YYYY-MM``.
        """
        month = (month or "").strip()
        if not _MONTH_RE.match(month):
            raise InvalidTargetDateError(f"Month must be YYYY-MM, got {month!r}.")
        league = league or self.config.curation.default_league
        return self.summaries.list_days(f"{month}-01", f"{month}-31", league, newest_first=True)


class DeckNameDictionary:
    """The registered deck names curators choose from.

    Names are trimmed and must fit the same length limit as curated names.
    New names start active; deactivated names stay listed under ``all``.
    """

    def __init__(
        self,
        config: AppConfig,
        store: DocumentStore,
        logs: Optional[RunLog] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.logs = logs if logs is not None else RunLog(logger=logger)
        self.names = DeckNameRepository(store, self.logs, config.retry, sleep)

    def entries(self, include_inactive: bool = False) -> list[DeckNameEntry]:
        return self.names.list_names(include_inactive)

    def add(self, name: str) -> DeckNameEntry:
        """Register ``name`` as active.

        Raises:
            InvalidDeckNameError:   Blank or too long.
            DuplicateDeckNameError: Already registered.
        """
        name = (name or "").strip()
        limit = self.config.curation.max_deck_name_length
        if not name:
            raise InvalidDeckNameError("Deck name is empty.")
        if len(name) > limit:
            raise InvalidDeckNameError(f"Deck name exceeds {limit} characters.")
        entry = self.names.add(name, utcnow())
        logger.info("Deck name added: %s", name)
        return entry

    def set_active(self, name: str, is_active: bool) -> DeckNameEntry:
        """Raises ``DeckNameNotFoundError`` for an unregistered name."""
        entry = self.names.set_active((name or "").strip(), is_active, utcnow())
        logger.info("Deck name %s: active=%s", entry.name, is_active)
        return entry
