"""
Tests for the curators' dictionary, progress listings and summary recompute.

What we test
------------
1. ``DeckNameDictionary``: names are trimmed, listed in name order, inactive
   ones only with ``include_inactive``; blank, too long, duplicate and unknown
   names raise typed errors without retries.
2. ``work_months``: most recently updated first, capped by the limit.
3. ``work_days``: one month and league, newest date first; a malformed month
   raises.
4. ``recompute_summaries``: explicit dates, defaults to the previous site day
   (daily) or the current site month (monthly), and ill-shaped dates fall
   back to those defaults.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from cityleague_pipeline.curation.deck_names import DeckNameCurator, DeckNameDictionary
from cityleague_pipeline.db.repositories.ranking_repo import RankingRepository
from cityleague_pipeline.db.repositories.snapshot_repo import SnapshotRepository
from cityleague_pipeline.db.repositories.work_summary_repo import WorkSummaryRepository
from cityleague_pipeline.errors import (
    DeckNameNotFoundError,
    DuplicateDeckNameError,
    InvalidDeckNameError,
    InvalidTargetDateError,
)
from cityleague_pipeline.models.curation import WorkDaySummary, WorkMonthSummary
from cityleague_pipeline.pipeline.snapshots import build_snapshot
from cityleague_pipeline.taxonomy.categories import Category, SummaryScope

# 09:30 on 2025-03-08 at the site offset.
T0 = datetime(2025, 3, 8, 0, 30, tzinfo=timezone.utc)
EV = "event-20250307-open-01"


def _day(date, league="open", complete=False):
    return WorkDaySummary(
        id=f"{date.replace('-', '')}-{league}",
        date=date,
        league=league,
        total_targets=4,
        completed_targets=4 if complete else 1,
        all_complete=complete,
    )


@pytest.fixture
def dictionary(config, store, fake_sleep):
    return DeckNameDictionary(config, store, sleep=fake_sleep)


@pytest.fixture
def curator(config, store, fake_sleep):
    return DeckNameCurator(config, store, sleep=fake_sleep)


# ── Dictionary ────────────────────────────────────────────────────────────────

class TestDeckNameDictionary:
    def test_add_and_list_in_name_order(self, dictionary):
        for name in ("Gardevoir ex", "  Charizard ex ", "Dragapult ex"):
            dictionary.add(name)

        entries = dictionary.entries()
        assert [e.name for e in entries] == ["Charizard ex", "Dragapult ex", "Gardevoir ex"]
        assert all(e.is_active and e.created_at is not None for e in entries)
        assert entries[0].id == "Charizard ex"

    def test_deactivated_names_are_hidden(self, dictionary):
        dictionary.add("Gardevoir ex")
        dictionary.add("Charizard ex")

        entry = dictionary.set_active("Gardevoir ex", False)
        assert entry.is_active is False
        assert [e.name for e in dictionary.entries()] == ["Charizard ex"]
        assert [e.name for e in dictionary.entries(include_inactive=True)] == [
            "Charizard ex",
            "Gardevoir ex",
        ]

        dictionary.set_active("Gardevoir ex", True)
        assert len(dictionary.entries()) == 2

    def test_duplicate_name(self, dictionary, sleeps):
        dictionary.add("Dragapult ex")
        with pytest.raises(DuplicateDeckNameError) as exc_info:
            dictionary.add(" Dragapult ex")
        assert exc_info.value.code == "duplicate-name"
        assert sleeps == []
        assert len(dictionary.entries(include_inactive=True)) == 1

    @pytest.mark.parametrize("name", ["", "   ", "x" * 65])
    def test_invalid_name(self, dictionary, name):
        with pytest.raises(InvalidDeckNameError):
            dictionary.add(name)
        assert dictionary.entries(include_inactive=True) == []

    def test_toggle_unknown_name(self, dictionary, sleeps):
        with pytest.raises(DeckNameNotFoundError):
            dictionary.set_active("Unknown", False)
        assert sleeps == []


# ── Work listings ─────────────────────────────────────────────────────────────

class TestWorkListings:
    def test_months_most_recent_first(self, curator, store):
        summaries = WorkSummaryRepository(store)
        for month, day in (("2025-01", 3), ("2025-03", 9), ("2025-02", 5)):
            summaries.save_month(WorkMonthSummary(
                id=f"{month}-open", month=month, league="open",
                total_days=1, completed_days=0, all_complete=False,
                updated_at=datetime(2025, 4, day, tzinfo=timezone.utc),
            ))

        assert [m.month for m in curator.work_months()] == ["2025-03", "2025-02", "2025-01"]
        assert [m.month for m in curator.work_months(limit=2)] == ["2025-03", "2025-02"]

    def test_days_of_one_month_and_league(self, curator, store):
        summaries = WorkSummaryRepository(store)
        for day in (
            _day("2025-03-01"),
            _day("2025-03-07", complete=True),
            _day("2025-03-05", league="senior"),
            _day("2025-04-01"),
            _day("2025-02-28"),
        ):
            summaries.save_day(day)

        days = curator.work_days("2025-03")
        assert [d.id for d in days] == ["20250307-open", "20250301-open"]
        assert [d.id for d in curator.work_days("2025-03", "senior")] == ["20250305-senior"]

    @pytest.mark.parametrize("month", ["2025-3", "202503", "", "2025-03-01"])
    def test_malformed_month(self, curator, month):
        with pytest.raises(InvalidTargetDateError):
            curator.work_days(month)


# ── Recompute ─────────────────────────────────────────────────────────────────

class TestRecomputeSummaries:
    @pytest.fixture
    def seeded(self, store, make_row):
        rows = [
            make_row(EV, 1, deck_id="a", deck_name="Dragapult ex"),
            make_row(EV, 2, deck_id="b"),
            make_row(EV, 3, seq=0, deck_id="c"),
            make_row(EV, 3, seq=1, deck_id="d"),
        ]
        RankingRepository(store).upsert_rows(rows)
        SnapshotRepository(store).replace(
            build_snapshot("20250307", Category.OPEN, rows, lambda url: None, T0)
        )
        return store

    def test_daily_explicit_date(self, curator, seeded):
        day = curator.recompute_summaries(SummaryScope.DAILY, "2025-03-07", now=T0)
        assert day.id == "20250307-open"
        assert (day.date, day.total_targets, day.completed_targets) == ("2025-03-07", 4, 1)
        assert WorkSummaryRepository(seeded).get_day("20250307-open") is not None

    def test_daily_defaults_to_previous_site_day(self, curator, seeded):
        day = curator.recompute_summaries("daily", now=T0)
        assert day.id == "20250307-open"
        assert day.total_targets == 4

    def test_daily_bad_date_falls_back(self, curator, seeded):
        day = curator.recompute_summaries(SummaryScope.DAILY, "2025-02-30", now=T0)
        assert day.id == "20250307-open"
        assert any("not YYYY-MM-DD" in line for line in curator.logs.lines)

    def test_daily_without_snapshot_counts_nothing(self, curator, seeded):
        day = curator.recompute_summaries(SummaryScope.DAILY, "2025-03-06", now=T0)
        assert (day.total_targets, day.all_complete) == (0, False)

    def test_monthly_rolls_up_days(self, curator, seeded):
        summaries = WorkSummaryRepository(seeded)
        summaries.save_day(_day("2025-03-01", complete=True))
        summaries.save_day(_day("2025-03-02", complete=True))

        month = curator.recompute_summaries(SummaryScope.MONTHLY, "2025-03", now=T0)
        assert month.id == "2025-03-open"
        assert (month.total_days, month.completed_days, month.all_complete) == (2, 2, True)

    def test_monthly_defaults_to_current_site_month(self, curator, seeded):
        # 23:30 UTC on Feb 28 is already March 1 at the site offset.
        late = datetime(2025, 2, 28, 23, 30, tzinfo=timezone.utc)
        month = curator.recompute_summaries(SummaryScope.MONTHLY, "2025/03", now=late)
        assert month.month == "2025-03"

    def test_unknown_scope(self, curator):
        with pytest.raises(ValueError):
            curator.recompute_summaries("weekly", now=T0)
