"""
Shared pytest fixtures for the City League pipeline test suite.

Provides:
  - ``store``: A fresh in-memory document store with the schema applied.
  - ``config``: Default ``AppConfig`` (no file or environment involved).
  - ``sleeps`` / ``fake_sleep``: A recorded replacement for ``time.sleep``.
  - ``make_event`` / ``make_row``: Domain object factories.
  - ``FakeStrategy`` / ``FakeListingSource`` factories for acquisition seams.
  - ``fake_browser``: a scripted stand-in for ``BrowserSession``.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Generator, Optional

import httpx
import pytest

from cityleague_pipeline.acquisition.base import (
    AcquiredRow,
    AcquisitionResult,
    AcquisitionStrategy,
)
from cityleague_pipeline.acquisition.browser import RenderedPage
from cityleague_pipeline.acquisition.listing import ListingSource
from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.db.connection import open_connection
from cityleague_pipeline.db.schema import apply_schema
from cityleague_pipeline.db.store import DocumentStore
from cityleague_pipeline.models.event import TournamentEvent, make_event_id
from cityleague_pipeline.models.ranking import RankingRow, make_ranking_id
from cityleague_pipeline.taxonomy.categories import Category
from cityleague_pipeline.utils.logging import RunLog

FIXED_NOW = datetime(2025, 3, 8, 0, 30, 0, tzinfo=timezone.utc)   # 09:30 at UTC+9


# ── Store and config ──────────────────────────────────────────────────────────

@pytest.fixture
def store() -> Generator[DocumentStore, None, None]:
    """Yield an in-memory DocumentStore with the schema applied."""
    conn = open_connection(":memory:")
    apply_schema(conn)
    yield DocumentStore(conn)
    conn.close()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def run_log() -> RunLog:
    return RunLog()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps) -> Callable[[float], None]:
    """Records requested sleeps (seconds) instead of sleeping."""
    return sleeps.append


# ── Domain factories ──────────────────────────────────────────────────────────

@pytest.fixture
def make_event() -> Callable[..., TournamentEvent]:
    def _make(
        seq: int = 1,
        category: Category = Category.OPEN,
        date_key: str = "20250307",
        holding_id: str = "700001",
        **overrides,
    ) -> TournamentEvent:
        fields = dict(
            id=make_event_id(date_key, category, seq),
            date_key=date_key,
            date_label=f"{int(date_key[4:6])}/{int(date_key[6:8])}",
            title=f"シティリーグ シーズン5 {category.code} #{seq}",
            location="Tokyo",
            detail_url=f"https://players.pokemon-card.com/event/detail/{holding_id}/result",
            category=category,
            discovered_at=FIXED_NOW,
        )
        fields.update(overrides)
        return TournamentEvent(**fields)

    return _make


@pytest.fixture
def make_row() -> Callable[..., RankingRow]:
    def _make(
        event_id: str,
        rank: int,
        seq: int = 0,
        category: Category = Category.OPEN,
        deck_id: Optional[str] = None,
        **overrides,
    ) -> RankingRow:
        fields = dict(
            id=make_ranking_id(event_id, rank, seq),
            event_id=event_id,
            organizer="Card Shop A",
            category=category,
            rank=rank,
            sequence_within_rank=seq,
            player_label=f"player-{rank}-{seq}",
            points=10,
            deck_id=deck_id,
            deck_url=(
                f"https://www.pokemon-card.com/deck/confirm.html/deckID/{deck_id}"
                if deck_id else None
            ),
            updated_at=FIXED_NOW,
        )
        fields.update(overrides)
        return RankingRow(**fields)

    return _make


def acquired(rank: int, player_id: Optional[str], deck_id: Optional[str] = None) -> AcquiredRow:
    return AcquiredRow(
        rank=rank,
        player_label=f"name-{player_id}",
        points=5,
        player_id=player_id,
        deck_id=deck_id,
        deck_view_url=f"https://players.pokemon-card.com/deck/{deck_id}" if deck_id else None,
    )


@pytest.fixture
def make_acquired() -> Callable[..., AcquiredRow]:
    return acquired


# ── Acquisition fakes ─────────────────────────────────────────────────────────

class _FakeStrategy(AcquisitionStrategy):
    """Returns canned results per category, or raises ``error``.

    ``results`` maps a category code to an ``AcquisitionResult``; missing
    categories yield an empty result.  ``calls`` records (event id, category).
    """

    def __init__(
        self,
        config: AppConfig,
        tier_name: str,
        results: Optional[dict[str, AcquisitionResult]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        super().__init__(config)
        self.tier_name = tier_name
        self.results = results or {}
        self.error = error
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def try_acquire(self, event, category) -> AcquisitionResult:
        self.calls.append((event.id, category.code))
        if self.error is not None:
            raise self.error
        canned = self.results.get(category.code)
        if canned is None:
            return AcquisitionResult(tier=self.tier_name)
        return AcquisitionResult(
            organizer=canned.organizer, rows=list(canned.rows), tier=canned.tier
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_strategy(config) -> Callable[..., _FakeStrategy]:
    def _make(tier_name: str = "fake", results=None, error=None) -> _FakeStrategy:
        return _FakeStrategy(config, tier_name, results, error)

    return _make


class _FakeListingSource(ListingSource):
    """Serves listing pages from a ``{url: RenderedPage}`` map; unknown URLs get an empty page."""

    def __init__(self, pages: dict[str, RenderedPage], failures: Optional[dict[str, int]] = None) -> None:
        self.pages = pages
        self.failures = dict(failures or {})
        self.fetched: list[str] = []

    def fetch(self, url: str) -> RenderedPage:
        self.fetched.append(url)
        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            raise TimeoutError(f"timeout rendering {url}")
        return self.pages.get(url, RenderedPage(url=url, html="<html><body></body></html>", text=""))


@pytest.fixture
def fake_listing() -> Callable[..., _FakeListingSource]:
    return _FakeListingSource


def listing_page(url: str, cards: list[tuple[str, str, str, str]]) -> RenderedPage:
    """Build a rendered listing page from ``(date_line, venue, title, href)`` cards."""
    text_lines: list[str] = []
    anchors: list[str] = []
    for date_line, venue, title, href in cards:
        text_lines += [date_line, "10:00～", venue, title, "詳細"]
        anchors.append(f'<a href="{href}">詳細</a>')
    html = "<html><body>" + "".join(anchors) + "</body></html>"
    return RenderedPage(url=url, html=html, text="\n".join(text_lines))


@pytest.fixture
def make_listing_page() -> Callable[..., RenderedPage]:
    return listing_page


# ── Browser fakes ─────────────────────────────────────────────────────────────

class _FakePage:
    """Stands in for a Playwright page: ``evaluate`` answers from a script."""

    def __init__(self, session: "_FakeBrowserSession") -> None:
        self.session = session
        self.url = ""

    def goto(self, url: str, wait_until: str = "load", timeout: Optional[int] = None) -> None:
        self.url = url
        self.session.visited.append(url)

    def evaluate(self, script: str, arg=None):
        self.session.evaluated.append(arg)
        if "r.text()" in script:
            return self.session.sample
        answer = self.session.fetches.get(_offset_of(arg))
        if isinstance(answer, Exception):
            raise answer
        return answer


def _offset_of(url: str) -> int:
    return int(httpx.URL(url).params.get("offset", "0"))


class _FakeBrowserSession:
    """Replaces ``BrowserSession`` for tier b and tier c.

    ``fetches`` maps a results-query offset to the JSON payload the in-page
    ``fetch()`` returns (``None`` for a non-OK answer, an exception to raise).
    ``pages`` maps a rendered URL to its ``RenderedPage`` or an exception.
    """

    def __init__(
        self,
        fetches: Optional[dict[int, object]] = None,
        pages: Optional[dict[str, object]] = None,
        sample: str = "<html>blocked</html>",
    ) -> None:
        self.fetches = fetches or {}
        self.pages = pages or {}
        self.sample = sample
        self.timeout_ms = 1000
        self.visited: list[str] = []
        self.evaluated: list[str] = []
        self.rendered: list[str] = []

    @contextmanager
    def page(self):
        yield _FakePage(self)

    def render(self, url: str, wait_until: str = "networkidle") -> RenderedPage:
        self.rendered.append(url)
        answer = self.pages.get(url)
        if isinstance(answer, Exception):
            raise answer
        return answer or RenderedPage(url=url, html="<html><body></body></html>", text="")

    def close(self) -> None:
        pass


@pytest.fixture
def fake_browser() -> Callable[..., _FakeBrowserSession]:
    return _FakeBrowserSession
