"""
Browser-backed acquisition: a shared Playwright session plus tiers b and c.

Tier b (``BrowserApiStrategy``) opens the event detail page and issues the
same results search query with ``fetch()`` from inside the page, which gets
past request blocking that defeats the plain HTTP tier.

Tier c (``RenderedLinksStrategy``) renders ``<detail>/result`` and reads the
deck links in display order.  The page carries no rank field, so ranks come
from the configured bucket plan: one list of ranks per results page, applied
by link position.

In both tiers a failure on the second page is logged and skipped, keeping
the first page's rows; a first-page failure propagates to the ladder.

``BrowserSession`` starts Chromium lazily on first use and is shared by the
listing source and both tiers for the length of one run.  Playwright's sync
API is bound to the thread that started it, so a session must be used and
closed on the run's own thread.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Iterable, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from cityleague_pipeline.acquisition.base import (
    AcquisitionResult,
    AcquisitionStrategy,
    AcquiredRow,
    extract_event_holding_id,
    parse_results_payload,
    results_query_params,
)
from cityleague_pipeline.acquisition.deck import extract_deck_id
from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.models.event import TournamentEvent
from cityleague_pipeline.taxonomy.categories import Category
from cityleague_pipeline.utils.logging import RunLog

logger = logging.getLogger(__name__)

_FETCH_JSON_JS = """
async (url) => {
  const r = await fetch(url, {
    headers: { 'Accept': 'application/json', 'X-Requested-With': 'XMLHttpRequest' }
  });
  if (!r.ok) return null;
  const ct = r.headers.get('content-type') || '';
  if (!ct.includes('application/json')) return null;
  return await r.json();
}
"""

_FETCH_SAMPLE_JS = """
async (url) => {
  try { const r = await fetch(url); const t = await r.text(); return t.slice(0, 200); }
  catch (e) { return String(e).slice(0, 120); }
}
"""


@dataclass(frozen=True)
class RenderedPage:
    """A fully rendered page: final URL, HTML and visible body text."""

    url: str
    html: str
    text: Optional[str] = None


# ── Session ───────────────────────────────────────────────────────────────────

class BrowserSession:
    """Lazily launched headless Chromium shared across one run.

    Args:
        user_agent: User-Agent for the browser context.
        headless:   Run without a visible window.
        timeout_ms: Default navigation/action timeout for new pages.
    """

    def __init__(
        self,
        user_agent: str,
        headless: bool = True,
        timeout_ms: int = 60_000,
    ) -> None:
        self.user_agent = user_agent
        self.headless = headless
        self.timeout_ms = timeout_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    @classmethod
    def from_config(cls, config: AppConfig) -> "BrowserSession":
        return cls(
            user_agent=config.source.user_agent,
            headless=config.acquisition.headless,
            timeout_ms=config.acquisition.browser_timeout_ms,
        )

    def _ensure_context(self) -> BrowserContext:
        if self._context is None:
            logger.info("Launching Chromium (headless=%s)", self.headless)
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=self.headless, args=["--no-sandbox"]
            )
            self._context = self._browser.new_context(user_agent=self.user_agent)
        return self._context

    @contextmanager
    def page(self) -> Generator[Page, None, None]:
        """Yield a fresh page, closed on exit."""
        page = self._ensure_context().new_page()
        page.set_default_timeout(self.timeout_ms)
        try:
            yield page
        finally:
            page.close()

    def render(self, url: str, wait_until: str = "networkidle") -> RenderedPage:
        """Navigate to ``url`` and capture HTML plus body text."""
        with self.page() as page:
            page.goto(url, wait_until=wait_until, timeout=self.timeout_ms)
            return RenderedPage(url=page.url, html=page.content(), text=page.inner_text("body"))

    def close(self) -> None:
        if self._context is not None:
            self._context.close()
        if self._browser is not None:
            self._browser.close()
        if self._playwright is not None:
            self._playwright.stop()
        self._context = self._browser = self._playwright = None

    def __enter__(self) -> "BrowserSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ── Pure parsing helpers ──────────────────────────────────────────────────────

def results_page_url(detail_url: str, offset: int = 0) -> str:
    """``<detail>/result``, with ``?offset=N`` for later pages."""
    base = detail_url if "/result" in detail_url else detail_url.rstrip("/") + "/result"
    if offset <= 0:
        return base
    return str(httpx.URL(base).copy_merge_params({"offset": str(offset)}))


def extract_deck_links(html: str, base_url: str) -> list[str]:
    """Absolute hrefs of ``a[href*="/deck/"]`` links in document order."""
    soup = BeautifulSoup(html, "html.parser")
    return [urljoin(base_url, a["href"]) for a in soup.select('a[href*="/deck/"]')]


def assign_bucket_ranks(
    hrefs: Iterable[str],
    ranks: list[int],
    seen: set[str],
) -> list[AcquiredRow]:
    """Turn one page of deck links into rows ranked by position.

    Links without a deck id are ignored; links already in ``seen`` (from an
    earlier page) are skipped.  The page stops at ``len(ranks)`` rows.  The
    deck id doubles as the player id since the page exposes no player.
    """
    rows: list[AcquiredRow] = []
    for href in hrefs:
        if len(rows) >= len(ranks):
            break
        deck_id = extract_deck_id(href)
        if not deck_id or href in seen:
            continue
        seen.add(href)
        rows.append(
            AcquiredRow(
                rank=ranks[len(rows)],
                player_label="",
                points=0,
                player_id=deck_id,
                deck_id=deck_id,
                deck_view_url=href,
            )
        )
    return rows


# ── Tier b ────────────────────────────────────────────────────────────────────

class BrowserApiStrategy(AcquisitionStrategy):
    """Issue the results search from inside a page opened on the detail URL."""

    tier_name = "browser"

    def __init__(
        self,
        config: AppConfig,
        session: BrowserSession,
        logs: Optional[RunLog] = None,
    ) -> None:
        super().__init__(config, logs)
        self.session = session

    def try_acquire(self, event: TournamentEvent, category: Category) -> AcquisitionResult:
        holding_id = extract_event_holding_id(event.detail_url)
        acq = self.config.acquisition
        offsets = self.page_offsets(category)

        organizer: Optional[str] = None
        rows: list[AcquiredRow] = []
        with self.session.page() as page:
            page.goto(
                event.detail_url,
                wait_until="domcontentloaded",
                timeout=self.session.timeout_ms,
            )
            for idx, offset in enumerate(offsets):
                url = self._query_url(holding_id, category, offset)
                if idx == 0:
                    payload = page.evaluate(_FETCH_JSON_JS, url)
                else:
                    try:
                        payload = page.evaluate(_FETCH_JSON_JS, url)
                    except PlaywrightError as exc:
                        self.logs.info(f"rankings: browser page {idx + 1} failed url={url}: {exc}")
                        continue
                if payload is None:
                    if idx == 0:
                        sample = page.evaluate(_FETCH_SAMPLE_JS, url)
                        self.logs.info(f"rankings: browser first null url={url} sample={sample}")
                    continue
                page_org, page_rows = parse_results_payload(
                    payload,
                    acq.allowed_ranks,
                    acq.per_page,
                    self.config.source.deck_view_url_template,
                )
                if idx == 0:
                    organizer = page_org
                rows.extend(page_rows)

        return AcquisitionResult(organizer=organizer, rows=rows, tier=self.tier_name)

    def _query_url(self, holding_id: str, category: Category, offset: int) -> str:
        params = results_query_params(
            holding_id, category, self.config.acquisition.per_page, offset
        )
        return str(httpx.URL(self.config.source.results_api_url, params=params))


# ── Tier c ────────────────────────────────────────────────────────────────────

class RenderedLinksStrategy(AcquisitionStrategy):
    """Rank deck links on the rendered results page by position."""

    tier_name = "html"

    def __init__(
        self,
        config: AppConfig,
        session: BrowserSession,
        logs: Optional[RunLog] = None,
    ) -> None:
        super().__init__(config, logs)
        self.session = session

    def try_acquire(self, event: TournamentEvent, category: Category) -> AcquisitionResult:
        # Validates the URL even though the id itself is not needed here.
        extract_event_holding_id(event.detail_url)
        plan = self.config.acquisition.bucket_plan

        seen: set[str] = set()
        rows: list[AcquiredRow] = []
        for page_index, offset in enumerate(self.page_offsets(category)):
            if page_index >= len(plan):
                break
            url = results_page_url(event.detail_url, offset)
            if page_index == 0:
                rendered = self.session.render(url, wait_until="networkidle")
            else:
                try:
                    rendered = self.session.render(url, wait_until="networkidle")
                except PlaywrightError as exc:
                    self.logs.info(f"rankings: html page {page_index + 1} failed url={url}: {exc}")
                    continue
            links = extract_deck_links(rendered.html, rendered.url or url)
            self.logs.info(f"rankings: html deck links found={len(links)} url={url}")
            rows.extend(assign_bucket_ranks(links, plan[page_index], seen))

        return AcquisitionResult(organizer=None, rows=rows, tier=self.tier_name)

