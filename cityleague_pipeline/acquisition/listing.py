"""
Event listing parsing and the rendered listing source used by the Probe.

The listing page is a paginated feed (``?offset=20``, ``40``, ...) of event
cards.  Its visible text, split into non-empty lines, has a stable shape per
card::

    3/7（金）            <- date line, weekday in full-width parentheses
    <time / status>
    <venue>              <- date line + 2
    <title>              <- date line + 3

Each card has exactly one ``/event/detail/<id>`` link, so the n-th date line
pairs with the n-th detail anchor on the page.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from cityleague_pipeline.acquisition.browser import BrowserSession, RenderedPage

logger = logging.getLogger(__name__)

_DATE_LINE_RE = re.compile(r"(\d{1,2}/\d{1,2})（.）")
_DETAIL_PATH = "/event/detail/"


@dataclass(frozen=True)
class ListingEntry:
    """One event card from the listing.

    Attributes:
        date_label: ``M/D`` exactly as shown (leading zeros possible).
        location:   Venue line.
        title:      Event title line.
        detail_url: Absolute detail URL paired by position, or ``None``.
    """

    date_label: str
    location: str
    title: str
    detail_url: Optional[str]


def listing_page_url(listing_url: str, offset: int) -> str:
    """The first page is the bare listing URL; later pages add ``offset``."""
    if offset <= 0:
        return listing_url
    return str(httpx.URL(listing_url).copy_merge_params({"offset": str(offset)}))


def page_text_lines(page: RenderedPage) -> list[str]:
    """Non-empty, stripped lines of the page's visible text.

    Uses the browser's rendered body text when captured, otherwise the HTML
    text content with scripts and styles removed.
    """
    text = page.text
    if text is None:
        soup = BeautifulSoup(page.html, "html.parser")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        text = (soup.body or soup).get_text("\n")
    return [line.strip() for line in text.splitlines() if line.strip()]


def detail_anchors(html: str, base_url: str) -> list[str]:
    """Absolute hrefs of all anchors pointing at an event detail page, in order."""
    soup = BeautifulSoup(html, "html.parser")
    out: list[str] = []
    for a in soup.find_all("a", href=True):
        href = urljoin(base_url, a["href"])
        if _DETAIL_PATH in href:
            out.append(href)
    return out


def parse_listing_page(page: RenderedPage) -> list[ListingEntry]:
    """Extract every event card on one rendered listing page.

    Returns all cards regardless of date; callers filter by target day.
    """
    lines = page_text_lines(page)
    anchors = detail_anchors(page.html, page.url)

    entries: list[ListingEntry] = []
    link_index = 0
    for i in range(len(lines) - 3):
        m = _DATE_LINE_RE.search(lines[i])
        if not m:
            continue
        entries.append(
            ListingEntry(
                date_label=m.group(1),
                location=lines[i + 2],
                title=lines[i + 3],
                detail_url=anchors[link_index] if link_index < len(anchors) else None,
            )
        )
        link_index += 1
    return entries


# ── Sources ───────────────────────────────────────────────────────────────────

class ListingSource(ABC):
    """Produces rendered listing pages for the Probe."""

    @abstractmethod
    def fetch(self, url: str) -> RenderedPage:
        ...

    def close(self) -> None:
        """Release any held resources."""


class PlaywrightListingSource(ListingSource):
    """Render listing pages in the shared browser session (``networkidle``)."""

    def __init__(self, session: BrowserSession) -> None:
        self.session = session

    def fetch(self, url: str) -> RenderedPage:
        logger.debug("Rendering listing page %s", url)
        return self.session.render(url, wait_until="networkidle")
