"""
Deck URL handling and deck-list image resolution.

Deck links appear in several shapes depending on where they were scraped:

  Players site:   https://players.pokemon-card.com/deck/<id>
  Official view:  https://www.pokemon-card.com/deck/confirm.html/deckID/<id>
  Official thumb: https://www.pokemon-card.com/deck/thumbs.html/deckID/<id>/
  Query form:     ...?deckID=<id>

Everything downstream works from the deck id and the canonical
``confirm.html`` URL built from it.

``DeckImageResolver`` turns a deck URL into the URL of the deck-list image by
reading the official thumbs page.  Results (including failures) are kept in
an on-disk cache for a configurable TTL, shared across runs.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Optional
from urllib.parse import parse_qs, urljoin, urlsplit

import httpx
from diskcache import Cache

if TYPE_CHECKING:
    from cityleague_pipeline.config import AppConfig

logger = logging.getLogger(__name__)

OFFICIAL_ORIGIN = "https://www.pokemon-card.com"

_OFFICIAL_PATH_RE = re.compile(r"/deck/(?:confirm|thumbs)\.html/deckID/([A-Za-z0-9_-]+)")
_PLAYERS_PATH_RE = re.compile(r"/deck/([A-Za-z0-9_-]+)(?:/|$)")
_DECK_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_IMAGE_URL_RE = re.compile(r"\.(?:png|jpg|jpeg)(?:\?.*)?$", re.IGNORECASE)
_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+\.(?:png|jpg|jpeg))["']""", re.IGNORECASE)


# ── Deck ids and canonical URLs ───────────────────────────────────────────────

def extract_deck_id(url: Optional[str], origin: str = OFFICIAL_ORIGIN) -> Optional[str]:
    """Pull the deck id out of any supported deck URL shape.

    Relative URLs are resolved against ``origin``.  Returns ``None`` when no
    id can be found.
    """
    if not url:
        return None
    parts = urlsplit(urljoin(origin.rstrip("/") + "/", url.strip()))

    m = _OFFICIAL_PATH_RE.search(parts.path)
    if m:
        return m.group(1)

    query_ids = parse_qs(parts.query).get("deckID")
    if query_ids and _DECK_ID_RE.match(query_ids[0]):
        return query_ids[0]

    m = _PLAYERS_PATH_RE.search(parts.path)
    if m:
        return m.group(1)
    return None


def deck_confirm_url(deck_id: str, origin: str = OFFICIAL_ORIGIN) -> str:
    return f"{origin.rstrip('/')}/deck/confirm.html/deckID/{deck_id}"


def deck_thumbs_url(deck_id: str, origin: str = OFFICIAL_ORIGIN) -> str:
    return f"{origin.rstrip('/')}/deck/thumbs.html/deckID/{deck_id}/"


def canonicalize_deck_url(url: Optional[str], origin: str = OFFICIAL_ORIGIN) -> Optional[str]:
    """Any deck URL → canonical ``confirm.html`` URL, or ``None``."""
    deck_id = extract_deck_id(url, origin)
    return deck_confirm_url(deck_id, origin) if deck_id else None


def looks_like_image_url(url: str) -> bool:
    return bool(_IMAGE_URL_RE.search(url))


def find_first_image_src(html: str, origin: str = OFFICIAL_ORIGIN) -> Optional[str]:
    """Absolute URL of the first png/jpg ``<img>`` in ``html``, or ``None``."""
    m = _IMG_SRC_RE.search(html)
    if not m:
        return None
    return urljoin(origin.rstrip("/") + "/", m.group(1))


# ── Image resolver ────────────────────────────────────────────────────────────

_MISSING = object()


class DeckImageResolver:
    """Resolve deck URLs to deck-list image URLs through an on-disk TTL cache.

    Lookups are keyed by deck id, so every URL shape of the same deck shares
    one entry.  Failed lookups are stored as ``None`` with the same expiry,
    which keeps a dead deck from being refetched on every snapshot build.
    The cache is a ``diskcache.Cache`` directory, so entries outlive the
    process and are shared by every auto-run within the TTL.

    Args:
        cache:      Open cache to use.  One is opened on ``cache_dir`` (and
                    owned) when omitted.
        cache_dir:  Directory for an owned cache.
        client:     httpx client to use.  One is created (and owned) when
                    omitted.
        origin:     Official site origin used for thumbs pages and relative
                    image paths.
        ttl_hours:  Entry lifetime.
        timeout_s:  Request timeout for an owned client.
        user_agent: User-Agent for an owned client.
    """

    def __init__(
        self,
        cache: Optional[Cache] = None,
        cache_dir: str = "data/cache/deck_images",
        client: Optional[httpx.Client] = None,
        origin: str = OFFICIAL_ORIGIN,
        ttl_hours: float = 24.0,
        timeout_s: float = 10.0,
        user_agent: Optional[str] = None,
    ) -> None:
        self._owns_cache = cache is None
        self._cache = cache if cache is not None else Cache(cache_dir)
        self._owns_client = client is None
        if client is None:
            headers = {"User-Agent": user_agent} if user_agent else None
            client = httpx.Client(timeout=timeout_s, headers=headers, follow_redirects=True)
        self._client = client
        self.origin = origin
        self.ttl_s = ttl_hours * 3600

    @classmethod
    def from_config(cls, config: "AppConfig") -> "DeckImageResolver":
        return cls(
            cache_dir=config.snapshot.image_cache_dir,
            origin=config.source.official_origin,
            ttl_hours=config.snapshot.image_cache_ttl_hours,
            timeout_s=config.source.http_timeout_s,
            user_agent=config.source.user_agent,
        )

    def resolve(self, url: Optional[str]) -> Optional[str]:
        """Return the deck-list image URL for ``url``, or ``None``.

        URLs that already point at an image are returned unchanged.  Network
        and HTTP failures resolve to ``None`` and are cached like any other
        result.
        """
        if not url:
            return None
        if looks_like_image_url(url):
            return url

        deck_id = extract_deck_id(url, self.origin)
        key = f"deck:{deck_id}" if deck_id else f"url:{url}"
        cached = self._cache.get(key, default=_MISSING)
        if cached is not _MISSING:
            return cached

        page_url = deck_thumbs_url(deck_id, self.origin) if deck_id else url
        value = self._fetch_image_url(page_url)
        self._cache.set(key, value, expire=self.ttl_s)
        return value

    def _fetch_image_url(self, page_url: str) -> Optional[str]:
        try:
            resp = self._client.get(page_url)
        except httpx.HTTPError as exc:
            logger.debug("Deck image lookup failed for %s: %s", page_url, exc)
            return None
        if not resp.is_success:
            logger.debug("Deck image lookup %s returned HTTP %d", page_url, resp.status_code)
            return None
        return find_first_image_src(resp.text, self.origin)

    def clear(self) -> None:
        self._cache.clear()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
        if self._owns_cache:
            self._cache.close()

    def __enter__(self) -> "DeckImageResolver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
