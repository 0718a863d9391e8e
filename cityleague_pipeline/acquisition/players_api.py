"""
Tier a: the structured results search endpoint, queried directly over HTTP.

Endpoint (GET, JSON):
  https://players.pokemon-card.com/event_result_detail_search
    ?event_holding_id=<id>&event_result_category=<open|senior|junior>
    &per_page=8&offset=<0|8>

Response shape (fields used)::

    {
      "event":   {"shopName": "..."},
      "results": [{"rank": 1, "name": "...", "point": 30, "player_id": "...",
                   "area": "...", "deck_id": "..."}, ...]
    }

The site sometimes answers non-2xx or serves an HTML block page instead of
JSON.  On the first page both count as "empty" (logged with a short body
sample) so the ladder moves on to the browser tier.  A later page that fails
in any way, transport errors included, is skipped and the rows already read
are kept.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Optional

import httpx

from cityleague_pipeline.acquisition.base import (
    AcquisitionResult,
    AcquisitionStrategy,
    AcquiredRow,
    extract_event_holding_id,
    parse_results_payload,
    results_query_params,
)
from cityleague_pipeline.config import AppConfig
from cityleague_pipeline.models.event import TournamentEvent
from cityleague_pipeline.taxonomy.categories import Category
from cityleague_pipeline.utils.logging import RunLog

logger = logging.getLogger(__name__)


class PlayersApiStrategy(AcquisitionStrategy):
    """Query the results search endpoint with httpx.

    Args:
        config: Application config (source endpoints, rank allow-list, page size).
        logs:   Run log sink.
        client: Optional httpx client; tests pass one built on ``MockTransport``.
                When omitted a client is created and closed with the strategy.
    """

    tier_name = "api"

    BODY_SAMPLE_CHARS: ClassVar[int] = 120

    def __init__(
        self,
        config: AppConfig,
        logs: Optional[RunLog] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(config, logs)
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=config.source.http_timeout_s,
            follow_redirects=True,
        )

    def try_acquire(self, event: TournamentEvent, category: Category) -> AcquisitionResult:
        holding_id = extract_event_holding_id(event.detail_url)
        headers = self._headers(event.detail_url)

        offsets = self.page_offsets(category)
        first = self._fetch_page(holding_id, category, offsets[0], headers, log_failures=True)
        if first is None:
            return AcquisitionResult(tier=self.tier_name)

        organizer, rows = self._parse(first)
        for page_no, offset in enumerate(offsets[1:], start=2):
            # A failed follow-up page is skipped; the first page already counts.
            try:
                payload = self._fetch_page(holding_id, category, offset, headers, log_failures=False)
            except httpx.HTTPError as exc:
                self.logs.info(
                    f"rankings: api page {page_no} failed eventHoldingId={holding_id} "
                    f"category={category.code}: {exc}"
                )
                continue
            if payload is None:
                continue
            _, more = self._parse(payload)
            rows.extend(more)

        if not rows:
            self.logs.info(
                f"rankings: api empty eventHoldingId={holding_id} category={category.code}"
            )
        logger.debug(
            "api tier: event=%s category=%s rows=%d", event.id, category.code, len(rows)
        )
        return AcquisitionResult(organizer=organizer, rows=rows, tier=self.tier_name)

    # ── HTTP ──────────────────────────────────────────────────────────────────

    def _headers(self, detail_url: str) -> dict[str, str]:
        src = self.config.source
        return {
            "Accept": "application/json",
            "X-Requested-With": "XMLHttpRequest",
            "User-Agent": src.user_agent,
            "Referer": detail_url,
            "Accept-Language": src.accept_language,
        }

    def _fetch_page(
        self,
        holding_id: str,
        category: Category,
        offset: int,
        headers: dict[str, str],
        log_failures: bool,
    ) -> Optional[Any]:
        params = results_query_params(
            holding_id, category, self.config.acquisition.per_page, offset
        )
        resp = self._client.get(self.config.source.results_api_url, params=params, headers=headers)

        if not resp.is_success:
            if log_failures:
                self.logs.info(
                    f"rankings: api non-OK status={resp.status_code} url={resp.url} "
                    f"sample={resp.text[:self.BODY_SAMPLE_CHARS]}"
                )
            return None

        content_type = resp.headers.get("content-type", "")
        if "application/json" not in content_type:
            if log_failures:
                self.logs.info(
                    f"rankings: api non-JSON ct={content_type} url={resp.url} "
                    f"sample={resp.text[:self.BODY_SAMPLE_CHARS]}"
                )
            return None

        try:
            return resp.json()
        except ValueError:
            if log_failures:
                self.logs.info(
                    f"rankings: api undecodable JSON url={resp.url} "
                    f"sample={resp.text[:self.BODY_SAMPLE_CHARS]}"
                )
            return None

    def _parse(self, payload: Any) -> tuple[Optional[str], list[AcquiredRow]]:
        acq = self.config.acquisition
        return parse_results_payload(
            payload,
            acq.allowed_ranks,
            acq.per_page,
            self.config.source.deck_view_url_template,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
