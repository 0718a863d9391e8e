"""
Run notifications to a Slack incoming webhook.

Only the message contract matters to the pipeline: a short text with the
target day, events and rankings by category, and the deckable/total parity.
Delivery is best-effort.  Failures are logged and never raised, and with no
webhook configured nothing is sent.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import httpx

from cityleague_pipeline.config import NotifyConfig
from cityleague_pipeline.models.meta import SummaryCounts

logger = logging.getLogger(__name__)


# ── Message builders ──────────────────────────────────────────────────────────

def _stamp(at: Optional[datetime]) -> str:
    return at.strftime("%Y-%m-%d %H:%M:%S") if at else ""


def format_empty_day_message(date_label: str, at: Optional[datetime] = None) -> str:
    """Message for a run whose Probe matched no events."""
    return "\n".join([
        f"🃏 City League auto-run finished (no events) ({_stamp(at)})",
        f"• Target day: {date_label}",
        "• Events collected: 0",
    ])


def format_summary_message(
    date_label: str,
    counts: SummaryCounts,
    at: Optional[datetime] = None,
) -> str:
    """Message for a completed run."""
    ev = counts.events_by_category
    rk = counts.rankings_by_category
    return "\n".join([
        f"🃏 City League auto-run finished ({_stamp(at)})",
        f"• Target day: {date_label}",
        (
            f"• Events: total {ev.get('total', 0)} "
            f"(open: {ev.get('open', 0)} / senior: {ev.get('senior', 0)} / junior: {ev.get('junior', 0)})"
        ),
        (
            f"• Rankings: total {rk.get('total', 0)} "
            f"(open: {rk.get('open', 0)} / senior: {rk.get('senior', 0)} / junior: {rk.get('junior', 0)})"
        ),
        f"• Parity: deckable {counts.deckable_rankings} / total {counts.rankings_total}",
    ])


# ── Delivery ──────────────────────────────────────────────────────────────────

class SlackNotifier:
    """POST ``{"text": ...}`` to a webhook.

    Args:
        webhook_url: Incoming webhook URL; ``None`` disables sending.
        timeout_s:   Request timeout.
        client:      Optional httpx client (tests pass one on ``MockTransport``).
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_s: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout_s = timeout_s
        self._client = client

    @classmethod
    def from_config(cls, config: NotifyConfig, client: Optional[httpx.Client] = None) -> "SlackNotifier":
        return cls(config.slack_webhook_url, config.timeout_s, client)

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def send(self, text: str) -> bool:
        """Send one message.  Returns ``True`` only on a 2xx response."""
        if not self.enabled:
            logger.debug("Slack webhook not configured; skipping notification.")
            return False
        try:
            if self._client is not None:
                resp = self._client.post(self.webhook_url, json={"text": text})
            else:
                resp = httpx.post(self.webhook_url, json={"text": text}, timeout=self.timeout_s)
        except httpx.HTTPError as exc:
            logger.warning("Slack notification failed: %s", exc)
            return False
        if not resp.is_success:
            logger.warning("Slack notification returned HTTP %d", resp.status_code)
            return False
        return True
