"""Operational diagnostics delivered to a Discord webhook."""
import json
import logging
from typing import Any

import httpx

from balance_monitor.utils import utcnow

logger = logging.getLogger(__name__)

_COLORS = {"info": 0x3498DB, "warning": 0xF1C40F, "error": 0xFF0000}
_MAX_FIELD_VALUE = 1024
_MAX_FIELDS = 25


def _field_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        text = json.dumps(value, default=str, ensure_ascii=False)
    else:
        text = str(value)
    if len(text) > _MAX_FIELD_VALUE:
        text = text[: _MAX_FIELD_VALUE - 3] + "..."
    return text or "-"


class DiscordAuditSink:
    """AuditSink posting one embed per event to a Discord webhook.

    Best-effort: an unconfigured webhook is a logged no-op and delivery errors
    are logged, never raised.
    """

    def __init__(
        self,
        webhook_url: str | None,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = webhook_url or ""
        self._client = client or httpx.AsyncClient(timeout=timeout)
        if not self._url:
            logger.warning("DISCORD_WEBHOOK_URL not configured; audit events are only logged")

    def build_payload(
        self, title: str, description: str, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        now = utcnow()
        severity = str(metadata.get("severity", "info"))
        fields = [
            {"name": str(key), "value": _field_value(value), "inline": len(str(value)) < 40}
            for key, value in metadata.items()
            if key != "severity"
        ][:_MAX_FIELDS]
        return {
            "embeds": [
                {
                    "title": title,
                    "description": description,
                    "color": _COLORS.get(severity, _COLORS["info"]),
                    "fields": fields,
                    "footer": {"text": "Balance Monitoring System"},
                    "timestamp": now.isoformat(),
                }
            ]
        }

    async def emit(self, title: str, description: str, metadata: dict[str, Any]) -> None:
        logger.info("Audit event: %s - %s", title, description)
        if not self._url:
            return
        try:
            response = await self._client.post(
                self._url, json=self.build_payload(title, description, metadata)
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Failed to send Discord audit event %r: %s", title, exc)

    async def close(self) -> None:
        await self._client.aclose()
