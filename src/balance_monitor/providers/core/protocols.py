"""Protocols for collaborators used by providers and services."""
from dataclasses import dataclass
from typing import Any, Protocol

from balance_monitor.schemas import NotificationPayload


@dataclass(frozen=True)
class NotifyResult:
    """Outcome of a notification delivery; error is set when ok is False."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> "NotifyResult":
        return cls(True)

    @classmethod
    def failure(cls, error: str) -> "NotifyResult":
        return cls(False, error)


class AuditSink(Protocol):
    """Operational diagnostics channel (e.g. a Discord webhook).

    Best-effort: implementations swallow and log their own failures.
    """

    async def emit(
        self, title: str, description: str, metadata: dict[str, Any]
    ) -> None:
        """Publish one diagnostic event."""
        ...


class Notifier(Protocol):
    """Delivers messages to subscribers (e.g. a Telegram bot).

    Delivery errors come back as NotifyResult.failure instead of exceptions.
    """

    async def send(
        self, subscriber_id: int, payload: NotificationPayload
    ) -> NotifyResult:
        """Send one message to a subscriber."""
        ...
