"""Telegram delivery of subscriber notifications."""
import logging

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

from balance_monitor.providers.core.protocols import NotifyResult
from balance_monitor.schemas import ButtonsPayload, NotificationPayload

logger = logging.getLogger(__name__)


def _reply_markup(payload: NotificationPayload) -> InlineKeyboardMarkup | None:
    if not isinstance(payload, ButtonsPayload) or not payload.buttons:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(b.label, url=b.url)] for b in payload.buttons]
    )


class TelegramNotifier:
    """Notifier backed by a python-telegram-bot Bot.

    MarkdownV2 messages rejected by Telegram (BadRequest, usually a formatting
    problem) are retried once as plain text. Any other Telegram error becomes a
    failed NotifyResult.
    """

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(self, subscriber_id: int, payload: NotificationPayload) -> NotifyResult:
        markup = _reply_markup(payload)
        parse_mode = ParseMode.MARKDOWN_V2 if payload.markdown else None
        try:
            try:
                await self._bot.send_message(
                    chat_id=subscriber_id,
                    text=payload.text,
                    parse_mode=parse_mode,
                    reply_markup=markup,
                    disable_web_page_preview=True,
                )
            except BadRequest as exc:
                if parse_mode is None:
                    raise
                logger.warning(
                    "Telegram rejected formatted message for %s (%s); resending as plain text",
                    subscriber_id,
                    exc,
                )
                await self._bot.send_message(
                    chat_id=subscriber_id,
                    text=payload.text,
                    reply_markup=markup,
                    disable_web_page_preview=True,
                )
        except TelegramError as exc:
            logger.error("Failed to send message to %s: %s", subscriber_id, exc)
            return NotifyResult.failure(str(exc))
        return NotifyResult.success()

    async def close(self) -> None:
        await self._bot.shutdown()

    async def initialize(self) -> None:
        try:
            await self._bot.initialize()
        except TelegramError as exc:
            logger.error("Telegram bot initialization failed: %s", exc)


class LogOnlyNotifier:
    """Stand-in used when no bot token is configured: logs and reports failure."""

    async def send(self, subscriber_id: int, payload: NotificationPayload) -> NotifyResult:
        logger.warning("No TELEGRAM_BOT_TOKEN; dropping message for %s", subscriber_id)
        return NotifyResult.failure("telegram bot not configured")

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None


def build_notifier(bot_token: str) -> TelegramNotifier | LogOnlyNotifier:
    """TelegramNotifier for a configured token, LogOnlyNotifier otherwise."""
    if not bot_token:
        logger.warning("TELEGRAM_BOT_TOKEN not configured; subscriber alerts are disabled")
        return LogOnlyNotifier()
    return TelegramNotifier(Bot(bot_token))
