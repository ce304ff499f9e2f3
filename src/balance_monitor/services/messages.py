"""Notification text builders (Telegram MarkdownV2)."""
import re
from decimal import Decimal
from urllib.parse import quote

from balance_monitor.db import MonitoredTarget
from balance_monitor.schemas import (ActionButton, BalanceSnapshot,
                                     ButtonsPayload)

_MARKDOWN_V2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown_v2(text: str) -> str:
    """Escape MarkdownV2 special characters."""
    return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", text)


def format_threshold(threshold: Decimal) -> str:
    """Render a threshold without exponent notation or trailing zeros."""
    return format(threshold.normalize(), "f")


def copy_address_button(wallet_address: str) -> ActionButton:
    return ActionButton(
        label="📋 Copy wallet address",
        url=f"https://t.me/share/url?url={quote(wallet_address)}",
    )


def build_balance_alert(
    target: MonitoredTarget, snapshot: BalanceSnapshot, threshold: Decimal
) -> ButtonsPayload:
    """Low-balance alert for one subscriber."""
    symbol = escape_markdown_v2(snapshot.symbol)
    text = (
        f"*{escape_markdown_v2(f'{target.display_name} Alert!')}*\n\n"
        f"*Wallet Address:* `{escape_markdown_v2(snapshot.wallet_address)}`\n"
        f"*Current Balance:* {escape_markdown_v2(snapshot.balance_formatted)} {symbol}\n"
        f"*Alert Threshold:* {escape_markdown_v2(format_threshold(threshold))} {symbol}\n\n"
        f"{escape_markdown_v2('Balance is below the set threshold.')}"
    )
    return ButtonsPayload(text=text, buttons=[copy_address_button(snapshot.wallet_address)])


def build_balance_view(target: MonitoredTarget, snapshot: BalanceSnapshot) -> str:
    """Balance summary for an on-demand balance request."""
    return (
        f"*{escape_markdown_v2(target.display_name)}*\n\n"
        f"*Wallet:* `{escape_markdown_v2(snapshot.wallet_address)}`\n"
        f"*Balance:* {escape_markdown_v2(snapshot.balance_formatted)} "
        f"{escape_markdown_v2(snapshot.symbol)}\n"
        f"*Chain:* {snapshot.chain_id}"
    )
