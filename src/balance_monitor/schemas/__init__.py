"""Pydantic schemas for API and runtime use. Not persisted to DB."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from balance_monitor.config import (BSC_CHAIN_ID, BSC_USDT_CONTRACT,
                                    MAX_INTERVAL_MINUTES, MIN_INTERVAL_MINUTES,
                                    SECONDARY_MIN_INTERVAL_MINUTES)
from balance_monitor.utils import utcnow


class BalanceSnapshot(BaseModel):
    """One successful balance observation for a wallet/token/chain."""

    wallet_address: str
    contract_address: str
    chain_id: int
    balance: str  # raw on-chain integer, kept as a string
    balance_formatted: str
    symbol: str
    decimals: int
    fetched_at: datetime = Field(default_factory=utcnow)

    @property
    def amount(self) -> Decimal:
        """Exact token amount from the raw integer, for threshold comparisons.

        balance_formatted is truncated for display and must not be compared.
        """
        return Decimal(f"{int(self.balance)}e-{self.decimals}")


class FailureKind(str, Enum):
    CONFIGURATION = "configuration"
    UPSTREAM = "upstream"


class FetchFailure(BaseModel):
    """Why a balance could not be fetched. Never carries a balance value."""

    wallet_address: str
    contract_address: str
    chain_id: int
    kind: FailureKind
    transient: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return "; ".join(self.errors) or self.kind.value


class ActionButton(BaseModel):
    label: str
    url: str


class TextPayload(BaseModel):
    """Plain notification text."""

    kind: Literal["text"] = "text"
    text: str
    markdown: bool = True


class ButtonsPayload(BaseModel):
    """Notification text with URL action buttons (one button per row)."""

    kind: Literal["buttons"] = "buttons"
    text: str
    markdown: bool = True
    buttons: list[ActionButton] = Field(default_factory=list)


NotificationPayload = Annotated[TextPayload | ButtonsPayload, Field(discriminator="kind")]


class SubscriptionRequest(BaseModel):
    """Body for PUT /subscriptions/{subscriber_id}. threshold=0 disables."""

    threshold: Decimal = Field(ge=0)
    interval_minutes: int = 30
    target: str | None = None


class SubscriptionOut(BaseModel):
    subscriber_id: int
    target_name: str
    threshold: Decimal
    interval_minutes: int
    is_active: bool
    last_checked_at: datetime | None = None
    last_alert_at: datetime | None = None
    alert_count: int = 0
    last_balance: str | None = None

    model_config = {"from_attributes": True}


class TargetRequest(BaseModel):
    """Body for POST /targets. Token symbol and decimals default from the contract."""

    name: str = Field(min_length=1, max_length=64, pattern=r"^[a-z0-9_]+$")
    display_name: str
    wallet_address: str
    contract_address: str = BSC_USDT_CONTRACT
    chain_id: int = BSC_CHAIN_ID
    token_symbol: str | None = None
    token_decimals: int | None = Field(default=None, ge=0, le=36)
    priority: int = 0
    description: str = ""
    min_interval_minutes: int = Field(
        default=MIN_INTERVAL_MINUTES,
        ge=SECONDARY_MIN_INTERVAL_MINUTES,
        le=MAX_INTERVAL_MINUTES,
    )


class TargetOut(BaseModel):
    name: str
    display_name: str
    wallet_address: str
    contract_address: str
    chain_id: int
    token_symbol: str
    token_decimals: int
    is_active: bool
    priority: int
    description: str
    min_interval_minutes: int

    model_config = {"from_attributes": True}


class ReminderOutcome(str, Enum):
    SAVED = "saved"
    DISABLED = "disabled"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    ERROR = "error"


class ReminderResult(BaseModel):
    success: bool
    outcome: ReminderOutcome
    message: str
    subscription: SubscriptionOut | None = None


class BreakerState(BaseModel):
    consecutive_failures: int
    last_failure_at: datetime | None = None
    suspended: bool
    escalated: bool


class MonitoringStatus(BaseModel):
    policy: str
    running: bool
    breaker: BreakerState
    credential_errors: dict[str, int]


__all__ = [
    "ActionButton",
    "BalanceSnapshot",
    "BreakerState",
    "ButtonsPayload",
    "FailureKind",
    "FetchFailure",
    "MonitoringStatus",
    "NotificationPayload",
    "ReminderOutcome",
    "ReminderResult",
    "SubscriptionOut",
    "SubscriptionRequest",
    "TextPayload",
]
