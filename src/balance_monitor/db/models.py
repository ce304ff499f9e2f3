"""Database models for the balance monitoring service.

Only subscriptions and monitored targets are persisted. Balance snapshots are
fetched on demand and cached in memory; they are not stored.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, UniqueConstraint
from sqlmodel import Field, SQLModel

from balance_monitor.config import (BSC_CHAIN_ID, BSC_USDT_CONTRACT,
                                    DEFAULT_TARGET_NAME, MIN_INTERVAL_MINUTES)
from balance_monitor.db.types import DecimalString, UTCDateTime
from balance_monitor.utils import utcnow


class MonitoredTarget(SQLModel, table=True):
    """A named wallet + token + chain whose balance is polled (a "partner")."""

    __tablename__ = "monitored_target"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    display_name: str
    wallet_address: str
    contract_address: str = Field(default=BSC_USDT_CONTRACT)
    chain_id: int = Field(default=BSC_CHAIN_ID)
    token_symbol: str = Field(default="USDT")
    token_decimals: int = Field(default=18)
    is_active: bool = Field(default=True)
    priority: int = Field(default=0)  # lower shows first
    description: str = Field(default="")
    min_interval_minutes: int = Field(default=MIN_INTERVAL_MINUTES)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Subscription(SQLModel, table=True):
    """A subscriber's low-balance alert for one monitored target."""

    __tablename__ = "subscription"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "target_name", name="uq_subscriber_target"),
    )

    id: int | None = Field(default=None, primary_key=True)
    subscriber_id: int = Field(index=True, sa_type=BigInteger)
    target_name: str = Field(default=DEFAULT_TARGET_NAME, index=True)
    threshold: Decimal = Field(default=Decimal("0"), sa_type=DecimalString)
    interval_minutes: int = Field(default=MIN_INTERVAL_MINUTES)
    is_active: bool = Field(default=True, index=True)
    last_checked_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    last_alert_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    alert_count: int = Field(default=0)
    last_balance: str | None = None  # formatted string, never a float
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
