"""Runtime settings read from environment variables."""
import os
from enum import Enum

from pydantic import BaseModel, Field, field_validator

DEFAULT_TARGET_NAME = "buy_card"
BSC_CHAIN_ID = 56
BSC_USDT_CONTRACT = "0x55d398326f99059fF775485246999027B3197955"

MIN_INTERVAL_MINUTES = 30
SECONDARY_MIN_INTERVAL_MINUTES = 5
MAX_INTERVAL_MINUTES = 1440

# Cache entries must expire before the shortest supported check interval.
SHORTEST_CHECK_INTERVAL_SECONDS = SECONDARY_MIN_INTERVAL_MINUTES * 60


class MonitorPolicy(str, Enum):
    """How the scheduler turns fetched balances into alerts."""

    FANOUT = "fanout"  # fetch once per target, deliver after a fixed delay
    PER_SUBSCRIPTION = "per_subscription"  # each subscription on its own cadence


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


class MonitorSettings(BaseModel):
    """All tunables for the monitoring engine.

    Defaults mirror production values; every field can be overridden through the
    environment (see from_env) or directly in tests.
    """

    etherscan_api_key: str = ""
    etherscan_api_key_2: str = ""
    etherscan_base_url: str = "https://api.etherscan.io/v2/api"
    http_timeout_seconds: float = 10.0

    default_wallet_address: str = ""
    default_contract_address: str = BSC_USDT_CONTRACT
    default_chain_id: int = BSC_CHAIN_ID

    telegram_bot_token: str = ""
    discord_webhook_url: str = ""

    database_url: str = "sqlite:///./balance_monitor.db"
    sql_echo: bool = False

    policy: MonitorPolicy = MonitorPolicy.FANOUT
    tick_minutes: int = Field(default=30, ge=1)
    delivery_delay_minutes: float = Field(default=5.0, ge=0)
    cache_ttl_seconds: float = Field(default=240.0, gt=0)

    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_cooldown_minutes: float = Field(default=10.0, gt=0)
    breaker_escalation_threshold: int = Field(default=3, ge=1)

    @field_validator("cache_ttl_seconds")
    @classmethod
    def _ttl_below_shortest_interval(cls, value: float) -> float:
        if value >= SHORTEST_CHECK_INTERVAL_SECONDS:
            raise ValueError(
                f"cache_ttl_seconds must be below {SHORTEST_CHECK_INTERVAL_SECONDS}s"
            )
        return value

    @property
    def api_keys(self) -> list[str]:
        """Configured Etherscan keys in failover order (empty values dropped)."""
        return [k for k in (self.etherscan_api_key, self.etherscan_api_key_2) if k]

    @classmethod
    def from_env(cls) -> "MonitorSettings":
        """Build settings from the process environment."""
        return cls(
            etherscan_api_key=os.getenv("ETHERSCAN_API_KEY", ""),
            etherscan_api_key_2=os.getenv("ETHERSCAN_API_KEY_2", ""),
            etherscan_base_url=os.getenv(
                "ETHERSCAN_BASE_URL", "https://api.etherscan.io/v2/api"
            ),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 10.0),
            default_wallet_address=os.getenv("ADDRESS_BUY_CARD", ""),
            default_contract_address=os.getenv("CONTRACT_ADDRESS_USDT")
            or BSC_USDT_CONTRACT,
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            discord_webhook_url=os.getenv("DISCORD_WEBHOOK_URL", ""),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./balance_monitor.db"),
            sql_echo=os.getenv("SQL_ECHO", "0") == "1",
            policy=MonitorPolicy(os.getenv("MONITOR_POLICY", MonitorPolicy.FANOUT.value)),
            tick_minutes=_env_int("MONITOR_TICK_MINUTES", 30),
            delivery_delay_minutes=_env_float("MONITOR_DELIVERY_DELAY_MINUTES", 5.0),
            cache_ttl_seconds=_env_float("BALANCE_CACHE_TTL_SECONDS", 240.0),
            breaker_failure_threshold=_env_int("BREAKER_FAILURE_THRESHOLD", 5),
            breaker_cooldown_minutes=_env_float("BREAKER_COOLDOWN_MINUTES", 10.0),
            breaker_escalation_threshold=_env_int("BREAKER_ESCALATION_THRESHOLD", 3),
        )
