"""Shared fixtures: in-memory database, controllable clock, fake collaborators."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from dependency_injector import providers
from fastapi.testclient import TestClient

from balance_monitor.config import MonitorSettings
from balance_monitor.container import init_container
from balance_monitor.db import build_engine, init_db
from balance_monitor.main import create_app
from balance_monitor.providers.core import BalanceProviderABC
from balance_monitor.providers.core.protocols import NotifyResult
from balance_monitor.schemas import BalanceSnapshot, FailureKind, FetchFailure
from balance_monitor.services import SubscriptionStore, TargetRegistry

WALLET = "0x1111111111111111111111111111111111111111"
USDT = "0x55d398326f99059fF775485246999027B3197955"


class FakeClock:
    """Callable returning a settable UTC time."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def snapshot(formatted: str, wallet: str = WALLET, raw: str | None = None) -> BalanceSnapshot:
    return BalanceSnapshot(
        wallet_address=wallet,
        contract_address=USDT,
        chain_id=56,
        balance=raw or str(int(Decimal(formatted).scaleb(18))),
        balance_formatted=formatted,
        symbol="USDT",
        decimals=18,
    )


def upstream_failure(message: str = "primary: HTTP 502") -> FetchFailure:
    return FetchFailure(
        wallet_address=WALLET,
        contract_address=USDT,
        chain_id=56,
        kind=FailureKind.UPSTREAM,
        transient=True,
        errors=[message],
    )


class FakeProvider(BalanceProviderABC):
    """Returns queued results (the last one repeats) and records every call."""

    def __init__(self, *results: BalanceSnapshot | FetchFailure) -> None:
        self.results = list(results)
        self.calls: list[dict] = []
        self.refreshes = 0

    async def fetch_balance(
        self,
        wallet,
        contract_address,
        chain_id,
        force_refresh=False,
        *,
        decimals=None,
        symbol=None,
    ):
        self.calls.append(
            {"wallet": wallet, "chain_id": chain_id, "force_refresh": force_refresh}
        )
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]

    def error_counts(self) -> dict[str, int]:
        return {"primary": 0}

    async def refresh(self) -> None:
        self.refreshes += 1


class RecordingNotifier:
    """Notifier that records deliveries; subscriber ids in `failing` raise."""

    def __init__(self, failing: set[int] | None = None) -> None:
        self.sent: list[tuple[int, object]] = []
        self.failing = failing or set()

    async def send(self, subscriber_id, payload) -> NotifyResult:
        if subscriber_id in self.failing:
            raise RuntimeError("telegram down")
        self.sent.append((subscriber_id, payload))
        return NotifyResult.success()


class RecordingAudit:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict]] = []

    async def emit(self, title, description, metadata) -> None:
        self.events.append((title, description, metadata))


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(engine, clock) -> SubscriptionStore:
    return SubscriptionStore(engine, clock=clock)


@pytest.fixture
def registry(engine, clock) -> TargetRegistry:
    return TargetRegistry(engine, clock=clock)


@pytest_asyncio.fixture
async def buy_card(registry):
    return await registry.create_target("buy_card", "Buy Card", WALLET, USDT, priority=1)


def make_client(provider: BalanceProviderABC, **overrides) -> TestClient:
    """TestClient over an app wired to in-memory storage and the given provider."""
    values = {
        "etherscan_api_key": "PRIMARYKEY123456",
        "default_wallet_address": WALLET,
        "database_url": "sqlite://",
        "delivery_delay_minutes": 0,
    }
    values.update(overrides)
    container = init_container(MonitorSettings(**values))
    container.balance_provider.override(providers.Object(provider))
    return TestClient(create_app(container, start_scheduler=False))
