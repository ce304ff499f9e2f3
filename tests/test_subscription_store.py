from datetime import timedelta, timezone
from decimal import Decimal

import pytest
from sqlmodel import select

from balance_monitor.db import Subscription, build_engine, get_session
from balance_monitor.services import SubscriptionStore
from balance_monitor.utils import utcnow


@pytest.mark.asyncio
async def test_upsert_is_idempotent_per_key(store, engine, clock):
    await store.upsert_subscription(42, Decimal("300"), 30)
    clock.advance(minutes=5)
    sub = await store.upsert_subscription(42, Decimal("500"), 60)

    assert sub.threshold == Decimal("500")
    assert sub.interval_minutes == 60
    assert sub.last_checked_at == clock.now
    with get_session(engine) as session:
        rows = session.exec(select(Subscription)).all()
    assert len(rows) == 1
    assert rows[0].target_name == "buy_card"


@pytest.mark.asyncio
async def test_same_subscriber_on_two_targets(store):
    await store.upsert_subscription(42, Decimal("300"), 30)
    await store.upsert_subscription(42, Decimal("10"), 60, target_name="partner_a")

    assert len(await store.list_active()) == 2
    assert [s.target_name for s in await store.list_active("partner_a")] == ["partner_a"]
    assert await store.active_target_names() == ["buy_card", "partner_a"]


@pytest.mark.asyncio
async def test_deactivate_keeps_row_and_reports_flip(store):
    await store.upsert_subscription(7, Decimal("300"), 30)

    assert await store.deactivate(7) is True
    assert await store.deactivate(7) is False
    assert await store.deactivate(999) is False
    assert await store.list_active() == []

    sub = await store.get_subscription(7)
    assert sub is not None
    assert sub.is_active is False


@pytest.mark.asyncio
async def test_upsert_reactivates(store):
    await store.upsert_subscription(7, Decimal("300"), 30)
    await store.deactivate(7)
    sub = await store.upsert_subscription(7, Decimal("300"), 30)
    assert sub.is_active is True
    assert len(await store.list_active()) == 1


@pytest.mark.asyncio
async def test_record_check_and_alert(store, clock):
    await store.upsert_subscription(7, Decimal("300"), 30)
    clock.advance(minutes=30)

    await store.record_check(7, "250")
    await store.record_alert(7)
    await store.record_alert(7)

    sub = await store.get_subscription(7)
    assert sub.last_checked_at == clock.now
    assert sub.last_alert_at == clock.now
    assert sub.last_balance == "250"
    assert sub.alert_count == 2


@pytest.mark.asyncio
async def test_record_check_with_explicit_time(store, clock):
    await store.upsert_subscription(7, Decimal("300"), 30)
    at = clock.now.replace(hour=13)
    await store.record_check(7, "1", checked_at=at)
    assert (await store.get_subscription(7)).last_checked_at == at


@pytest.mark.asyncio
async def test_storage_errors_return_safe_defaults():
    broken = build_engine("sqlite://")  # tables never created
    store = SubscriptionStore(broken)

    assert await store.upsert_subscription(1, Decimal("1"), 30) is None
    assert await store.get_subscription(1) is None
    assert await store.deactivate(1) is False
    assert await store.list_active() == []
    assert await store.active_target_names() == []
    await store.record_check(1, "1")
    await store.record_alert(1)
    broken.dispose()


@pytest.mark.asyncio
async def test_real_clock_round_trips_aware_timestamps(engine):
    store = SubscriptionStore(engine)
    before = utcnow()

    saved = await store.upsert_subscription(42, Decimal("300"), 30)
    assert saved is not None
    await store.record_check(42, "250")
    await store.record_alert(42)

    sub = await store.get_subscription(42)
    assert sub.last_checked_at.tzinfo == timezone.utc
    assert before <= sub.last_checked_at <= utcnow()
    assert utcnow() - sub.last_alert_at < timedelta(minutes=1)
    assert sub.alert_count == 1


@pytest.mark.asyncio
async def test_threshold_keeps_every_digit(store):
    threshold = Decimal("123456789012345678.5")
    await store.upsert_subscription(42, threshold, 30)
    small = Decimal("1.0000000000000001")
    await store.upsert_subscription(43, small, 30)

    assert (await store.get_subscription(42)).threshold == threshold
    assert (await store.get_subscription(43)).threshold == small
