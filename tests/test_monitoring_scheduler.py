from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from conftest import (USDT, FakeProvider, RecordingAudit, RecordingNotifier,
                      snapshot, upstream_failure)

from balance_monitor.config import MonitorPolicy
from balance_monitor.schemas import FailureKind, FetchFailure
from balance_monitor.services import CircuitBreaker, MonitoringScheduler
from balance_monitor.services.monitoring_scheduler import TICK_JOB_ID

pytestmark = pytest.mark.asyncio


def make_monitor(
    provider,
    store,
    registry,
    clock,
    *,
    notifier=None,
    audit=None,
    policy=MonitorPolicy.PER_SUBSCRIPTION,
    delay=timedelta(0),
    scheduler=None,
):
    breaker = CircuitBreaker(
        failure_threshold=5,
        cooldown=timedelta(minutes=10),
        escalation_threshold=3,
        clock=clock,
    )
    return MonitoringScheduler(
        provider,
        store,
        registry,
        breaker,
        notifier or RecordingNotifier(),
        audit or RecordingAudit(),
        policy=policy,
        tick_minutes=30,
        delivery_delay=delay,
        scheduler=scheduler or MagicMock(),
        clock=clock,
    )


# ---- per-subscription policy ----


async def test_balance_below_threshold_alerts_once(store, registry, clock, buy_card):
    await store.upsert_subscription(42, Decimal("300"), 30)
    notifier = RecordingNotifier()
    monitor = make_monitor(FakeProvider(snapshot("250")), store, registry, clock, notifier=notifier)

    clock.advance(minutes=30)
    report = await monitor.run_tick()

    assert report.alerts_sent == 1
    assert report.fetched == ["buy_card"]
    assert [sid for sid, _ in notifier.sent] == [42]
    sub = await store.get_subscription(42)
    assert sub.alert_count == 1
    assert sub.last_checked_at == clock.now
    assert sub.last_balance == "250"

    # same instant: not due again
    again = await monitor.run_tick()
    assert again.alerts_sent == 0
    assert len(notifier.sent) == 1


async def test_balance_above_threshold_only_records_check(store, registry, clock, buy_card):
    await store.upsert_subscription(42, Decimal("300"), 30)
    notifier = RecordingNotifier()
    monitor = make_monitor(FakeProvider(snapshot("400")), store, registry, clock, notifier=notifier)

    clock.advance(minutes=30)
    report = await monitor.run_tick()

    assert report.alerts_sent == 0
    assert notifier.sent == []
    sub = await store.get_subscription(42)
    assert sub.alert_count == 0
    assert sub.last_checked_at == clock.now
    assert sub.last_balance == "400"


async def test_fetch_failure_never_alerts_or_touches_bookkeeping(store, registry, clock, buy_card):
    subscribed_at = clock.now
    await store.upsert_subscription(42, Decimal("300"), 30)
    notifier = RecordingNotifier()
    monitor = make_monitor(FakeProvider(upstream_failure()), store, registry, clock, notifier=notifier)

    clock.advance(minutes=30)
    report = await monitor.run_tick()

    assert report.failed == ["buy_card"]
    assert notifier.sent == []
    sub = await store.get_subscription(42)
    assert sub.last_checked_at == subscribed_at
    assert sub.alert_count == 0
    assert monitor.breaker.consecutive_failures == 1


async def test_threshold_compared_against_exact_balance(store, registry, clock, buy_card):
    # 1.0000005 displays as "1" but is above the 1.0000001 threshold
    await store.upsert_subscription(42, Decimal("1.0000001"), 30)
    notifier = RecordingNotifier()
    exact = snapshot("1", raw="1000000500000000000")
    monitor = make_monitor(FakeProvider(exact), store, registry, clock, notifier=notifier)

    clock.advance(minutes=30)
    report = await monitor.run_tick()

    assert report.alerts_sent == 0
    assert notifier.sent == []
    sub = await store.get_subscription(42)
    assert sub.last_balance == "1"


async def test_subscription_checked_on_its_own_cadence(store, registry, clock, buy_card):
    await store.upsert_subscription(42, Decimal("300"), 60)
    provider = FakeProvider(snapshot("250"))
    monitor = make_monitor(provider, store, registry, clock)

    clock.advance(minutes=30)
    await monitor.run_tick()
    assert provider.calls == []

    clock.advance(minutes=30)
    report = await monitor.run_tick()
    assert len(provider.calls) == 1
    assert report.alerts_sent == 1


async def test_one_fetch_per_target_per_tick(store, registry, clock, buy_card):
    await store.upsert_subscription(1, Decimal("300"), 30)
    await store.upsert_subscription(2, Decimal("100"), 30)
    provider = FakeProvider(snapshot("250"))
    monitor = make_monitor(provider, store, registry, clock)

    clock.advance(minutes=30)
    report = await monitor.run_tick()

    assert len(provider.calls) == 1
    assert provider.calls[0]["force_refresh"] is False
    assert report.alerts_sent == 1  # only subscriber 1 is above 250


async def test_failing_notifier_does_not_stop_other_deliveries(store, registry, clock, buy_card):
    await store.upsert_subscription(1, Decimal("300"), 30)
    await store.upsert_subscription(2, Decimal("300"), 30)
    notifier = RecordingNotifier(failing={1})
    monitor = make_monitor(FakeProvider(snapshot("250")), store, registry, clock, notifier=notifier)

    clock.advance(minutes=30)
    report = await monitor.run_tick()

    assert report.alerts_sent == 1
    assert [sid for sid, _ in notifier.sent] == [2]
    first = await store.get_subscription(1)
    assert first.alert_count == 0
    assert first.last_checked_at == clock.now


async def test_unknown_target_is_skipped(store, registry, clock, buy_card):
    await store.upsert_subscription(1, Decimal("300"), 30, target_name="ghost")
    provider = FakeProvider(snapshot("250"))
    monitor = make_monitor(provider, store, registry, clock)

    clock.advance(minutes=30)
    report = await monitor.run_tick()
    assert provider.calls == []
    assert report.alerts_sent == 0


# ---- circuit breaker integration ----


async def test_open_breaker_skips_tick(store, registry, clock, buy_card):
    await store.upsert_subscription(42, Decimal("300"), 30)
    provider = FakeProvider(snapshot("250"))
    monitor = make_monitor(provider, store, registry, clock)
    clock.advance(minutes=30)
    for _ in range(5):
        monitor.breaker.record_failure()

    clock.advance(minutes=5)
    report = await monitor.run_tick()
    assert report.skipped is True
    assert provider.calls == []

    clock.advance(minutes=10)
    report = await monitor.run_tick()
    assert report.skipped is False
    assert len(provider.calls) == 1


async def test_escalation_is_sent_once(store, registry, clock, buy_card):
    await store.upsert_subscription(42, Decimal("300"), 30)
    audit = RecordingAudit()
    monitor = make_monitor(FakeProvider(upstream_failure()), store, registry, clock, audit=audit)

    clock.advance(minutes=30)
    for _ in range(4):
        await monitor.run_tick()

    assert len(audit.events) == 1
    title, _, metadata = audit.events[0]
    assert title == "Balance monitoring degraded"
    assert metadata["affected_users"] == 1
    assert metadata["user_details"][0]["subscriber_id"] == 42
    assert metadata["consecutive_failures"] == 3


async def test_configuration_failure_does_not_trip_breaker(store, registry, clock, buy_card):
    await store.upsert_subscription(42, Decimal("300"), 30)
    misconfigured = FetchFailure(
        wallet_address="",
        contract_address=USDT,
        chain_id=56,
        kind=FailureKind.CONFIGURATION,
        errors=["missing wallet address"],
    )
    monitor = make_monitor(FakeProvider(misconfigured), store, registry, clock)

    clock.advance(minutes=30)
    report = await monitor.run_tick()
    assert report.failed == ["buy_card"]
    assert monitor.breaker.consecutive_failures == 0


async def test_provider_exception_counts_as_failure(store, registry, clock, buy_card):
    class ExplodingProvider(FakeProvider):
        async def fetch_balance(self, *args, **kwargs):
            raise RuntimeError("boom")

    await store.upsert_subscription(42, Decimal("300"), 30)
    notifier = RecordingNotifier()
    monitor = make_monitor(ExplodingProvider(), store, registry, clock, notifier=notifier)

    clock.advance(minutes=30)
    report = await monitor.run_tick()
    assert report.failed == ["buy_card"]
    assert notifier.sent == []
    assert monitor.breaker.consecutive_failures == 1


# ---- fanout policy ----


async def test_fanout_schedules_delayed_delivery(store, registry, clock, buy_card):
    await store.upsert_subscription(42, Decimal("300"), 30)
    provider = FakeProvider(snapshot("250"))
    scheduler = MagicMock()
    notifier = RecordingNotifier()
    monitor = make_monitor(
        provider,
        store,
        registry,
        clock,
        notifier=notifier,
        policy=MonitorPolicy.FANOUT,
        delay=timedelta(minutes=5),
        scheduler=scheduler,
    )

    clock.advance(minutes=25, seconds=17)
    report = await monitor.run_tick()

    assert report.scheduled == ["buy_card"]
    assert provider.calls[0]["force_refresh"] is True
    assert notifier.sent == []
    job_args, job_kwargs = scheduler.add_job.call_args
    assert job_args[0] == monitor.deliver_notifications
    assert job_args[1] == "date"
    target_name, snap, check_at = job_kwargs["args"]
    assert check_at == clock.now + timedelta(minutes=5)

    clock.advance(minutes=5)
    sent = await monitor.deliver_notifications(target_name, snap, check_at)
    assert sent == 1
    sub = await store.get_subscription(42)
    assert sub.last_checked_at == check_at
    assert sub.alert_count == 1


async def test_fanout_only_delivers_to_due_subscriptions(store, registry, clock, buy_card):
    await store.upsert_subscription(1, Decimal("300"), 30)
    clock.advance(minutes=20)
    await store.upsert_subscription(2, Decimal("300"), 30)
    notifier = RecordingNotifier()
    monitor = make_monitor(
        FakeProvider(snapshot("250")),
        store,
        registry,
        clock,
        notifier=notifier,
        policy=MonitorPolicy.FANOUT,
    )

    clock.advance(minutes=10)
    report = await monitor.run_tick()

    assert report.alerts_sent == 1
    assert [sid for sid, _ in notifier.sent] == [1]


async def test_fanout_failure_schedules_nothing(store, registry, clock, buy_card):
    await store.upsert_subscription(42, Decimal("300"), 30)
    scheduler = MagicMock()
    monitor = make_monitor(
        FakeProvider(upstream_failure()),
        store,
        registry,
        clock,
        policy=MonitorPolicy.FANOUT,
        delay=timedelta(minutes=5),
        scheduler=scheduler,
    )

    clock.advance(minutes=30)
    report = await monitor.run_tick()
    assert report.failed == ["buy_card"]
    scheduler.add_job.assert_not_called()


# ---- lifecycle ----


async def test_start_registers_tick_job(store, registry, clock):
    scheduler = MagicMock()
    scheduler.get_job.return_value = None
    scheduler.running = False
    monitor = make_monitor(FakeProvider(snapshot("1")), store, registry, clock, scheduler=scheduler)

    monitor.start()

    args, kwargs = scheduler.add_job.call_args
    assert args == (monitor._scheduled_tick, "interval")
    assert kwargs["minutes"] == 30
    assert kwargs["id"] == TICK_JOB_ID
    assert kwargs["max_instances"] == 1
    assert kwargs["start_date"].second == 0
    scheduler.start.assert_called_once()

    scheduler.running = True
    monitor.shutdown()
    scheduler.shutdown.assert_called_once_with(wait=False)


async def test_status_reports_breaker_and_policy(store, registry, clock):
    scheduler = MagicMock()
    scheduler.running = False
    monitor = make_monitor(FakeProvider(snapshot("1")), store, registry, clock, scheduler=scheduler)
    monitor.breaker.record_failure()

    status = monitor.status()
    assert status.policy == "per_subscription"
    assert status.running is False
    assert status.breaker.consecutive_failures == 1
    assert status.credential_errors == {"primary": 0}


async def test_manual_run_mid_minute_does_not_advance_next_check(store, registry, clock, buy_card):
    await store.upsert_subscription(42, Decimal("300"), 30)
    scheduler = MagicMock()
    scheduler.get_job.return_value = None
    scheduler.running = False
    provider = FakeProvider(snapshot("250"))
    monitor = make_monitor(provider, store, registry, clock, scheduler=scheduler)
    monitor.start()
    scheduled_tick = scheduler.add_job.call_args[0][0]

    clock.advance(minutes=30, seconds=40)
    manual = await monitor.run_tick()
    assert manual.alerts_sent == 1
    sub = await store.get_subscription(42)
    assert sub.last_checked_at == clock.now

    # next boundary is only 29m20s after the manual check
    clock.advance(minutes=29, seconds=25)
    report = await scheduled_tick()
    assert report.cycle_at.second == 0
    assert report.alerts_sent == 0
    assert len(provider.calls) == 1

    clock.advance(minutes=30)
    report = await scheduled_tick()
    assert report.alerts_sent == 1
