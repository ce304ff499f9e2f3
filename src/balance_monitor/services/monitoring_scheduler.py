"""Periodic balance monitoring: fetch balances, evaluate thresholds, notify.

Two operator-selectable policies:

- fanout: every tick fetches each monitored target once (forced refresh) and
  schedules a delayed delivery job that evaluates all of that target's
  subscriptions against the fetched snapshot.
- per_subscription: every tick walks the active subscriptions and checks the
  ones whose own interval has elapsed, alerting immediately.

Both policies share the same guarantees: a subscription is never checked more
often than its interval, a failed fetch never produces an alert or touches
bookkeeping, and a failing notifier never stops the remaining deliveries.
Scheduled ticks are stamped with their nominal whole-minute time so
consecutive fixed-period cycles compare exactly; manual runs are stamped with
the real time, so they can never pull the next check forward.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from balance_monitor.config import MonitorPolicy
from balance_monitor.db import MonitoredTarget, Subscription
from balance_monitor.providers.core import BalanceProviderABC
from balance_monitor.providers.core.protocols import AuditSink, Notifier
from balance_monitor.schemas import (BalanceSnapshot, FailureKind,
                                     FetchFailure, MonitoringStatus)
from balance_monitor.services.circuit_breaker import CircuitBreaker
from balance_monitor.services.messages import (build_balance_alert,
                                               format_threshold)
from balance_monitor.services.subscription_store import SubscriptionStore
from balance_monitor.services.target_registry import TargetRegistry
from balance_monitor.utils import utcnow

logger = logging.getLogger(__name__)

TICK_JOB_ID = "balance-monitor-tick"
_MAX_LISTED_SUBSCRIBERS = 10


@dataclass
class TickReport:
    """What one scheduler tick did."""

    cycle_at: datetime
    skipped: bool = False
    fetched: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    scheduled: list[str] = field(default_factory=list)
    alerts_sent: int = 0


def _minute(ts: datetime) -> datetime:
    return ts.replace(second=0, microsecond=0)


def is_due(subscription: Subscription, at: datetime) -> bool:
    """Whether the subscription's own check interval has elapsed at `at`."""
    if subscription.last_checked_at is None:
        return True
    return at - subscription.last_checked_at >= timedelta(
        minutes=subscription.interval_minutes
    )


class MonitoringScheduler:
    """Drives balance checks on a fixed cadence with circuit breaking."""

    def __init__(
        self,
        provider: BalanceProviderABC,
        store: SubscriptionStore,
        registry: TargetRegistry,
        breaker: CircuitBreaker,
        notifier: Notifier,
        audit: AuditSink,
        *,
        policy: MonitorPolicy = MonitorPolicy.FANOUT,
        tick_minutes: int = 30,
        delivery_delay: timedelta = timedelta(minutes=5),
        scheduler: AsyncIOScheduler | None = None,
        clock=utcnow,
    ) -> None:
        self._provider = provider
        self._store = store
        self._registry = registry
        self._breaker = breaker
        self._notifier = notifier
        self._audit = audit
        self.policy = MonitorPolicy(policy)
        self.tick_minutes = tick_minutes
        self.delivery_delay = delivery_delay
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._clock = clock

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        """Register the periodic tick and start the underlying scheduler."""
        if self._scheduler.get_job(TICK_JOB_ID) is None:
            now = datetime.now(timezone.utc)
            first_run = _minute(now) + timedelta(minutes=1)
            self._scheduler.add_job(
                self._scheduled_tick,
                "interval",
                minutes=self.tick_minutes,
                start_date=first_run,
                id=TICK_JOB_ID,
                coalesce=True,
                max_instances=1,
            )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(
            "Balance monitoring started: policy=%s, every %d min",
            self.policy.value,
            self.tick_minutes,
        )

    def shutdown(self) -> None:
        """Stop the scheduler. Pending delayed deliveries are dropped."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Balance monitoring stopped")

    def status(self) -> MonitoringStatus:
        return MonitoringStatus(
            policy=self.policy.value,
            running=self.running,
            breaker=self._breaker.state(),
            credential_errors=self._provider.error_counts(),
        )

    async def _scheduled_tick(self) -> TickReport:
        # interval jobs start on a minute boundary and fire within the minute
        return await self.run_tick(_minute(self._clock()))

    async def run_tick(self, cycle_at: datetime | None = None) -> TickReport:
        """Run one monitoring cycle under the configured policy.

        cycle_at stamps the checks of this cycle; defaults to the current time.
        """
        report = TickReport(cycle_at=cycle_at or self._clock())
        if self._breaker.is_suspended():
            logger.debug("Skipping monitoring tick: upstream API circuit is open")
            report.skipped = True
            return report
        if self.policy is MonitorPolicy.PER_SUBSCRIPTION:
            await self._run_per_subscription(report)
        else:
            await self._run_fanout(report)
        return report

    # ---- fanout policy ----

    async def _run_fanout(self, report: TickReport) -> None:
        for name in await self._store.active_target_names():
            target = await self._registry.get_target(name)
            if target is None:
                logger.warning("Subscriptions reference unknown or inactive target %s", name)
                continue
            result = await self._fetch(target, force_refresh=True)
            if isinstance(result, FetchFailure):
                report.failed.append(name)
                continue
            report.fetched.append(name)
            check_at = report.cycle_at + self.delivery_delay
            if self.delivery_delay <= timedelta(0):
                report.alerts_sent += await self.deliver_notifications(name, result, check_at)
            else:
                self._schedule_delivery(name, result, check_at)
                report.scheduled.append(name)

    def _schedule_delivery(
        self, target_name: str, snapshot: BalanceSnapshot, check_at: datetime
    ) -> None:
        run_date = datetime.now(timezone.utc) + self.delivery_delay
        self._scheduler.add_job(
            self.deliver_notifications,
            "date",
            run_date=run_date,
            args=[target_name, snapshot, check_at],
            id=f"deliver-{target_name}-{check_at:%Y%m%d%H%M}",
            replace_existing=True,
            misfire_grace_time=int(self.delivery_delay.total_seconds()) or None,
        )
        logger.debug(
            "Scheduled %s notifications in %s", target_name, self.delivery_delay
        )

    async def deliver_notifications(
        self,
        target_name: str,
        snapshot: BalanceSnapshot,
        check_at: datetime | None = None,
    ) -> int:
        """Evaluate every due subscription of a target against a fetched snapshot.

        Returns the number of alerts delivered.
        """
        check_at = check_at or self._clock()
        target = await self._registry.get_target(target_name)
        if target is None:
            logger.warning("Target %s disappeared before delivery; skipping", target_name)
            return 0
        sent = 0
        for sub in await self._store.list_active(target_name):
            if not is_due(sub, check_at):
                continue
            if await self._evaluate(target, sub, snapshot, check_at):
                sent += 1
        logger.info("Delivered %d %s alert(s) at %s", sent, target_name, snapshot.balance_formatted)
        return sent

    # ---- per-subscription policy ----

    async def _run_per_subscription(self, report: TickReport) -> None:
        # one fetch per target per tick; later subscriptions reuse the result
        targets: dict[str, MonitoredTarget | None] = {}
        results: dict[str, BalanceSnapshot | FetchFailure] = {}
        for sub in await self._store.list_active():
            if not is_due(sub, report.cycle_at):
                continue
            name = sub.target_name
            if name not in targets:
                targets[name] = await self._registry.get_target(name)
                if targets[name] is None:
                    logger.warning(
                        "Subscription of %s references unknown target %s",
                        sub.subscriber_id,
                        name,
                    )
                else:
                    results[name] = await self._fetch(targets[name])
                    if isinstance(results[name], FetchFailure):
                        report.failed.append(name)
                    else:
                        report.fetched.append(name)
            result = results.get(name)
            if not isinstance(result, BalanceSnapshot):
                continue
            if await self._evaluate(targets[name], sub, result, report.cycle_at):
                report.alerts_sent += 1

    # ---- shared steps ----

    async def _fetch(
        self, target: MonitoredTarget, force_refresh: bool = False
    ) -> BalanceSnapshot | FetchFailure:
        try:
            result = await self._provider.fetch_balance(
                target.wallet_address,
                target.contract_address,
                target.chain_id,
                force_refresh,
                decimals=target.token_decimals,
                symbol=target.token_symbol,
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error fetching balance for %s", target.name)
            result = FetchFailure(
                wallet_address=target.wallet_address,
                contract_address=target.contract_address,
                chain_id=target.chain_id,
                kind=FailureKind.UPSTREAM,
                errors=[repr(exc)],
            )

        if isinstance(result, BalanceSnapshot):
            self._breaker.record_success()
            return result
        if result.kind is FailureKind.CONFIGURATION:
            logger.error(
                "Target %s is misconfigured (%s); its subscribers get no alerts",
                target.name,
                result.message,
            )
            return result
        logger.warning("Balance fetch failed for %s: %s", target.name, result.message)
        if self._breaker.record_failure():
            await self._escalate(result)
        return result

    async def _evaluate(
        self,
        target: MonitoredTarget,
        sub: Subscription,
        snapshot: BalanceSnapshot,
        check_at: datetime,
    ) -> bool:
        """Alert if the snapshot is below the threshold; always record the check."""
        alerted = False
        if snapshot.amount < sub.threshold:
            payload = build_balance_alert(target, snapshot, sub.threshold)
            if await self._notify(sub.subscriber_id, payload):
                await self._store.record_alert(sub.subscriber_id, sub.target_name)
                alerted = True
                logger.warning(
                    "Alert sent to %s: %s balance %s below threshold %s",
                    sub.subscriber_id,
                    target.name,
                    snapshot.balance_formatted,
                    format_threshold(sub.threshold),
                )
        else:
            logger.info(
                "%s balance %s is above threshold %s for %s; no alert",
                target.name,
                snapshot.balance_formatted,
                format_threshold(sub.threshold),
                sub.subscriber_id,
            )
        await self._store.record_check(
            sub.subscriber_id, snapshot.balance_formatted, sub.target_name, check_at
        )
        return alerted

    async def _notify(self, subscriber_id: int, payload) -> bool:
        try:
            result = await self._notifier.send(subscriber_id, payload)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Notifier raised while alerting %s", subscriber_id)
            return False
        if not result.ok:
            logger.error("Alert to %s not delivered: %s", subscriber_id, result.error)
        return result.ok

    async def _escalate(self, failure: FetchFailure) -> None:
        """Report the blast radius of an ongoing outage to the audit sink, once."""
        subs = await self._store.list_active()
        users = [
            {
                "subscriber_id": s.subscriber_id,
                "target": s.target_name,
                "threshold": format_threshold(s.threshold),
                "interval_minutes": s.interval_minutes,
                "last_checked_at": s.last_checked_at.isoformat() if s.last_checked_at else "never",
                "alert_count": s.alert_count,
            }
            for s in subs
        ]
        metadata = {
            "severity": "error",
            "consecutive_failures": self._breaker.consecutive_failures,
            "last_error": failure.message,
            "credential_errors": self._provider.error_counts(),
            "affected_users": len(users),
            "user_details": users
            if len(users) <= _MAX_LISTED_SUBSCRIBERS
            else f"Too many users ({len(users)}). Check logs for full details.",
        }
        if len(users) > _MAX_LISTED_SUBSCRIBERS:
            logger.error("Affected subscriptions during outage: %s", users)
        try:
            await self._audit.emit(
                "Balance monitoring degraded",
                f"{self._breaker.consecutive_failures} consecutive balance fetch failures",
                metadata,
            )
        except Exception:  # pylint: disable=broad-except
            logger.exception("Failed to send escalation to audit sink")
