"""Durable store for balance alert subscriptions.

Every public method is async and fault tolerant: persistence errors are logged
and turned into a safe default (None, False or an empty list) so one storage
hiccup never takes down a scheduler tick. Database work runs in a worker thread.
"""
import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from balance_monitor.config import DEFAULT_TARGET_NAME
from balance_monitor.db import Subscription, get_session
from balance_monitor.utils import utcnow

logger = logging.getLogger(__name__)

_STORAGE_ERRORS: tuple[type[Exception], ...] = (SQLAlchemyError, OSError)


def _target(target_name: str | None) -> str:
    return target_name or DEFAULT_TARGET_NAME


class SubscriptionStore:
    """CRUD and queries over Subscription rows, keyed by (subscriber_id, target_name)."""

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow) -> None:
        self._engine = engine
        self._clock = clock

    async def upsert_subscription(
        self,
        subscriber_id: int,
        threshold: Decimal,
        interval_minutes: int,
        target_name: str | None = None,
    ) -> Subscription | None:
        """Create or overwrite the subscription for the key and reactivate it.

        Stamps last_checked_at with the current time. Any threshold, including
        zero, is stored as given.
        """
        target = _target(target_name)
        try:
            try:
                sub = await asyncio.to_thread(
                    self._upsert_sync, subscriber_id, Decimal(threshold), interval_minutes, target
                )
            except IntegrityError:
                # a concurrent insert won the race; overwrite it
                sub = await asyncio.to_thread(
                    self._upsert_sync, subscriber_id, Decimal(threshold), interval_minutes, target
                )
        except _STORAGE_ERRORS:
            logger.exception("Error creating/updating subscription for %s", subscriber_id)
            return None
        logger.info(
            "Subscription saved for %s on %s: threshold=%s, interval=%dmin",
            subscriber_id,
            target,
            threshold,
            interval_minutes,
        )
        return sub

    async def get_subscription(
        self, subscriber_id: int, target_name: str | None = None
    ) -> Subscription | None:
        try:
            return await asyncio.to_thread(self._get_sync, subscriber_id, _target(target_name))
        except _STORAGE_ERRORS:
            logger.exception("Error getting subscription for %s", subscriber_id)
            return None

    async def deactivate(self, subscriber_id: int, target_name: str | None = None) -> bool:
        """Soft-disable a subscription. True iff an active row was flipped."""
        try:
            flipped = await asyncio.to_thread(
                self._deactivate_sync, subscriber_id, _target(target_name)
            )
        except _STORAGE_ERRORS:
            logger.exception("Error deactivating subscription for %s", subscriber_id)
            return False
        if flipped:
            logger.info("Subscription deactivated for %s", subscriber_id)
        return flipped

    async def list_active(self, target_name: str | None = None) -> list[Subscription]:
        """Active subscriptions; all targets when target_name is None."""
        try:
            return await asyncio.to_thread(self._list_active_sync, target_name)
        except _STORAGE_ERRORS:
            logger.exception("Error listing active subscriptions")
            return []

    async def active_target_names(self) -> list[str]:
        """Distinct targets with at least one active subscription, sorted by name."""
        try:
            return await asyncio.to_thread(self._active_targets_sync)
        except _STORAGE_ERRORS:
            logger.exception("Error listing monitored targets")
            return []

    async def record_check(
        self,
        subscriber_id: int,
        observed_balance: str,
        target_name: str | None = None,
        checked_at: datetime | None = None,
    ) -> None:
        """Stamp last_checked_at (now unless checked_at is given) and last_balance."""
        try:
            await asyncio.to_thread(
                self._update_sync,
                subscriber_id,
                _target(target_name),
                last_balance=observed_balance,
                stamp="last_checked_at",
                at=checked_at,
            )
        except _STORAGE_ERRORS:
            logger.exception("Error updating last check for %s", subscriber_id)

    async def record_alert(self, subscriber_id: int, target_name: str | None = None) -> None:
        try:
            await asyncio.to_thread(
                self._update_sync,
                subscriber_id,
                _target(target_name),
                stamp="last_alert_at",
                count_alert=True,
            )
        except _STORAGE_ERRORS:
            logger.exception("Error updating last alert for %s", subscriber_id)

    # ---- sync helpers (worker thread) ----

    @staticmethod
    def _find(session: Session, subscriber_id: int, target: str) -> Subscription | None:
        stmt = select(Subscription).where(
            Subscription.subscriber_id == subscriber_id,
            Subscription.target_name == target,
        )
        return session.exec(stmt).first()

    def _upsert_sync(
        self, subscriber_id: int, threshold: Decimal, interval_minutes: int, target: str
    ) -> Subscription:
        now = self._clock()
        with get_session(self._engine) as session:
            sub = self._find(session, subscriber_id, target)
            if sub is None:
                sub = Subscription(subscriber_id=subscriber_id, target_name=target, created_at=now)
            sub.threshold = threshold
            sub.interval_minutes = interval_minutes
            sub.is_active = True
            sub.last_checked_at = now
            sub.updated_at = now
            session.add(sub)
            session.flush()
            session.refresh(sub)
            return sub

    def _get_sync(self, subscriber_id: int, target: str) -> Subscription | None:
        with get_session(self._engine) as session:
            return self._find(session, subscriber_id, target)

    def _deactivate_sync(self, subscriber_id: int, target: str) -> bool:
        with get_session(self._engine) as session:
            sub = self._find(session, subscriber_id, target)
            if sub is None or not sub.is_active:
                return False
            sub.is_active = False
            sub.updated_at = self._clock()
            session.add(sub)
            return True

    def _list_active_sync(self, target_name: str | None) -> list[Subscription]:
        with get_session(self._engine) as session:
            stmt = select(Subscription).where(Subscription.is_active == True)  # noqa: E712
            if target_name is not None:
                stmt = stmt.where(Subscription.target_name == target_name)
            return list(session.exec(stmt.order_by(Subscription.id)).all())

    def _active_targets_sync(self) -> list[str]:
        with get_session(self._engine) as session:
            stmt = (
                select(Subscription.target_name)
                .where(Subscription.is_active == True)  # noqa: E712
                .distinct()
                .order_by(Subscription.target_name)
            )
            return list(session.exec(stmt).all())

    def _update_sync(
        self,
        subscriber_id: int,
        target: str,
        *,
        stamp: str,
        at: datetime | None = None,
        last_balance: str | None = None,
        count_alert: bool = False,
    ) -> None:
        with get_session(self._engine) as session:
            sub = self._find(session, subscriber_id, target)
            if sub is None:
                logger.warning("No subscription for %s on %s", subscriber_id, target)
                return
            now = self._clock()
            setattr(sub, stamp, at or now)
            if last_balance is not None:
                sub.last_balance = last_balance
            if count_alert:
                sub.alert_count += 1
            sub.updated_at = now
            session.add(sub)
