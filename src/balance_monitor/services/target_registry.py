"""Monitored targets ("partners"): named wallet + token + chain tuples to poll."""
import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from balance_monitor.config import (DEFAULT_TARGET_NAME, MIN_INTERVAL_MINUTES,
                                    MonitorSettings)
from balance_monitor.db import MonitoredTarget, get_session
from balance_monitor.providers.core import TargetExistsError
from balance_monitor.providers.etherscan import token_info
from balance_monitor.utils import utcnow

logger = logging.getLogger(__name__)


class TargetRegistry:
    """Lookup and lifecycle of MonitoredTarget rows.

    Reads fall back to safe defaults on storage errors; administrative writes
    (create) propagate them to the caller. Deletion is always soft.
    """

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow) -> None:
        self._engine = engine
        self._clock = clock

    async def get_target(self, name: str | None, *, include_inactive: bool = False) -> MonitoredTarget | None:
        """Target by name (default target when name is None)."""
        name = name or DEFAULT_TARGET_NAME
        try:
            target = await asyncio.to_thread(self._get_sync, name)
        except SQLAlchemyError:
            logger.exception("Error getting target %s", name)
            return None
        if target is not None and not target.is_active and not include_inactive:
            return None
        return target

    async def list_active_targets(self) -> list[MonitoredTarget]:
        """Active targets ordered by priority, then name."""
        try:
            return await asyncio.to_thread(self._list_sync, True)
        except SQLAlchemyError:
            logger.exception("Error listing active targets")
            return []

    async def list_targets(self) -> list[MonitoredTarget]:
        """All targets including soft-deleted ones."""
        try:
            return await asyncio.to_thread(self._list_sync, False)
        except SQLAlchemyError:
            logger.exception("Error listing targets")
            return []

    async def create_target(
        self,
        name: str,
        display_name: str,
        wallet_address: str,
        contract_address: str,
        *,
        chain_id: int = 56,
        token_symbol: str | None = None,
        token_decimals: int | None = None,
        priority: int = 0,
        description: str = "",
        min_interval_minutes: int = MIN_INTERVAL_MINUTES,
    ) -> MonitoredTarget:
        """Insert a new target.

        Raises:
            TargetExistsError: the name is taken (soft-deleted targets included).
        """
        info = token_info(contract_address)
        target = MonitoredTarget(
            name=name,
            display_name=display_name,
            wallet_address=wallet_address,
            contract_address=contract_address,
            chain_id=chain_id,
            token_symbol=token_symbol or info.symbol,
            token_decimals=info.decimals if token_decimals is None else token_decimals,
            priority=priority,
            description=description,
            min_interval_minutes=min_interval_minutes,
        )
        try:
            target = await asyncio.to_thread(self._add_sync, target)
        except IntegrityError as exc:
            raise TargetExistsError(name) from exc
        logger.info("Target created: %s (%s)", target.name, target.display_name)
        return target

    async def deactivate_target(self, name: str) -> bool:
        """Soft-delete: flip is_active off so historical subscriptions still resolve."""
        return await self._set_active(name, False)

    async def restore_target(self, name: str) -> bool:
        return await self._set_active(name, True)

    async def ensure_default_target(self, settings: MonitorSettings) -> MonitoredTarget | None:
        """Seed the default target from configuration if it does not exist yet.

        An existing row is refreshed with the configured wallet/contract so the
        environment stays the source of truth for the default target.
        """
        existing = await self.get_target(DEFAULT_TARGET_NAME, include_inactive=True)
        if existing is None:
            try:
                return await self.create_target(
                    DEFAULT_TARGET_NAME,
                    "Buy Card",
                    settings.default_wallet_address,
                    settings.default_contract_address,
                    chain_id=settings.default_chain_id,
                    priority=1,
                    description="Default buy card wallet",
                )
            except (SQLAlchemyError, TargetExistsError):
                logger.exception("Error initializing default target")
                return None
        if (
            existing.wallet_address != settings.default_wallet_address
            or existing.contract_address != settings.default_contract_address
        ):
            try:
                existing = await asyncio.to_thread(
                    self._update_addresses_sync,
                    DEFAULT_TARGET_NAME,
                    settings.default_wallet_address,
                    settings.default_contract_address,
                )
            except SQLAlchemyError:
                logger.exception("Error updating default target")
        return existing

    async def _set_active(self, name: str, active: bool) -> bool:
        try:
            changed = await asyncio.to_thread(self._set_active_sync, name, active)
        except SQLAlchemyError:
            logger.exception("Error updating target %s", name)
            return False
        if changed:
            logger.info("Target %s: %s", "restored" if active else "deactivated", name)
        return changed

    def _get_sync(self, name: str) -> MonitoredTarget | None:
        with get_session(self._engine) as session:
            return session.exec(
                select(MonitoredTarget).where(MonitoredTarget.name == name)
            ).first()

    def _list_sync(self, active_only: bool) -> list[MonitoredTarget]:
        with get_session(self._engine) as session:
            stmt = select(MonitoredTarget)
            if active_only:
                stmt = stmt.where(MonitoredTarget.is_active == True)  # noqa: E712
            stmt = stmt.order_by(MonitoredTarget.priority, MonitoredTarget.name)
            return list(session.exec(stmt).all())

    def _add_sync(self, target: MonitoredTarget) -> MonitoredTarget:
        with get_session(self._engine) as session:
            session.add(target)
            session.flush()
            session.refresh(target)
            return target

    def _set_active_sync(self, name: str, active: bool) -> bool:
        with get_session(self._engine) as session:
            target = session.exec(
                select(MonitoredTarget).where(MonitoredTarget.name == name)
            ).first()
            if target is None or target.is_active == active:
                return False
            target.is_active = active
            target.updated_at = self._clock()
            session.add(target)
            return True

    def _update_addresses_sync(
        self, name: str, wallet_address: str, contract_address: str
    ) -> MonitoredTarget | None:
        with get_session(self._engine) as session:
            target = session.exec(
                select(MonitoredTarget).where(MonitoredTarget.name == name)
            ).first()
            if target is None:
                return None
            target.wallet_address = wallet_address
            target.contract_address = contract_address
            target.updated_at = self._clock()
            session.add(target)
            session.flush()
            session.refresh(target)
            return target
