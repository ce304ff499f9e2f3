"""Subscriber-facing use cases: set/clear a reminder, view a balance."""
import logging
from decimal import Decimal, InvalidOperation

from balance_monitor.config import MAX_INTERVAL_MINUTES
from balance_monitor.db import MonitoredTarget
from balance_monitor.providers.core import (BalanceProviderABC,
                                            ConfigurationError,
                                            TargetNotFoundError,
                                            UpstreamError)
from balance_monitor.providers.core.protocols import Notifier, NotifyResult
from balance_monitor.schemas import (BalanceSnapshot, FailureKind,
                                     ReminderOutcome, ReminderResult,
                                     SubscriptionOut, TextPayload)
from balance_monitor.services.messages import build_balance_view
from balance_monitor.services.subscription_store import SubscriptionStore
from balance_monitor.services.target_registry import TargetRegistry

logger = logging.getLogger(__name__)


class ReminderService:
    """Validates subscriber input and delegates to the store, registry and provider."""

    def __init__(
        self,
        provider: BalanceProviderABC,
        store: SubscriptionStore,
        registry: TargetRegistry,
        notifier: Notifier | None = None,
    ) -> None:
        self._provider = provider
        self._store = store
        self._registry = registry
        self._notifier = notifier

    async def _require_target(self, target_name: str | None) -> MonitoredTarget:
        target = await self._registry.get_target(target_name)
        if target is None:
            raise TargetNotFoundError(target_name or "default")
        return target

    async def set_reminder(
        self,
        subscriber_id: int,
        threshold: Decimal | float | str,
        interval_minutes: int = 30,
        target_name: str | None = None,
    ) -> ReminderResult:
        """Create, update or (threshold 0) disable a balance reminder."""
        try:
            threshold = Decimal(str(threshold))
        except InvalidOperation:
            threshold = Decimal("NaN")
        if threshold.is_nan() or threshold < 0:
            return ReminderResult(
                success=False,
                outcome=ReminderOutcome.INVALID,
                message="Alert threshold must be a positive number!",
            )

        target = await self._registry.get_target(target_name)
        if target is None:
            return ReminderResult(
                success=False,
                outcome=ReminderOutcome.NOT_FOUND,
                message=f"Unknown target '{target_name}'!",
            )

        if threshold == 0:
            if await self._store.deactivate(subscriber_id, target.name):
                return ReminderResult(
                    success=True,
                    outcome=ReminderOutcome.DISABLED,
                    message="Balance monitoring reminder disabled successfully!",
                )
            return ReminderResult(
                success=False,
                outcome=ReminderOutcome.NOT_FOUND,
                message="No active reminder found to disable!",
            )

        low = target.min_interval_minutes
        if not low <= interval_minutes <= MAX_INTERVAL_MINUTES:
            return ReminderResult(
                success=False,
                outcome=ReminderOutcome.INVALID,
                message=f"Interval must be between {low} minutes and "
                f"{MAX_INTERVAL_MINUTES} minutes (24 hours)!",
            )

        sub = await self._store.upsert_subscription(
            subscriber_id, threshold, interval_minutes, target.name
        )
        if sub is None:
            return ReminderResult(
                success=False,
                outcome=ReminderOutcome.ERROR,
                message="Error occurred while setting reminder!",
            )
        return ReminderResult(
            success=True,
            outcome=ReminderOutcome.SAVED,
            message=f"Reminder set: alert below {threshold} {target.token_symbol}, "
            f"checked every {interval_minutes} minutes.",
            subscription=SubscriptionOut.model_validate(sub),
        )

    async def reminder_status(
        self, subscriber_id: int, target_name: str | None = None
    ) -> SubscriptionOut | None:
        target = await self._require_target(target_name)
        sub = await self._store.get_subscription(subscriber_id, target.name)
        return SubscriptionOut.model_validate(sub) if sub is not None else None

    async def view_balance(
        self, target_name: str | None = None, refresh: bool = False
    ) -> BalanceSnapshot:
        """Current balance of a target.

        Raises:
            TargetNotFoundError: unknown or inactive target.
            ConfigurationError: wallet, contract or API keys are missing.
            UpstreamError: every configured API key failed.
        """
        target = await self._require_target(target_name)
        if not target.wallet_address or not target.contract_address:
            raise ConfigurationError(
                f"Missing wallet/contract configuration for '{target.name}'"
            )
        result = await self._provider.fetch_balance(
            target.wallet_address,
            target.contract_address,
            target.chain_id,
            refresh,
            decimals=target.token_decimals,
            symbol=target.token_symbol,
        )
        if isinstance(result, BalanceSnapshot):
            return result
        if result.kind is FailureKind.CONFIGURATION:
            raise ConfigurationError(result.message)
        raise UpstreamError(result.message, transient=result.transient)

    async def refresh_balances(self) -> None:
        """Drop every cached snapshot so the next view hits the upstream API."""
        await self._provider.refresh()
        logger.info("Balance cache cleared")

    async def send_balance(
        self, subscriber_id: int, target_name: str | None = None
    ) -> NotifyResult:
        """Push the current balance of a target to one subscriber."""
        if self._notifier is None:
            raise ConfigurationError("No notifier configured")
        target = await self._require_target(target_name)
        snapshot = await self.view_balance(target.name)
        return await self._notifier.send(
            subscriber_id, TextPayload(text=build_balance_view(target, snapshot))
        )
