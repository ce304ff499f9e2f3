"""Balance routes (Etherscan token balances of monitored targets)."""
from fastapi import APIRouter, Query

from balance_monitor.config import DEFAULT_TARGET_NAME
from balance_monitor.deps import BalanceErrorsDep, ReminderServiceDep
from balance_monitor.providers.core import (BalanceMonitorError,
                                            ProviderErrorMapper)
from balance_monitor.schemas import BalanceSnapshot
from balance_monitor.services import ReminderService

router = APIRouter(prefix="/balance", tags=["balance"])


async def _view(
    service: ReminderService,
    errors: ProviderErrorMapper,
    target: str,
    refresh: bool,
) -> BalanceSnapshot:
    try:
        return await service.view_balance(target, refresh=refresh)
    except BalanceMonitorError as e:
        errors.raise_http(e, name=target)


@router.get("", response_model=BalanceSnapshot)
async def get_default_balance(
    service: ReminderServiceDep,
    errors: BalanceErrorsDep,
    refresh: bool = Query(default=False, description="Bypass the balance cache"),
) -> BalanceSnapshot:
    """Get the balance of the default target."""
    return await _view(service, errors, DEFAULT_TARGET_NAME, refresh)


@router.post("/refresh")
async def refresh_balances(service: ReminderServiceDep) -> dict[str, str]:
    """Clear the balance cache for every target."""
    await service.refresh_balances()
    return {"status": "cleared"}


@router.get("/{target}", response_model=BalanceSnapshot)
async def get_target_balance(
    target: str,
    service: ReminderServiceDep,
    errors: BalanceErrorsDep,
    refresh: bool = Query(default=False, description="Bypass the balance cache"),
) -> BalanceSnapshot:
    """Get the balance of a monitored target.

    Args:
        target: Target name (e.g. "buy_card").
        refresh: Force a fresh upstream fetch.

    Returns:
        Balance snapshot. 404 for unknown targets, 503 when the target or API
        keys are not configured, 502 when every API key failed.
    """
    return await _view(service, errors, target, refresh)
