"""Per-subscriber balance reminder routes."""
from fastapi import APIRouter, HTTPException, Query

from balance_monitor.deps import BalanceErrorsDep, ReminderServiceDep
from balance_monitor.providers.core import BalanceMonitorError
from balance_monitor.schemas import (ReminderOutcome, ReminderResult,
                                     SubscriptionOut, SubscriptionRequest)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])

_OUTCOME_STATUS = {
    ReminderOutcome.INVALID: 422,
    ReminderOutcome.NOT_FOUND: 404,
    ReminderOutcome.ERROR: 500,
}


def _checked(result: ReminderResult) -> ReminderResult:
    if not result.success:
        raise HTTPException(
            status_code=_OUTCOME_STATUS.get(result.outcome, 400), detail=result.message
        )
    return result


@router.put("/{subscriber_id}", response_model=ReminderResult)
async def set_subscription(
    subscriber_id: int,
    body: SubscriptionRequest,
    service: ReminderServiceDep,
) -> ReminderResult:
    """Create or update a reminder. A threshold of 0 disables it."""
    result = await service.set_reminder(
        subscriber_id, body.threshold, body.interval_minutes, body.target
    )
    return _checked(result)


@router.get("/{subscriber_id}", response_model=SubscriptionOut)
async def get_subscription(
    subscriber_id: int,
    service: ReminderServiceDep,
    errors: BalanceErrorsDep,
    target: str | None = Query(default=None, description="Target name (default target if omitted)"),
) -> SubscriptionOut:
    try:
        sub = await service.reminder_status(subscriber_id, target)
    except BalanceMonitorError as e:
        errors.raise_http(e, name=target)
    if sub is None:
        raise HTTPException(status_code=404, detail=f"No reminder for subscriber {subscriber_id}")
    return sub


@router.delete("/{subscriber_id}", response_model=ReminderResult)
async def delete_subscription(
    subscriber_id: int,
    service: ReminderServiceDep,
    target: str | None = Query(default=None, description="Target name (default target if omitted)"),
) -> ReminderResult:
    """Disable a reminder (soft delete)."""
    return _checked(await service.set_reminder(subscriber_id, 0, target_name=target))


@router.post("/{subscriber_id}/balance")
async def send_balance(
    subscriber_id: int,
    service: ReminderServiceDep,
    errors: BalanceErrorsDep,
    target: str | None = Query(default=None, description="Target name (default target if omitted)"),
) -> dict[str, str | bool | None]:
    """Push the target's current balance to the subscriber."""
    try:
        result = await service.send_balance(subscriber_id, target)
    except BalanceMonitorError as e:
        errors.raise_http(e, name=target)
    return {"delivered": result.ok, "error": result.error}
