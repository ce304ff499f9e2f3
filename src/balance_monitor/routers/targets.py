"""Monitored target administration (a target is a wallet + token + chain)."""
from fastapi import APIRouter, HTTPException, Query

from balance_monitor.deps import BalanceErrorsDep, TargetRegistryDep
from balance_monitor.providers.core import TargetExistsError
from balance_monitor.schemas import TargetOut, TargetRequest
from balance_monitor.services import TargetRegistry

router = APIRouter(prefix="/targets", tags=["targets"])


@router.get("", response_model=list[TargetOut])
async def list_targets(
    registry: TargetRegistryDep,
    include_inactive: bool = Query(default=False, description="Include soft-deleted targets"),
) -> list[TargetOut]:
    """Targets ordered by priority, then name."""
    if include_inactive:
        targets = await registry.list_targets()
    else:
        targets = await registry.list_active_targets()
    return [TargetOut.model_validate(t) for t in targets]


@router.post("", response_model=TargetOut, status_code=201)
async def create_target(
    body: TargetRequest,
    registry: TargetRegistryDep,
    errors: BalanceErrorsDep,
) -> TargetOut:
    try:
        target = await registry.create_target(
            body.name,
            body.display_name,
            body.wallet_address,
            body.contract_address,
            chain_id=body.chain_id,
            token_symbol=body.token_symbol,
            token_decimals=body.token_decimals,
            priority=body.priority,
            description=body.description,
            min_interval_minutes=body.min_interval_minutes,
        )
    except TargetExistsError as e:
        errors.raise_http(e, name=body.name)
    return TargetOut.model_validate(target)


async def _set_active(registry: TargetRegistry, name: str, active: bool) -> TargetOut:
    if active:
        await registry.restore_target(name)
    else:
        await registry.deactivate_target(name)
    target = await registry.get_target(name, include_inactive=True)
    if target is None:
        raise HTTPException(status_code=404, detail=f"Target '{name}' not found")
    return TargetOut.model_validate(target)


@router.delete("/{name}", response_model=TargetOut)
async def deactivate_target(name: str, registry: TargetRegistryDep) -> TargetOut:
    """Soft delete: subscriptions are kept but the target is no longer polled."""
    return await _set_active(registry, name, False)


@router.post("/{name}/restore", response_model=TargetOut)
async def restore_target(name: str, registry: TargetRegistryDep) -> TargetOut:
    return await _set_active(registry, name, True)
