"""Monitoring scheduler routes."""
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter

from balance_monitor.deps import MonitoringDep
from balance_monitor.schemas import MonitoringStatus

router = APIRouter(prefix="/monitoring", tags=["monitoring"])


@router.get("/status", response_model=MonitoringStatus)
async def get_status(monitoring: MonitoringDep) -> MonitoringStatus:
    """Policy, circuit breaker state and per-key error counters."""
    return monitoring.status()


@router.post("/run")
async def run_tick(monitoring: MonitoringDep) -> dict[str, Any]:
    """Run one monitoring tick now (still subject to the circuit breaker)."""
    report = await monitoring.run_tick()
    return asdict(report)
