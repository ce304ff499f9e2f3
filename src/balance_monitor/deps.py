"""FastAPI dependency injection: app.state.container holds singletons; Depends() resolves them.

The container is created in main.create_app() and its object graph is started
by the lifespan; these getters are used by Depends().
"""
from typing import Annotated

from fastapi import Depends, Request

from balance_monitor.container import Container
from balance_monitor.providers.core import ProviderErrorMapper
from balance_monitor.services import (MonitoringScheduler, ReminderService,
                                      TargetRegistry)


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_reminder_service(request: Request) -> ReminderService:
    """Resolve the subscriber-facing ReminderService."""
    return get_container(request).reminder_service()


def get_monitoring(request: Request) -> MonitoringScheduler:
    """Resolve the MonitoringScheduler started at startup."""
    return get_container(request).monitoring()


def get_target_registry(request: Request) -> TargetRegistry:
    return get_container(request).registry()


def get_balance_errors(request: Request) -> ProviderErrorMapper:
    return get_container(request).balance_errors()


# Type aliases for route injection
ReminderServiceDep = Annotated[ReminderService, Depends(get_reminder_service)]
MonitoringDep = Annotated[MonitoringScheduler, Depends(get_monitoring)]
BalanceErrorsDep = Annotated[ProviderErrorMapper, Depends(get_balance_errors)]
TargetRegistryDep = Annotated[TargetRegistry, Depends(get_target_registry)]
