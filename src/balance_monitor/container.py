"""DI container: the composition root for the monitoring engine.

main.create_app() stores the container on app.state; deps.py resolves services
from it. Tests override `settings` (and any collaborator) before first use.
"""
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from dependency_injector import containers, providers

from balance_monitor.config import MonitorSettings
from balance_monitor.db import build_engine
from balance_monitor.providers import EtherscanBalanceProvider, SnapshotCache
from balance_monitor.providers.core import ProviderErrorMapper
from balance_monitor.services import (CircuitBreaker, DiscordAuditSink,
                                      MonitoringScheduler, ReminderService,
                                      SubscriptionStore, TargetRegistry,
                                      build_notifier)


def _minutes(value: float) -> timedelta:
    return timedelta(minutes=value)


class Container(containers.DeclarativeContainer):
    settings = providers.Singleton(MonitorSettings.from_env)

    engine = providers.Singleton(
        build_engine, settings.provided.database_url, settings.provided.sql_echo
    )

    audit = providers.Singleton(
        DiscordAuditSink,
        settings.provided.discord_webhook_url,
        timeout=settings.provided.http_timeout_seconds,
    )
    cache = providers.Singleton(SnapshotCache, settings.provided.cache_ttl_seconds)
    balance_provider = providers.Singleton(
        EtherscanBalanceProvider,
        settings.provided.api_keys,
        cache=cache,
        audit=audit,
        base_url=settings.provided.etherscan_base_url,
        timeout=settings.provided.http_timeout_seconds,
    )

    store = providers.Singleton(SubscriptionStore, engine)
    registry = providers.Singleton(TargetRegistry, engine)
    notifier = providers.Singleton(build_notifier, settings.provided.telegram_bot_token)

    breaker = providers.Singleton(
        CircuitBreaker,
        failure_threshold=settings.provided.breaker_failure_threshold,
        cooldown=providers.Callable(_minutes, settings.provided.breaker_cooldown_minutes),
        escalation_threshold=settings.provided.breaker_escalation_threshold,
    )
    apscheduler = providers.Singleton(AsyncIOScheduler, timezone="UTC")
    monitoring = providers.Singleton(
        MonitoringScheduler,
        balance_provider,
        store,
        registry,
        breaker,
        notifier,
        audit,
        policy=settings.provided.policy,
        tick_minutes=settings.provided.tick_minutes,
        delivery_delay=providers.Callable(
            _minutes, settings.provided.delivery_delay_minutes
        ),
        scheduler=apscheduler,
    )

    reminder_service = providers.Singleton(
        ReminderService, balance_provider, store, registry, notifier
    )
    balance_errors = providers.Singleton(
        ProviderErrorMapper, resource_name="Target", api_name="Etherscan"
    )


def init_container(settings: MonitorSettings | None = None) -> Container:
    """Create a container, optionally pinned to explicit settings."""
    container = Container()
    if settings is not None:
        container.settings.override(providers.Object(settings))
    return container
