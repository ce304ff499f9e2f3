"""Service layer: monitoring engine, subscription storage and delivery adapters."""
from balance_monitor.services.audit import DiscordAuditSink
from balance_monitor.services.circuit_breaker import CircuitBreaker
from balance_monitor.services.monitoring_scheduler import (MonitoringScheduler,
                                                           TickReport)
from balance_monitor.services.notifier import (LogOnlyNotifier,
                                               TelegramNotifier,
                                               build_notifier)
from balance_monitor.services.reminder_service import ReminderService
from balance_monitor.services.subscription_store import SubscriptionStore
from balance_monitor.services.target_registry import TargetRegistry

__all__ = [
    "CircuitBreaker",
    "DiscordAuditSink",
    "LogOnlyNotifier",
    "MonitoringScheduler",
    "ReminderService",
    "SubscriptionStore",
    "TargetRegistry",
    "TelegramNotifier",
    "TickReport",
    "build_notifier",
]
