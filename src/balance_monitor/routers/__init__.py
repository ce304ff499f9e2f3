"""API routers for the balance monitoring service.

Includes routes for:
- /balance - Current token balance of a monitored target (Etherscan)
- /subscriptions - Per-subscriber low-balance reminders
- /monitoring - Scheduler status and manual ticks
- /targets - Monitored target administration (soft delete and restore)
"""
from balance_monitor.routers.balance import router as balance_router
from balance_monitor.routers.monitoring import router as monitoring_router
from balance_monitor.routers.subscriptions import router as subscriptions_router
from balance_monitor.routers.targets import router as targets_router

__all__ = [
    "balance_router",
    "monitoring_router",
    "subscriptions_router",
    "targets_router",
]
