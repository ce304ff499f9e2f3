"""Database package: models and session management."""
from balance_monitor.db.models import MonitoredTarget, Subscription
from balance_monitor.db.sessions import build_engine, get_session, init_db

__all__ = ["MonitoredTarget", "Subscription", "build_engine", "get_session", "init_db"]
