"""
webmon: client-side telemetry agent

Captures performance, error and behavior events inside a running
application and delivers them to a remote collector, surviving restarts,
shutdown and flaky networks.

Usage:
    from webmon import Monitor

    async with Monitor({"app_id": "shop", "report_url": "https://collector/x"}) as mon:
        mon.report({"type": "performance", "data": {"name": "LCP", "value": 1830}})

Logging goes through loguru and is disabled for the ``webmon`` namespace
unless the monitor is created with ``debug=True``.
"""

from loguru import logger

from .config import MonitorConfig, MonitorSettings, get_settings
from .delivery import DeliveryEngine, DeliveryStatus, RetryPolicy
from .errors import (
    CollectorRejected,
    ConfigurationError,
    DeliveryError,
    DeliveryTimeout,
    StorageUnavailable,
    TransportUnavailable,
    WebmonError,
)
from .extensions import ExtensionRegistry, FunctionExtension
from .host import FileStore, HttpxNetworkSender, MemoryStore, SystemClock
from .integrations import ExceptHookExtension, LoguruBreadcrumbs
from .monitor import Monitor
from .storage import DurableQueueStore
from .types import Breadcrumb, Category, Event, Level, Priority, ReportInput

logger.disable("webmon")

__version__ = "1.0.0"
__all__ = [
    "Monitor",
    "MonitorConfig",
    "MonitorSettings",
    "get_settings",
    "DeliveryEngine",
    "DeliveryStatus",
    "RetryPolicy",
    "DurableQueueStore",
    "ExtensionRegistry",
    "FunctionExtension",
    "ExceptHookExtension",
    "LoguruBreadcrumbs",
    "FileStore",
    "MemoryStore",
    "SystemClock",
    "HttpxNetworkSender",
    "Event",
    "Breadcrumb",
    "ReportInput",
    "Category",
    "Priority",
    "Level",
    "WebmonError",
    "ConfigurationError",
    "StorageUnavailable",
    "DeliveryError",
    "TransportUnavailable",
    "DeliveryTimeout",
    "CollectorRejected",
]
