"""
Built-in producer extensions.

Thin producers that feed the monitor through ``report`` / ``add_breadcrumb``
like any third-party extension would.
"""

from __future__ import annotations

import sys
import traceback
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger

from .types import Category, Level

if TYPE_CHECKING:
    from .monitor import Monitor


class ExceptHookExtension:
    """Report uncaught exceptions as error events.

    Chains to the previous ``sys.excepthook`` and restores it on uninstall.
    """

    name = "excepthook"

    def __init__(self) -> None:
        self._previous: Optional[Any] = None
        self._monitor: Optional["Monitor"] = None

    def install(self, monitor: "Monitor") -> None:
        self._monitor = monitor
        self._previous = sys.excepthook
        sys.excepthook = self._hook

    def uninstall(self, monitor: "Monitor") -> None:
        if sys.excepthook is self._hook and self._previous is not None:
            sys.excepthook = self._previous
        self._monitor = None

    def _hook(self, exc_type, exc, tb) -> None:
        if self._monitor is not None:
            self._monitor.report(
                {
                    "type": Category.ERROR,
                    "data": {
                        "type": "uncaught_exception",
                        "exception": exc_type.__name__,
                        "message": str(exc),
                        "stack": "".join(traceback.format_exception(exc_type, exc, tb)),
                    },
                }
            )
            # the process is usually about to die
            self._monitor.handle_teardown()
        if self._previous is not None:
            self._previous(exc_type, exc, tb)


_LEVELS = {
    "WARNING": Level.WARNING,
    "ERROR": Level.ERROR,
    "CRITICAL": Level.ERROR,
}


class LoguruBreadcrumbs:
    """Turn the host's loguru records into breadcrumbs.

    Example:
        monitor.use(LoguruBreadcrumbs(level="INFO"))
    """

    name = "loguru-breadcrumbs"

    def __init__(self, level: str = "INFO"):
        self.level = level
        self._handler_id: Optional[int] = None
        self._monitor: Optional["Monitor"] = None

    def install(self, monitor: "Monitor") -> None:
        self._monitor = monitor
        self._handler_id = logger.add(
            self._sink,
            level=self.level,
            # our own records would feed back into the trail
            filter=lambda r: not (r["name"] or "").startswith("webmon"),
            format="{message}",
        )

    def uninstall(self, monitor: "Monitor") -> None:
        if self._handler_id is not None:
            logger.remove(self._handler_id)
            self._handler_id = None
        self._monitor = None

    def _sink(self, message) -> None:
        if self._monitor is None:
            return
        record = message.record
        self._monitor.add_breadcrumb(
            {
                "timestamp": int(record["time"].timestamp() * 1000),
                "category": "log",
                "message": record["message"],
                "level": _LEVELS.get(record["level"].name, Level.INFO),
                "data": {"logger": record["name"], "function": record["function"]},
            }
        )
