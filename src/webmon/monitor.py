"""
Monitor: the event coordinator.

Accepts events from producers, decides per-session sampling, keeps the
breadcrumb trail, stamps session/user/environment context, runs the
``before_send`` hook and hands accepted events to the ``DeliveryEngine``.

Nothing a producer or hook does can raise into the host application: every
entry point is wrapped by ``_safe_execute``. The only exception a host ever
sees is ``ConfigurationError`` from the constructor.

Example:
    async with Monitor({"app_id": "shop", "report_url": "https://collector/x"}) as mon:
        mon.add_breadcrumb({"category": "ui", "message": "clicked buy"})
        mon.report({"type": "error", "data": {"message": "boom"}})
"""

from __future__ import annotations

import atexit
import random
import traceback
from collections import deque
from typing import Any, Callable, Deque, Dict, Mapping, Optional

from loguru import logger

from .config import MonitorConfig, get_settings
from .delivery import DeliveryEngine, DeliveryStatus
from .extensions import Extension, ExtensionRegistry
from .host import Clock, FileStore, HttpxNetworkSender, NetworkSender, PersistentStore, SystemClock
from .metrics import EVENTS_DROPPED_TOTAL, EVENTS_REPORTED_TOTAL
from .storage import DurableQueueStore
from .types import Breadcrumb, Category, Event, Level, ReportInput, default_priority
from .utils import default_environment, generate_session_id, generate_user_id


class Monitor:
    """Event intake for one monitored session."""

    def __init__(
        self,
        config: MonitorConfig | Mapping[str, Any],
        *,
        clock: Optional[Clock] = None,
        store: Optional[PersistentStore] = None,
        sender: Optional[NetworkSender] = None,
        rng: Optional[random.Random] = None,
    ):
        self._config = MonitorConfig.load(config)  # raises ConfigurationError
        if self._config.debug:
            logger.enable("webmon")

        self._clock = clock or SystemClock()
        if store is None:
            settings = get_settings()
            store = FileStore(settings.store_dir)
        self._medium = store

        self._session_id = generate_session_id()
        self._user_id: Optional[str] = generate_user_id(store)
        self._environment = self._config.environment or default_environment()
        self._url = self._config.page_url

        self._breadcrumbs: Deque[Breadcrumb] = deque(maxlen=self._config.max_breadcrumbs)
        self._tags: Dict[str, str] = {}
        self._contexts: Dict[str, Any] = {}
        self._extensions = ExtensionRegistry(self)
        self._destroyed = False
        self._exit_hook: Optional[Callable[[], None]] = None

        # one Bernoulli draw per session
        self._sampled = (rng or random.Random()).random() < self._config.sampling

        self._sender = sender or HttpxNetworkSender()
        self._engine: Optional[DeliveryEngine] = None
        if self._sampled:
            self._engine = DeliveryEngine.from_config(
                self._config,
                sender=self._sender,
                store=DurableQueueStore(self._medium),
                clock=self._clock,
            )
        logger.debug(
            f"Monitor initialized: app={self._config.app_id} session={self._session_id} "
            f"sampled={self._sampled}"
        )

    # --------------------------- properties

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def app_id(self) -> str:
        return self._config.app_id

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_debug(self) -> bool:
        return self._config.debug

    @property
    def is_sampled(self) -> bool:
        return self._sampled

    @property
    def is_active(self) -> bool:
        return self._sampled and not self._destroyed

    @property
    def engine(self) -> Optional[DeliveryEngine]:
        return self._engine

    @property
    def extensions(self) -> ExtensionRegistry:
        return self._extensions

    @property
    def breadcrumbs(self) -> tuple:
        return tuple(self._breadcrumbs)

    # --------------------------- lifecycle

    def start(self) -> "Monitor":
        """Start delivery timers. Call from inside a running event loop."""
        if self._engine is not None and not self._destroyed:
            self._engine.start()
        return self

    async def __aenter__(self) -> "Monitor":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb):
        if self._engine is not None and not self._destroyed:
            await self._engine.stop(drain=True)
        self.teardown()
        aclose = getattr(self._sender, "aclose", None)
        if aclose is not None:
            await aclose()

    def teardown(self) -> None:
        """Stop accepting events, flush delivery, uninstall extensions. Idempotent."""
        if self._destroyed:
            return
        self._destroyed = True
        try:
            if self._engine is not None:
                self._engine.close()
        except Exception as exc:
            logger.warning(f"Delivery engine close failed: {exc}")
        finally:
            self._extensions.uninstall_all()
            self._breadcrumbs.clear()
            if self._exit_hook is not None:
                atexit.unregister(self._exit_hook)
                self._exit_hook = None
        logger.debug(f"Monitor {self._session_id} torn down")

    def handle_teardown(self) -> None:
        """Page-hide equivalent: persist and beacon what is pending, keep running."""
        self._safe_execute(lambda: self._engine and self._engine.handle_teardown())

    def install_exit_hook(self) -> "Monitor":
        """Run ``teardown`` at interpreter exit."""
        if self._exit_hook is None and not self._destroyed:
            self._exit_hook = self._atexit_handler
            atexit.register(self._exit_hook)
        return self

    def _atexit_handler(self) -> None:
        try:
            self.teardown()
        except Exception as e:
            logger.debug(f"Error during atexit teardown: {e}")

    # --------------------------- intake

    def report(self, data: ReportInput | Mapping[str, Any]) -> None:
        """Stamp, filter and hand one event to delivery. Never raises."""
        self._safe_execute(self._report, data)

    def _report(self, data: ReportInput | Mapping[str, Any]) -> None:
        inp = data if isinstance(data, ReportInput) else ReportInput.model_validate(data)

        if not self._category_enabled(inp.category):
            EVENTS_DROPPED_TOTAL.labels(reason="disabled").inc()
            return

        event = Event(
            app_id=self._config.app_id,
            timestamp=self._clock.now_ms(),
            category=inp.category,
            payload=inp.payload,
            session_id=self._session_id,
            user_id=self._user_id,
            url=self._url,
            environment=self._environment,
            breadcrumbs=tuple(self._breadcrumbs),
            priority=inp.priority or default_priority(inp.category),
            tags=dict(self._tags) or None,
            contexts=dict(self._contexts) or None,
        )

        hook = self._config.before_send
        if hook is not None:
            processed = hook(event)
            if processed is None:
                EVENTS_DROPPED_TOTAL.labels(reason="filtered").inc()
                return
            if not isinstance(processed, Event):
                processed = Event.model_validate(processed)
            event = processed

        if not self._engine.send(event):
            return
        EVENTS_REPORTED_TOTAL.labels(category=event.category.value).inc()
        logger.debug(f"Report: {event.category.value}/{event.priority.value} at {event.timestamp}")

    def _category_enabled(self, category: Category) -> bool:
        if category is Category.PERFORMANCE:
            return self._config.enable_performance
        if category is Category.ERROR:
            return self._config.enable_error
        return self._config.enable_behavior

    def add_breadcrumb(self, entry: Breadcrumb | Mapping[str, Any]) -> None:
        """Append to the trail; the oldest entry is evicted once the cap is hit."""
        self._safe_execute(self._add_breadcrumb, entry)

    def _add_breadcrumb(self, entry: Breadcrumb | Mapping[str, Any]) -> None:
        if not isinstance(entry, Breadcrumb):
            fields = dict(entry)
            fields.setdefault("timestamp", self._clock.now_ms())
            entry = Breadcrumb.model_validate(fields)
        self._breadcrumbs.append(entry)

    def report_error(self, message: str, **extra: Any) -> None:
        """Report a custom error with the caller's stack."""
        stack = "".join(traceback.format_stack()[:-1])
        self.report(
            {
                "type": Category.ERROR,
                "data": {"type": "custom_error", "message": message, "stack": stack, **extra},
            }
        )
        self.add_breadcrumb(
            {
                "category": "custom",
                "message": f"Custom Error: {message}",
                "level": Level.ERROR,
                "data": extra or None,
            }
        )

    def report_behavior(self, kind: str, data: Optional[Mapping[str, Any]] = None) -> None:
        """Report a custom behavior event."""
        self.report({"type": Category.BEHAVIOR, "data": {"type": kind, **(data or {})}})
        self.add_breadcrumb(
            {
                "category": "custom",
                "message": f"Custom behavior: {kind}",
                "level": Level.INFO,
                "data": dict(data) if data else None,
            }
        )

    # --------------------------- context

    def set_user(self, user_id: str, info: Optional[Mapping[str, Any]] = None) -> None:
        if self._destroyed:
            return
        self._user_id = user_id
        self.add_breadcrumb(
            {
                "category": "user",
                "message": f"User set: {user_id}",
                "level": Level.INFO,
                "data": dict(info) if info else None,
            }
        )

    def set_tag(self, key: str, value: str) -> None:
        self._tags[key] = str(value)

    def set_context(self, key: str, value: Any) -> None:
        self._contexts[key] = value

    def set_url(self, url: str) -> None:
        """Current page/route; stamped on events reported afterwards."""
        self._url = url

    # --------------------------- extensions

    def use(self, extension: Extension) -> "Monitor":
        """Install ``extension``; ignored once torn down or when unsampled."""
        if not self.is_active:
            logger.debug(f"Extension {getattr(extension, 'name', None)} ignored: monitor inactive")
            return self
        self._extensions.install(extension)
        return self

    def unuse(self, name: str) -> "Monitor":
        self._extensions.uninstall(name)
        return self

    # --------------------------- delivery passthrough

    def flush(self) -> int:
        if self._engine is None or self._destroyed:
            return 0
        return self._engine.flush()

    def status(self) -> DeliveryStatus:
        if self._engine is None:
            return DeliveryStatus(high=0, medium=0, low=0, retry=0, in_flight=0)
        return self._engine.status()

    # --------------------------- internals

    def _safe_execute(self, fn: Callable[..., Any], *args: Any) -> None:
        if not self.is_active:
            return
        try:
            fn(*args)
        except Exception as exc:
            EVENTS_DROPPED_TOTAL.labels(reason="internal_error").inc()
            if self._config.debug:
                logger.opt(exception=exc).warning(f"webmon internal error: {exc}")
