"""
Pytest configuration and fixtures for webmon.

Provides cross-platform event loop configuration and host fakes (clock,
store, network sender) so the pipeline runs without a real network.
"""

import asyncio
import json
import sys

import pytest
from loguru import logger

from webmon import MemoryStore, Monitor
from webmon.config import get_settings
from webmon.delivery import DeliveryEngine, RetryPolicy
from webmon.storage import DurableQueueStore
from webmon.types import Category, Event, Priority

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now = now_ms

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeSender:
    """Records every delivery attempt.

    ``fail_primary`` / ``fail_legacy``: number of upcoming calls that raise
    (-1 = always). Beacon is off unless ``beacon_enabled``.
    """

    def __init__(self):
        self.beacon_enabled = False
        self.beacon_ok = True
        self.fail_primary = 0
        self.fail_legacy = 0
        self.primary_delay = 0.0

        self.beacons: list[list[dict]] = []
        self.posts: list[list[dict]] = []
        self.legacy_posts: list[list[dict]] = []
        self.primary_calls = 0
        self.legacy_calls = 0
        self.headers: list[dict] = []

    @property
    def supports_beacon(self) -> bool:
        return self.beacon_enabled

    def _consume(self, attr: str) -> bool:
        left = getattr(self, attr)
        if left == 0:
            return False
        if left > 0:
            setattr(self, attr, left - 1)
        return True

    def beacon(self, url, body, headers) -> bool:
        if not self.beacon_ok:
            return False
        self.beacons.append(json.loads(body))
        return True

    async def post(self, url, body, headers, timeout) -> None:
        self.primary_calls += 1
        self.headers.append(dict(headers))
        if self.primary_delay:
            await asyncio.sleep(self.primary_delay)
        if self._consume("fail_primary"):
            raise ConnectionError("primary down")
        self.posts.append(json.loads(body))

    async def post_legacy(self, url, body, headers, timeout) -> None:
        self.legacy_calls += 1
        if self._consume("fail_legacy"):
            raise ConnectionError("legacy down")
        self.legacy_posts.append(json.loads(body))

    @property
    def delivered(self) -> list[dict]:
        """Every event that reached the collector, any strategy."""
        return [e for batch in self.beacons + self.posts + self.legacy_posts for e in batch]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def medium():
    return MemoryStore()


@pytest.fixture
def store(medium):
    return DurableQueueStore(medium)


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def base_config():
    return {
        "app_id": "test-app",
        "report_url": "https://collector.test/x",
        "environment": "pytest",
        "page_url": "https://app.test/checkout",
    }


@pytest.fixture
def make_monitor(base_config, clock, medium, sender):
    """Factory: Monitor wired to the fakes, config overrides as kwargs."""
    created = []

    def _make(**overrides) -> Monitor:
        rng = overrides.pop("rng", None)
        mon = Monitor({**base_config, **overrides}, clock=clock, store=medium, sender=sender, rng=rng)
        created.append(mon)
        return mon

    yield _make
    for mon in created:
        mon.teardown()


@pytest.fixture
def make_engine(clock, store, sender):
    """Factory: DeliveryEngine wired to the fakes."""
    created = []

    def _make(**kwargs) -> DeliveryEngine:
        kwargs.setdefault("url", "https://collector.test/x")
        kwargs.setdefault("sender", sender)
        kwargs.setdefault("store", store)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault(
            "retry_policy", RetryPolicy(max_attempts=3, base_interval_ms=1_000)
        )
        eng = DeliveryEngine(**kwargs)
        created.append(eng)
        return eng

    yield _make
    for eng in created:
        eng._cancel_timers()


@pytest.fixture
def make_event(clock):
    """Factory for ready-made events."""
    counter = {"n": 0}

    def _make(category: str = "behavior", priority: str | None = None, **payload) -> Event:
        counter["n"] += 1
        cat = Category(category)
        return Event(
            app_id="test-app",
            timestamp=clock.now_ms() + counter["n"],
            category=cat,
            payload=payload or {"n": counter["n"]},
            session_id="session_test",
            url="https://app.test/",
            environment="pytest",
            priority=Priority(priority) if priority else {
                Category.ERROR: Priority.HIGH,
                Category.PERFORMANCE: Priority.MEDIUM,
                Category.BEHAVIOR: Priority.LOW,
            }[cat],
        )

    return _make


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    # Monitor(debug=True) enables the library logger process-wide
    logger.disable("webmon")
