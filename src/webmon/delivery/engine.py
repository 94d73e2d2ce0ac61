"""
DeliveryEngine: priority queues → batches → network, with retry and a
non-suspending teardown path.

Runs on a single asyncio loop. Only network sends and the two timers ever
suspend; queue mutation, overflow handling and teardown are synchronous.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from loguru import logger

from ..config import MonitorConfig
from ..errors import DeliveryTimeout
from ..host import Clock, NetworkSender, SystemClock
from ..metrics import (
    BATCHES_TOTAL,
    EVENTS_DROPPED_TOTAL,
    IN_FLIGHT,
    QUEUE_DEPTH,
    RETRY_QUEUE_SIZE,
)
from ..storage import DurableQueueStore
from ..types import Event, Priority
from .policy import RetryPolicy, describe_failure
from .queue import DRAIN_ORDER, PriorityQueueSet
from .retry import RetryRecord, RetrySet

# Ticks (batch and retry) are skipped while more sends than this are in flight.
MAX_IN_FLIGHT = 3


@dataclass(frozen=True)
class DeliveryStatus:
    """Read-only view of engine occupancy."""

    high: int
    medium: int
    low: int
    retry: int
    in_flight: int

    @property
    def queued(self) -> int:
        return self.high + self.medium + self.low


def encode_batch(batch: Sequence[Event]) -> bytes:
    """Wire body: a JSON array of events."""
    return json.dumps([e.to_wire() for e in batch], separators=(",", ":")).encode("utf-8")


class DeliveryEngine:
    """Batches, prioritizes, persists, retries and flushes events.

    Example:
        engine = DeliveryEngine(url="https://collector/x", sender=HttpxNetworkSender())
        engine.start()          # inside a running loop
        engine.send(event)
        ...
        await engine.stop()     # drain, then teardown
    """

    def __init__(
        self,
        *,
        url: str,
        sender: NetworkSender,
        store: Optional[DurableQueueStore] = None,
        clock: Optional[Clock] = None,
        batch_size: int = 10,
        max_queue_size: int = 100,
        report_interval_ms: int = 60_000,
        enable_immediate_report: bool = True,
        retry_policy: Optional[RetryPolicy] = None,
        retry_interval_ms: Optional[int] = None,
        timeout_ms: int = 5_000,
        headers: Optional[Mapping[str, str]] = None,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if report_interval_ms <= 0:
            raise ValueError("report_interval_ms must be > 0")

        self._url = url
        self._sender = sender
        self._store = store
        self._clock = clock or SystemClock()
        self._batch_size = batch_size
        self._interval_ms = report_interval_ms
        self._immediate = enable_immediate_report
        self._retry_policy = retry_policy or RetryPolicy()
        self._retry_interval_ms = retry_interval_ms or self._retry_policy.base_interval_ms
        self._timeout_s = timeout_ms / 1000.0
        self._headers: Dict[str, str] = dict(headers or {})

        self._queues = PriorityQueueSet(max_queue_size, on_overflow=self._on_overflow)
        self._retry = RetrySet()

        self._in_flight = 0
        self._tasks: Dict[asyncio.Task, Sequence[Event]] = {}
        self._timers: List[asyncio.Task] = []
        self._closed = False

        self._restore()

    @classmethod
    def from_config(
        cls,
        config: MonitorConfig,
        *,
        sender: NetworkSender,
        store: Optional[DurableQueueStore] = None,
        clock: Optional[Clock] = None,
    ) -> "DeliveryEngine":
        return cls(
            url=config.report_url,
            sender=sender,
            store=store,
            clock=clock,
            batch_size=config.batch_size,
            max_queue_size=config.max_queue_size,
            report_interval_ms=config.report_interval_ms,
            enable_immediate_report=config.enable_immediate_report,
            retry_policy=RetryPolicy(
                max_attempts=config.retry_count,
                base_interval_ms=config.retry_interval_ms,
            ),
            timeout_ms=config.timeout_ms,
            headers=config.headers,
        )

    # --------------------------- lifecycle

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._timers)

    def start(self) -> None:
        """Start the batch and retry timers. Must be called from a running loop."""
        if self._closed:
            raise RuntimeError("DeliveryEngine is closed")
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._timers = [
            loop.create_task(self._batch_timer(), name="webmon-batch-timer"),
            loop.create_task(self._retry_timer(), name="webmon-retry-timer"),
        ]
        logger.debug(
            f"DeliveryEngine started: interval={self._interval_ms}ms "
            f"batch={self._batch_size} capacity={self._queues.capacity}"
        )

    async def stop(self, drain: bool = True, timeout: float = 5.0) -> None:
        """Stop timers; optionally flush and await in-flight sends, then close."""
        if self._closed:
            return
        self._cancel_timers()
        if drain:
            self.flush()
            await self.wait_idle(timeout=timeout)
        self.close()

    def close(self) -> None:
        """Reject further sends and run the teardown path. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._cancel_timers()
        self.handle_teardown()
        logger.debug("DeliveryEngine closed")

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight sends to settle (not for the timers)."""
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    def _cancel_timers(self) -> None:
        for t in self._timers:
            t.cancel()
        self._timers = []

    def _restore(self) -> None:
        if self._store is None:
            return
        restored = self._store.restore()
        for event in restored:
            self._queues.put(event, event.priority, notify=False)
        self._store.clear()
        if restored:
            logger.debug(f"Restored {len(restored)} events from durable store")

    # --------------------------- intake

    def send(self, event: Event) -> bool:
        """Route one event: immediate urgent send, or queue by priority.

        Returns False if the engine is closed or the event cannot be encoded.
        """
        if self._closed:
            return False
        try:
            event.to_wire()
        except (TypeError, ValueError) as exc:
            EVENTS_DROPPED_TOTAL.labels(reason="unserializable").inc()
            logger.debug(f"Event dropped, payload not serializable: {exc}")
            return False
        priority = event.priority
        if priority is Priority.HIGH and self._immediate and _has_running_loop():
            self._dispatch([event], urgent=True)
        else:
            self._queues.put(event, priority)
        self._publish_gauges()
        return True

    def _on_overflow(self) -> None:
        logger.debug(f"Queue ceiling reached ({self._queues.total}); forcing flush")
        self.process_queued(force=True)

    # --------------------------- batch processing

    def process_queued(self, *, force: bool = False) -> int:
        """One drain cycle: up to ``batch_size`` events per sequence.

        High (only populated when immediate reporting is off), then medium,
        then low. Returns the number of batches dispatched. Skipped while too
        many sends are in flight unless ``force``.
        """
        if self._closed:
            return 0
        if not force and self._in_flight > MAX_IN_FLIGHT:
            logger.debug(f"Batch tick skipped: {self._in_flight} sends in flight")
            return 0

        dispatched = 0
        for priority in DRAIN_ORDER:
            batch = self._queues.take(priority, self._batch_size)
            if batch:
                self._dispatch(batch, urgent=priority is Priority.HIGH)
                dispatched += 1
        if dispatched and self._store is not None:
            # the snapshot from an earlier teardown is stale once live data moves
            self._store.clear()
        self._publish_gauges()
        return dispatched

    def flush(self) -> int:
        """Drain every sequence now, in ``batch_size`` batches."""
        dispatched = 0
        while not self._closed and self._queues.total:
            dispatched += self.process_queued(force=True)
        return dispatched

    def process_retry_queue(self) -> int:
        """One retry cycle. Returns the number of batches resent."""
        if self._closed or not len(self._retry):
            return 0
        if self._in_flight > MAX_IN_FLIGHT:
            return 0

        now = self._clock.now_ms()
        resent = 0
        for rec in self._retry.due(now):
            if self._retry_policy.exhausted(rec.attempts):
                self._retry.discard(rec)
                EVENTS_DROPPED_TOTAL.labels(reason="retry_exhausted").inc(len(rec.batch))
                logger.debug(
                    f"Dropping batch of {len(rec.batch)} after {rec.attempts} retries"
                )
                continue
            rec.attempts += 1
            rec.next_retry_at = now + self._retry_policy.next_backoff_ms(rec.attempts)
            rec.in_flight = True
            self._dispatch(rec.batch, urgent=False, record=rec)
            resent += 1
        self._publish_gauges()
        return resent

    async def _batch_timer(self) -> None:
        await asyncio.sleep(self.initial_delay_ms() / 1000.0)
        while not self._closed:
            self.process_queued()
            await asyncio.sleep(self._interval_ms / 1000.0)

    async def _retry_timer(self) -> None:
        while not self._closed:
            await asyncio.sleep(self._retry_interval_ms / 1000.0)
            self.process_retry_queue()

    def initial_delay_ms(self) -> int:
        """Delay before the first batch tick, keeping cadence across restarts."""
        last = self._store.last_flush_time() if self._store is not None else None
        if last is None:
            return self._interval_ms
        remaining = self._interval_ms - (self._clock.now_ms() - last)
        return max(0, min(self._interval_ms, remaining))

    # --------------------------- network

    def _dispatch(
        self,
        batch: Sequence[Event],
        *,
        urgent: bool,
        record: Optional[RetryRecord] = None,
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._dispatch_without_loop(batch, record)
            return

        self._in_flight += 1
        task = loop.create_task(self._deliver(batch, urgent=urgent, record=record))
        # retry batches are already covered by the retry set at teardown
        self._tasks[task] = batch if record is None else ()
        task.add_done_callback(self._forget_task)

    def _dispatch_without_loop(
        self, batch: Sequence[Event], record: Optional[RetryRecord]
    ) -> None:
        # No loop to await on: the beacon is the only primitive left.
        if self._try_beacon(encode_batch(batch)):
            if record is not None:
                self._retry.discard(record)
            return
        if record is not None:
            record.in_flight = False
        else:
            self._retry.add(batch, self._clock.now_ms() + self._retry_policy.next_backoff_ms(0))

    def _forget_task(self, task: asyncio.Task) -> None:
        self._tasks.pop(task, None)

    async def _deliver(
        self,
        batch: Sequence[Event],
        *,
        urgent: bool,
        record: Optional[RetryRecord],
    ) -> None:
        IN_FLIGHT.set(self._in_flight)
        try:
            strategy = await self._transmit(encode_batch(batch), urgent=urgent)
        except Exception as exc:
            self._on_failure(batch, record, exc)
        else:
            self._on_success(batch, record, strategy)
        finally:
            self._in_flight -= 1
            IN_FLIGHT.set(self._in_flight)
            self._publish_gauges()

    async def _transmit(self, body: bytes, *, urgent: bool) -> str:
        """Try beacon (urgent only) → primary → legacy. Raises if all fail."""
        if urgent and self._try_beacon(body):
            return "beacon"

        try:
            await self._timed(self._sender.post(self._url, body, self._headers, self._timeout_s))
            BATCHES_TOTAL.labels(strategy="primary", outcome="success").inc()
            return "primary"
        except Exception as exc:
            BATCHES_TOTAL.labels(strategy="primary", outcome="failure").inc()
            logger.debug(f"Primary request failed: {describe_failure(exc)}")

        try:
            await self._timed(
                self._sender.post_legacy(self._url, body, self._headers, self._timeout_s)
            )
        except Exception:
            BATCHES_TOTAL.labels(strategy="legacy", outcome="failure").inc()
            raise
        BATCHES_TOTAL.labels(strategy="legacy", outcome="success").inc()
        return "legacy"

    async def _timed(self, request) -> None:
        try:
            await asyncio.wait_for(request, timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            raise DeliveryTimeout(f"no response within {self._timeout_s:.3f}s") from exc

    def _try_beacon(self, body: bytes) -> bool:
        try:
            if not self._sender.supports_beacon:
                return False
            ok = bool(self._sender.beacon(self._url, body, self._headers))
        except Exception as exc:
            logger.debug(f"Beacon raised: {describe_failure(exc)}")
            ok = False
        BATCHES_TOTAL.labels(strategy="beacon", outcome="success" if ok else "failure").inc()
        return ok

    def _on_success(
        self, batch: Sequence[Event], record: Optional[RetryRecord], strategy: str
    ) -> None:
        if record is not None:
            self._retry.discard(record)
        if self._store is not None:
            self._store.record_last_flush_time(self._clock.now_ms())
        logger.debug(f"Delivered batch of {len(batch)} via {strategy}")

    def _on_failure(
        self, batch: Sequence[Event], record: Optional[RetryRecord], exc: Exception
    ) -> None:
        if self._closed and record is None:
            # teardown already captured this batch
            return
        if record is None:
            self._retry.add(
                batch, self._clock.now_ms() + self._retry_policy.next_backoff_ms(0)
            )
            logger.debug(
                f"Batch of {len(batch)} failed ({describe_failure(exc)}); queued for retry"
            )
        else:
            record.in_flight = False
            logger.debug(
                f"Retry {record.attempts} of batch ({len(batch)}) failed: {describe_failure(exc)}"
            )

    # --------------------------- teardown

    def handle_teardown(self) -> bool:
        """Page-hide / exit path. Never suspends.

        Persists every undelivered event (queued, awaiting retry, or in
        flight), then attempts one beacon with the same set. Queues and the
        retry set are emptied. Returns True if the beacon was accepted.
        """
        pending: List[Event] = self._queues.drain_all()
        pending.extend(self._retry.events())
        for task, batch in list(self._tasks.items()):
            if not task.done():
                pending.extend(batch)
        self._retry.clear()
        self._publish_gauges()

        if not pending:
            return False

        if self._store is not None:
            self._store.persist(pending)
        try:
            body = encode_batch(pending)
        except (TypeError, ValueError) as exc:
            logger.warning(f"Teardown batch not serializable, beacon skipped: {exc}")
            return False
        ok = self._try_beacon(body)
        logger.debug(f"Teardown flush: {len(pending)} events, beacon={'ok' if ok else 'failed'}")
        return ok

    # --------------------------- status

    def status(self) -> DeliveryStatus:
        return DeliveryStatus(
            high=self._queues.size(Priority.HIGH),
            medium=self._queues.size(Priority.MEDIUM),
            low=self._queues.size(Priority.LOW),
            retry=len(self._retry),
            in_flight=self._in_flight,
        )

    def _publish_gauges(self) -> None:
        for p in DRAIN_ORDER:
            QUEUE_DEPTH.labels(priority=p.value).set(self._queues.size(p))
        RETRY_QUEUE_SIZE.set(len(self._retry))


def _has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
        return True
    except RuntimeError:
        return False
