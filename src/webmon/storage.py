"""
Durable queue store.

Keeps a snapshot of undelivered events in a ``PersistentStore`` so a restart
does not silently lose them. Every public method degrades to a no-op,
``False`` or an empty result when the medium misbehaves; nothing here raises
into the pipeline.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from .errors import StorageUnavailable
from .host import PersistentStore
from .types import Event

QUEUE_KEY = "webmon_queue"
TIMER_KEY = "webmon_timer"
DEFAULT_MAX_BYTES = 1024 * 1024  # 1MB

# undecodable bytes count as a broken medium for reads
_MEDIUM_ERRORS = (StorageUnavailable, OSError, UnicodeDecodeError)


@dataclass(frozen=True)
class StoreDebugInfo:
    """Snapshot of what is currently persisted."""

    has_data: bool
    count: int
    size_bytes: int
    last_flush_time: Optional[int]
    events: List[Event]


class DurableQueueStore:
    """JSON snapshot of pending events plus the last batch-flush timestamp."""

    def __init__(
        self,
        medium: PersistentStore,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        queue_key: str = QUEUE_KEY,
        timer_key: str = TIMER_KEY,
    ):
        if max_bytes <= 0:
            raise ValueError("max_bytes must be > 0")
        self._medium = medium
        self._max_bytes = max_bytes
        self._queue_key = queue_key
        self._timer_key = timer_key

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    # --------------------------- queue snapshot

    def persist(self, events: Sequence[Event]) -> bool:
        """Replace the snapshot with ``events``. False if refused or failed."""
        try:
            raw = json.dumps([e.to_wire() for e in events], separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            logger.warning(f"Queue snapshot not serializable: {exc}")
            return False

        if len(raw.encode("utf-8")) > self._max_bytes:
            logger.warning(
                f"Queue snapshot too large ({len(raw)} bytes > {self._max_bytes}); not persisted"
            )
            return False

        try:
            self._medium.set(self._queue_key, raw)
        except _MEDIUM_ERRORS as exc:
            logger.warning(f"Failed to persist queue snapshot: {exc}")
            return False
        logger.debug(f"Persisted {len(events)} events ({len(raw)} bytes)")
        return True

    def restore(self) -> List[Event]:
        """Load the snapshot. Corrupt entries are cleared and yield []."""
        try:
            raw = self._medium.get(self._queue_key)
        except UnicodeDecodeError:
            logger.warning("Undecodable queue snapshot cleared")
            self.clear()
            return []
        except _MEDIUM_ERRORS as exc:
            logger.warning(f"Failed to read queue snapshot: {exc}")
            return []
        if not raw:
            return []

        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                logger.warning(f"Queue snapshot is a JSON {type(data).__name__}, not a list; cleared")
                self.clear()
                return []
            return [Event.model_validate(item) for item in data]
        except (ValueError, ValidationError) as exc:
            logger.warning(f"Corrupt queue snapshot cleared: {type(exc).__name__}")
            self.clear()
            return []

    def clear(self) -> None:
        try:
            self._medium.remove(self._queue_key)
        except _MEDIUM_ERRORS as exc:
            logger.warning(f"Failed to clear queue snapshot: {exc}")

    # --------------------------- timer cadence

    def record_last_flush_time(self, ts: int) -> bool:
        try:
            self._medium.set(self._timer_key, str(int(ts)))
            return True
        except _MEDIUM_ERRORS as exc:
            logger.warning(f"Failed to record last flush time: {exc}")
            return False

    def last_flush_time(self) -> Optional[int]:
        try:
            raw = self._medium.get(self._timer_key)
        except _MEDIUM_ERRORS:
            return None
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    # --------------------------- inspection

    def size_bytes(self) -> int:
        try:
            raw = self._medium.get(self._queue_key)
        except _MEDIUM_ERRORS:
            return 0
        return len(raw.encode("utf-8")) if raw else 0

    def debug_info(self) -> StoreDebugInfo:
        events = self.restore()
        return StoreDebugInfo(
            has_data=bool(events),
            count=len(events),
            size_bytes=self.size_bytes(),
            last_flush_time=self.last_flush_time(),
            events=events,
        )
