from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Tuple

from ..types import Event


@dataclass(eq=False)
class RetryRecord:
    """A failed batch waiting for another attempt."""

    batch: Tuple[Event, ...]
    attempts: int = 0
    next_retry_at: int = 0
    in_flight: bool = field(default=False, repr=False)


class RetrySet:
    """Insertion-ordered collection of retry records (identity semantics)."""

    def __init__(self) -> None:
        self._records: List[RetryRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[RetryRecord]:
        return iter(list(self._records))

    def add(self, batch, next_retry_at: int) -> RetryRecord:
        rec = RetryRecord(batch=tuple(batch), next_retry_at=next_retry_at)
        self._records.append(rec)
        return rec

    def due(self, now_ms: int) -> List[RetryRecord]:
        """Records whose wait has elapsed and that are not already being resent."""
        return [r for r in self._records if not r.in_flight and now_ms >= r.next_retry_at]

    def discard(self, record: RetryRecord) -> None:
        """Remove ``record``; no-op if it is already gone."""
        self._records = [r for r in self._records if r is not record]

    def events(self) -> List[Event]:
        return [e for r in self._records for e in r.batch]

    def clear(self) -> None:
        self._records.clear()
