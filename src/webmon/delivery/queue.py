from __future__ import annotations

from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from ..types import Event, Priority

DRAIN_ORDER = (Priority.HIGH, Priority.MEDIUM, Priority.LOW)


class PriorityQueueSet:
    """Three FIFO sequences (high/medium/low) sharing one capacity ceiling.

    ``on_overflow`` fires synchronously from ``put`` whenever the total
    resident count reaches ``capacity``; the owner is expected to drain.
    """

    def __init__(
        self,
        capacity: int,
        *,
        on_overflow: Optional[Callable[[], None]] = None,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")

        self._capacity = capacity
        self._on_overflow = on_overflow
        self._seqs: Dict[Priority, Deque[Event]] = {p: deque() for p in DRAIN_ORDER}

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def total(self) -> int:
        return sum(len(s) for s in self._seqs.values())

    def __len__(self) -> int:
        return self.total

    def size(self, priority: Priority) -> int:
        return len(self._seqs[priority])

    def put(self, event: Event, priority: Priority, *, notify: bool = True) -> None:
        self._seqs[priority].append(event)
        if notify and self._on_overflow is not None and self.total >= self._capacity:
            self._on_overflow()

    def take(self, priority: Priority, n: int) -> List[Event]:
        """Pop up to ``n`` events from the front of one sequence."""
        seq = self._seqs[priority]
        out: List[Event] = []
        while seq and len(out) < n:
            out.append(seq.popleft())
        return out

    def snapshot(self) -> List[Event]:
        """All resident events in drain order, without removing them."""
        return [e for p in DRAIN_ORDER for e in self._seqs[p]]

    def drain_all(self) -> List[Event]:
        out = self.snapshot()
        for seq in self._seqs.values():
            seq.clear()
        return out
