"""Delivery engine

Priority-queue based delivery of telemetry events:
- PriorityQueueSet (high/medium/low FIFO sequences with a shared ceiling)
- RetryPolicy with exponential backoff
- RetrySet of failed batches
- DeliveryEngine: batching timer, retry timer, beacon/primary/legacy
  transports and the non-suspending teardown flush
"""

from .engine import MAX_IN_FLIGHT, DeliveryEngine, DeliveryStatus, encode_batch
from .policy import RetryPolicy, describe_failure
from .queue import DRAIN_ORDER, PriorityQueueSet
from .retry import RetryRecord, RetrySet

__all__ = [
    # runtime
    "DeliveryEngine",
    "DeliveryStatus",
    "MAX_IN_FLIGHT",
    "encode_batch",
    # queues
    "PriorityQueueSet",
    "DRAIN_ORDER",
    "RetrySet",
    "RetryRecord",
    # policies
    "RetryPolicy",
    "describe_failure",
]
