"""
Demo script for the webmon Monitor.

Shows priority routing, batching, queue-ceiling flushes, retry after a
collector outage, and the teardown flush. Uses an in-process sender that
prints batches instead of talking to a real collector.
"""

import asyncio
import json
import sys
from typing import Mapping

from loguru import logger

from webmon import LoguruBreadcrumbs, MemoryStore, Monitor


class PrintSender:
    """NetworkSender that logs batches; fails the first ``outage`` posts."""

    supports_beacon = True

    def __init__(self, outage: int = 0):
        self.outage = outage

    def beacon(self, url: str, body: bytes, headers: Mapping[str, str]) -> bool:
        logger.info(f"📡 beacon: {len(json.loads(body))} events")
        return True

    async def post(self, url, body, headers, timeout) -> None:
        await asyncio.sleep(0.01)
        if self.outage > 0:
            self.outage -= 1
            raise ConnectionError("collector unavailable")
        events = json.loads(body)
        kinds = ", ".join(f"{e['type']}/{e['priority']}" for e in events)
        logger.info(f"📦 POST batch of {len(events)}: {kinds}")

    async def post_legacy(self, url, body, headers, timeout) -> None:
        await self.post(url, body, headers, timeout)


async def main():
    logger.remove()
    logger.add(sys.stderr, level="INFO")

    sender = PrintSender(outage=2)
    config = {
        "app_id": "demo-shop",
        "report_url": "https://collector.invalid/monitor/report",
        "report_interval_ms": 200,
        "batch_size": 5,
        "max_queue_size": 20,
        "retry_interval_ms": 100,
    }

    async with Monitor(config, store=MemoryStore(), sender=sender) as mon:
        mon.use(LoguruBreadcrumbs(level="INFO"))
        logger.info("🚀 Starting monitor demo")

        # first error hits the outage and goes to the retry set
        mon.report({"type": "error", "data": {"message": "payment declined"}})

        for i in range(12):
            mon.report({"type": "performance", "data": {"name": "LCP", "value": 1_000 + i}})
        for i in range(10):
            mon.report_behavior("click", {"target": f"button-{i}"})

        status = mon.status()
        logger.info(
            f"Queued: high={status.high} medium={status.medium} low={status.low} "
            f"retry={status.retry} in_flight={status.in_flight}"
        )

        logger.info("⏳ Waiting for timers...")
        await asyncio.sleep(1.0)

        status = mon.status()
        logger.info(f"After timers: queued={status.queued} retry={status.retry}")

        mon.report({"type": "behavior", "data": {"type": "scroll"}})
        logger.info("Closing with one event still queued (flushed on exit)")

    logger.info("✅ Monitor demo complete")


if __name__ == "__main__":
    asyncio.run(main())
