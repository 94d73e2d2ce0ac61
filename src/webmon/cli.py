import asyncio
import sys
from datetime import datetime, timezone
from typing import Optional

import typer
from loguru import logger

from webmon.config import get_settings
from webmon.delivery import DeliveryEngine
from webmon.errors import TransportUnavailable
from webmon.host import FileStore, HttpxNetworkSender
from webmon.monitor import Monitor
from webmon.storage import DurableQueueStore

app = typer.Typer(help="webmon CLI (inspect, replay and test the delivery pipeline)")


class _NoBeaconSender(HttpxNetworkSender):
    # replay must leave failures in the store, not fire them at exit
    @property
    def supports_beacon(self) -> bool:
        return False

    def beacon(self, url, body, headers) -> bool:
        raise TransportUnavailable("beacon disabled for CLI delivery")


def _store(store_dir: Optional[str]) -> DurableQueueStore:
    settings = get_settings()
    return DurableQueueStore(
        FileStore(store_dir or settings.store_dir, mkdirs=False),
        max_bytes=settings.store_max_bytes,
    )


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline debug logs")):
    logger.enable("webmon")
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


@app.command()
def inspect(store_dir: Optional[str] = typer.Option(None, help="Store directory")):
    """Show what is persisted in the durable queue store."""
    info = _store(store_dir).debug_info()
    logger.info(f"Persisted events: {info.count} ({info.size_bytes / 1024:.2f} KB)")
    if info.last_flush_time:
        ts = datetime.fromtimestamp(info.last_flush_time / 1000, tz=timezone.utc)
        logger.info(f"Last batch flush: {ts.isoformat()}")
    else:
        logger.info("Last batch flush: never")
    for i, event in enumerate(info.events, 1):
        ts = datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc)
        logger.info(
            f"  {i}. [{event.category.value}/{event.priority.value}] {ts.isoformat()} "
            f"session={event.session_id}"
        )


@app.command()
def clear(store_dir: Optional[str] = typer.Option(None, help="Store directory")):
    """Remove the persisted queue snapshot."""
    _store(store_dir).clear()
    logger.success("Queue snapshot cleared")


@app.command()
def replay(
    url: str = typer.Argument(..., help="Collector endpoint"),
    store_dir: Optional[str] = typer.Option(None, help="Store directory"),
    batch_size: int = typer.Option(10, help="Events per POST"),
    timeout: float = typer.Option(30.0, help="Seconds to wait for delivery"),
):
    """Deliver a persisted queue snapshot now."""
    store = _store(store_dir)

    async def _run() -> int:
        engine = DeliveryEngine(
            url=url,
            sender=_NoBeaconSender(),
            store=store,
            batch_size=batch_size,
            max_queue_size=sys.maxsize,
        )
        restored = engine.status().queued
        if not restored:
            logger.info("Nothing to replay")
            engine.close()
            return 0
        logger.info(f"Replaying {restored} events to {url}")
        engine.flush()
        await engine.wait_idle(timeout=timeout)
        failed = engine.status().retry
        engine.close()  # failures go back into the store
        return failed

    failed = asyncio.run(_run())
    if failed:
        logger.error(f"{failed} batches failed; left in the store for the next run")
        sys.exit(1)
    logger.success("Replay complete")


@app.command("send-test")
def send_test(
    url: str = typer.Argument(..., help="Collector endpoint"),
    app_id: str = typer.Option("webmon-cli", help="Application id"),
    message: str = typer.Option("webmon test event", help="Error message"),
):
    """Send one error event through the full pipeline."""

    async def _run() -> int:
        async with Monitor(
            {"app_id": app_id, "report_url": url, "debug": True},
            sender=_NoBeaconSender(),
        ) as mon:
            mon.report({"type": "error", "data": {"type": "custom_error", "message": message}})
            await mon.engine.wait_idle(timeout=10.0)
            return mon.status().retry

    if asyncio.run(_run()):
        logger.error("Test event was not accepted by the collector")
        sys.exit(1)
    logger.success("Test event delivered")


if __name__ == "__main__":
    app()
