"""
Unit tests for the built-in producer extensions.
"""

import sys

from loguru import logger

from webmon import ExceptHookExtension, LoguruBreadcrumbs
from webmon.types import Level


def test_excepthook_reports_and_chains(make_monitor, sender, monkeypatch):
    chained = []
    monkeypatch.setattr(sys, "excepthook", lambda *args: chained.append(args))
    sender.beacon_enabled = True

    mon = make_monitor()
    mon.use(ExceptHookExtension())
    assert sys.excepthook is not None

    try:
        raise KeyError("cart")
    except KeyError as exc:
        sys.excepthook(type(exc), exc, exc.__traceback__)

    # reported, then flushed by the teardown path
    assert len(sender.beacons) == 1
    event = sender.beacons[0][0]
    assert event["type"] == "error"
    assert event["data"]["type"] == "uncaught_exception"
    assert event["data"]["exception"] == "KeyError"
    assert "raise KeyError" in event["data"]["stack"]
    assert len(chained) == 1


def test_excepthook_restored_on_uninstall(make_monitor, monkeypatch):
    def original(*args):
        pass

    monkeypatch.setattr(sys, "excepthook", original)
    mon = make_monitor()
    mon.use(ExceptHookExtension())
    assert sys.excepthook is not original

    mon.unuse("excepthook")
    assert sys.excepthook is original


def test_loguru_records_become_breadcrumbs(make_monitor):
    mon = make_monitor()
    mon.use(LoguruBreadcrumbs(level="INFO"))

    logger.debug("below threshold")
    logger.info("cart loaded")
    logger.warning("slow checkout")

    crumbs = mon.breadcrumbs
    assert [c.message for c in crumbs] == ["cart loaded", "slow checkout"]
    assert crumbs[0].category == "log"
    assert crumbs[1].level is Level.WARNING

    mon.unuse("loguru-breadcrumbs")
    logger.info("after uninstall")
    assert len(mon.breadcrumbs) == 2
