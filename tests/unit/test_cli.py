"""
Unit tests for the webmon CLI.
"""

import sys

import pytest
from loguru import logger
from typer.testing import CliRunner

from webmon import FileStore
from webmon.cli import _NoBeaconSender, app
from webmon.storage import DurableQueueStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def _restore_loguru():
    yield
    # the CLI callback rewires loguru sinks to the runner's streams
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def persisted(tmp_path, make_event):
    store = DurableQueueStore(FileStore(tmp_path))
    events = [make_event("error"), make_event("performance"), make_event("behavior")]
    store.persist(events)
    store.record_last_flush_time(1_700_000_000_000)
    return store


def test_inspect(tmp_path, persisted):
    result = runner.invoke(app, ["inspect", "--store-dir", str(tmp_path)])
    assert result.exit_code == 0
    assert "Persisted events: 3" in result.output
    assert "[error/high]" in result.output
    assert "2023-11-14" in result.output


def test_inspect_empty(tmp_path):
    result = runner.invoke(app, ["inspect", "--store-dir", str(tmp_path)])
    assert result.exit_code == 0
    assert "Persisted events: 0" in result.output
    assert "never" in result.output


def test_clear(tmp_path, persisted):
    result = runner.invoke(app, ["clear", "--store-dir", str(tmp_path)])
    assert result.exit_code == 0
    assert persisted.restore() == []


def test_replay_delivers_and_empties_store(tmp_path, persisted, monkeypatch):
    bodies = []

    async def fake_post(self, url, body, headers, timeout):
        bodies.append(body)

    monkeypatch.setattr(_NoBeaconSender, "post", fake_post)
    result = runner.invoke(
        app, ["replay", "https://collector.test/x", "--store-dir", str(tmp_path), "--batch-size", "2"]
    )

    assert result.exit_code == 0
    # one batch per priority sequence
    assert len(bodies) == 3
    assert persisted.restore() == []


def test_replay_failure_keeps_events(tmp_path, persisted, monkeypatch):
    async def down(self, url, body, headers, timeout):
        raise ConnectionError("collector down")

    monkeypatch.setattr(_NoBeaconSender, "post", down)
    monkeypatch.setattr(_NoBeaconSender, "post_legacy", down)
    result = runner.invoke(app, ["replay", "https://collector.test/x", "--store-dir", str(tmp_path)])

    assert result.exit_code == 1
    assert len(persisted.restore()) == 3


def test_replay_nothing(tmp_path):
    result = runner.invoke(app, ["replay", "https://collector.test/x", "--store-dir", str(tmp_path)])
    assert result.exit_code == 0
    assert "Nothing to replay" in result.output


def test_send_test(tmp_path, monkeypatch):
    bodies = []

    async def fake_post(self, url, body, headers, timeout):
        bodies.append(body)

    monkeypatch.setenv("WEBMON_STORE_DIR", str(tmp_path))
    monkeypatch.setattr(_NoBeaconSender, "post", fake_post)
    result = runner.invoke(app, ["send-test", "https://collector.test/x", "--message", "hello"])

    assert result.exit_code == 0
    assert len(bodies) == 1
    assert b'"message":"hello"' in bodies[0]
