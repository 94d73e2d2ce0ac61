"""
Unit tests for DurableQueueStore.
"""

import pytest

from webmon import FileStore, MemoryStore, StorageUnavailable
from webmon.storage import QUEUE_KEY, TIMER_KEY, DurableQueueStore
from webmon.types import Breadcrumb


class BrokenStore:
    """Medium that refuses everything (storage disabled by host policy)."""

    def get(self, key):
        raise StorageUnavailable("disabled")

    def set(self, key, value):
        raise StorageUnavailable("disabled")

    def remove(self, key):
        raise OSError("read-only")


def test_persist_restore_round_trip(store, make_event):
    crumb = Breadcrumb(timestamp=1, category="ui", message="click", data={"id": "buy"})
    events = [
        make_event("error", message="boom").model_copy(update={"breadcrumbs": (crumb,)}),
        make_event("behavior"),
    ]

    assert store.persist(events) is True
    restored = store.restore()

    assert [e.to_wire() for e in restored] == [e.to_wire() for e in events]
    assert restored[0].breadcrumbs[0].message == "click"


def test_wire_layout(medium, store, make_event):
    store.persist([make_event("performance")])
    raw = medium.get(QUEUE_KEY)
    assert raw.startswith("[{")
    assert '"appId":"test-app"' in raw
    assert '"type":"performance"' in raw


def test_oversized_snapshot_refused(medium, make_event):
    small = DurableQueueStore(medium, max_bytes=200)
    assert small.persist([make_event(blob="x" * 500)]) is False
    assert medium.get(QUEUE_KEY) is None


def test_corrupt_snapshot_cleared(medium):
    medium.set(QUEUE_KEY, "{not json")
    store = DurableQueueStore(medium)
    assert store.restore() == []
    assert medium.get(QUEUE_KEY) is None


def test_invalid_records_cleared(medium):
    medium.set(QUEUE_KEY, '[{"appId": "a"}]')
    store = DurableQueueStore(medium)
    assert store.restore() == []
    assert medium.get(QUEUE_KEY) is None


def test_non_list_snapshot_cleared(medium):
    medium.set(QUEUE_KEY, '{"a": 1}')
    assert DurableQueueStore(medium).restore() == []
    assert medium.get(QUEUE_KEY) is None


def test_undecodable_snapshot_cleared(tmp_path):
    (tmp_path / f"{QUEUE_KEY}.json").write_bytes(b"\xff\xfe[garbage")
    (tmp_path / f"{TIMER_KEY}.json").write_bytes(b"\xff\xfe")
    store = DurableQueueStore(FileStore(tmp_path))

    assert store.size_bytes() == 0
    assert store.last_flush_time() is None
    assert store.restore() == []
    assert not (tmp_path / f"{QUEUE_KEY}.json").exists()


def test_clear(store, make_event):
    store.persist([make_event()])
    store.clear()
    assert store.restore() == []


def test_last_flush_time(store, medium):
    assert store.last_flush_time() is None
    assert store.record_last_flush_time(1234) is True
    assert store.last_flush_time() == 1234
    medium.set(TIMER_KEY, "garbage")
    assert store.last_flush_time() is None


def test_unavailable_medium_degrades(make_event):
    store = DurableQueueStore(BrokenStore())
    assert store.persist([make_event()]) is False
    assert store.restore() == []
    store.clear()
    assert store.record_last_flush_time(1) is False
    assert store.last_flush_time() is None
    assert store.size_bytes() == 0


def test_quota_exceeded_degrades(make_event):
    store = DurableQueueStore(MemoryStore(quota_bytes=50))
    assert store.persist([make_event()]) is False


def test_file_store_round_trip(tmp_path, make_event):
    store = DurableQueueStore(FileStore(tmp_path / "webmon"))
    events = [make_event(), make_event("error")]
    assert store.persist(events) is True

    reopened = DurableQueueStore(FileStore(tmp_path / "webmon"))
    assert [e.to_wire() for e in reopened.restore()] == [e.to_wire() for e in events]


def test_file_store_missing_directory(tmp_path, make_event):
    store = DurableQueueStore(FileStore(tmp_path / "absent", mkdirs=False))
    assert store.persist([make_event()]) is False
    assert store.restore() == []


def test_debug_info(store, make_event):
    store.persist([make_event(), make_event()])
    store.record_last_flush_time(99)
    info = store.debug_info()
    assert info.has_data
    assert info.count == 2
    assert info.size_bytes > 0
    assert info.last_flush_time == 99


def test_max_bytes_must_be_positive(medium):
    with pytest.raises(ValueError):
        DurableQueueStore(medium, max_bytes=0)
