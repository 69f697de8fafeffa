from __future__ import annotations

import pytest

from conftest import FakeAnalyticsSource, make_credential
from videomirror.errors import PersistenceError, SyncError
from videomirror.sync.views import ViewReconciliationEngine


class RecordingStore:
    def __init__(self, known: set[str], broken: set[str] = frozenset()) -> None:
        self.known = known
        self.broken = broken
        self.updates: list[tuple[str, int]] = []

    def update_video_views(self, video_id: str, views: int) -> bool:
        if video_id in self.broken:
            raise PersistenceError("disk I/O error")
        self.updates.append((video_id, views))
        return video_id in self.known


def test_null_video_ids_are_dropped():
    source = FakeAnalyticsSource([("v1", 5), (None, 9), ("v2", 1)])
    store = RecordingStore(known={"v1", "v2"})

    updated = ViewReconciliationEngine(source).reconcile_once(store, make_credential())

    assert updated == 2
    assert store.updates == [("v1", 5), ("v2", 1)]
    assert source.bulk_calls == 1


def test_unknown_video_is_a_silent_no_op(db, seed):
    seed("6300000000001")
    source = FakeAnalyticsSource([("6300000000001", 42), ("6399999999999", 7)])

    updated = ViewReconciliationEngine(source).reconcile_once(db, make_credential())

    assert updated == 1
    assert db.get_video("6300000000001").video_views == 42
    assert db.get_video("6399999999999") is None
    assert db.count_videos() == 1


def test_row_failure_does_not_abort_the_batch():
    source = FakeAnalyticsSource([("v1", 5), ("v2", 6), ("v3", 7)])
    store = RecordingStore(known={"v1", "v2", "v3"}, broken={"v2"})

    updated = ViewReconciliationEngine(source).reconcile_once(store, make_credential())

    assert updated == 2
    assert store.updates == [("v1", 5), ("v3", 7)]


def test_fetch_failure_aborts_the_pass():
    store = RecordingStore(known={"v1"})
    source = FakeAnalyticsSource(SyncError("analytics down"))

    with pytest.raises(SyncError):
        ViewReconciliationEngine(source).reconcile_once(store, make_credential())

    assert store.updates == []


def test_scoped_lookup_uses_the_id_list():
    source = FakeAnalyticsSource([("v1", 3)])
    store = RecordingStore(known={"v1"})

    updated = ViewReconciliationEngine(source).reconcile_once(store, make_credential(), ["v1", "v9"])

    assert updated == 1
    assert source.scoped_calls == [["v1", "v9"]]
    assert source.bulk_calls == 0


def test_views_update_leaves_catalog_fields_alone(db, seed):
    seed("6300000000001")
    before = db.get_video("6300000000001")

    ViewReconciliationEngine(FakeAnalyticsSource([("6300000000001", 11)])).reconcile_once(db, make_credential())

    after = db.get_video("6300000000001")
    assert after.video_views == 11
    assert (after.name, after.data, after.thumbnail) == (before.name, before.data, before.thumbnail)
