import threading
import uuid

import pytest

from conftest import FakeProvider, StaticAuth
from core.errors import AuthError, NetworkUnavailable, PartialSyncError, QuotaExceeded
from core.events import (
    SYNC_COMPLETED,
    SYNC_FAILED,
    SYNC_IDLE,
    SYNC_SYNCING,
    DataRefreshed,
    SyncStatusChanged,
)
from models import TaskItem, TodoStatus, copy_item
from services.account_reactor import AccountChangeReactor
from services.remote_store import RemoteStoreClient
from services.session_auth import SessionAuthenticator
from services.sync_coordinator import SyncCoordinator


@pytest.fixture()
def auth():
    return StaticAuth("userX")


@pytest.fixture()
def make_coordinator(store, bus, records):
    created = []

    def build(authenticator, *, call_timeout=2.0, workers=4):
        remote = RemoteStoreClient(records, authenticator, timeout=call_timeout)
        coordinator = SyncCoordinator(
            store, remote, authenticator, bus, workers=workers, call_timeout=call_timeout
        )
        created.append(coordinator)
        return coordinator

    yield build
    for coordinator in created:
        coordinator.close(timeout=5)


@pytest.fixture()
def coordinator(make_coordinator, auth):
    return make_coordinator(auth)


def _settle(coordinator):
    assert coordinator.wait_for_background(timeout=5)


def test_add_writes_locally_and_pushes_in_background(coordinator, store, records):
    item = coordinator.add(TaskItem(title="Buy milk", priority=1))

    assert [i.id for i in store.get_all()] == [item.id]
    assert item.owner_id == "userX"
    assert item.updated_at >= item.created_at
    _settle(coordinator)
    assert store.get_sync_status(item.id).synced is True
    assert records.files[item.id]["title"] == "Buy milk"


def test_fetch_reflects_crud_sequence_in_order(coordinator):
    a = coordinator.add(TaskItem(title="a"))
    b = coordinator.add(TaskItem(title="b"))
    coordinator.update(copy_item(a, title="a2", status=TodoStatus.COMPLETED))
    coordinator.delete(b.id)
    c = coordinator.add(TaskItem(title="c"))

    items = {i.id: i for i in coordinator.fetch()}

    assert set(items) == {a.id, c.id}
    assert items[a.id].title == "a2"
    assert items[a.id].status == TodoStatus.COMPLETED
    _settle(coordinator)


def test_update_emits_refresh_immediately_add_does_not(coordinator, recorder):
    events = recorder(DataRefreshed)
    item = coordinator.add(TaskItem(title="a"))
    assert events == []

    coordinator.update(copy_item(item, title="b"))

    assert events[0] == DataRefreshed("updated")
    _settle(coordinator)


def test_perform_sync_with_nothing_unsynced_makes_no_remote_call(store, bus, records, recorder):
    provider = FakeProvider("userX")
    authenticator = SessionAuthenticator(provider, store, bus)
    remote = RemoteStoreClient(records, authenticator, timeout=1)
    coordinator = SyncCoordinator(store, remote, authenticator, bus)
    events = recorder(SyncStatusChanged)
    try:
        assert coordinator.perform_sync() == 0
        assert [e.status for e in events] == [SYNC_IDLE]
        assert provider.calls == 0
        assert records.saved == [] and records.deleted == []
    finally:
        coordinator.close()
        authenticator.close()


def test_remote_disabled_keeps_items_local_and_sync_reports_zero(store, bus, records, make_coordinator):
    provider = FakeProvider(AuthError("one"), AuthError("two"))
    authenticator = SessionAuthenticator(provider, store, bus, reset_delay=60)
    authenticator.perform_authentication().result(timeout=5)
    authenticator.perform_authentication().result(timeout=5)
    assert authenticator.remote_disabled
    coordinator = make_coordinator(authenticator)
    try:
        item = coordinator.add(TaskItem(title="Buy milk", priority=1))

        shown = coordinator.fetch()
        assert [(i.title, i.priority) for i in shown] == [("Buy milk", 1)]
        assert store.get_sync_status(item.id).synced is False
        assert item.owner_id == "unknown_user"

        assert coordinator.perform_sync() == 0
        assert store.get_unsynced_ids() == [item.id]
        assert provider.calls == 2
        assert records.saved == []
    finally:
        _settle(coordinator)
        authenticator.close()


def test_perform_sync_pushes_every_unsynced_item(coordinator, store, auth, records, recorder):
    auth.ok = False
    ids = [coordinator.add(TaskItem(title=f"t{n}")).id for n in range(5)]
    _settle(coordinator)
    auth.ok = True
    events = recorder(SyncStatusChanged)

    assert coordinator.perform_sync() == 5

    assert store.get_unsynced_ids() == []
    assert set(records.files) == set(ids)
    assert store.last_sync_time is not None
    assert [e.status for e in events] == [SYNC_SYNCING, SYNC_COMPLETED]
    assert events[-1].synced_count == 5


def test_partial_failure_reports_count_and_keeps_failed_unsynced(coordinator, store, auth, records, recorder):
    auth.ok = False
    good = coordinator.add(TaskItem(title="good"))
    bad = coordinator.add(TaskItem(title="bad"))
    _settle(coordinator)
    auth.ok = True
    records.fail_titles["bad"] = QuotaExceeded("full")
    events = recorder(SyncStatusChanged)

    with pytest.raises(PartialSyncError) as info:
        coordinator.perform_sync()

    assert info.value.synced_count == 1
    assert info.value.failed_ids == [bad.id]
    assert store.get_unsynced_ids() == [bad.id]
    assert store.get_sync_status(bad.id).last_error == "full"
    assert store.get_sync_status(good.id).synced is True
    assert events[-1].status == SYNC_FAILED

    del records.fail_titles["bad"]
    assert coordinator.perform_sync() == 1


def test_hung_push_counts_as_retryable_failure(make_coordinator, auth, store, records):
    coordinator = make_coordinator(auth, call_timeout=0.2)
    auth.ok = False
    item = coordinator.add(TaskItem(title="slow"))
    _settle(coordinator)
    auth.ok = True
    records.gates["slow"] = threading.Event()

    try:
        with pytest.raises(PartialSyncError) as info:
            coordinator.perform_sync()
        error = info.value.failures[item.id]
        assert isinstance(error, NetworkUnavailable)
        assert error.retryable
    finally:
        records.gates["slow"].set()


def test_rapid_updates_end_synced_with_latest_local_state(coordinator, store, records):
    item = coordinator.add(TaskItem(title="v0"))
    _settle(coordinator)

    coordinator.update(copy_item(item, title="v1"))
    coordinator.update(copy_item(item, title="v2"))
    _settle(coordinator)

    assert store.get(item.id).title == "v2"
    assert store.get_sync_status(item.id).synced is True
    assert records.files[item.id]["title"] in {"v1", "v2"}


def test_stale_push_never_marks_newer_edit_synced(coordinator, store, records):
    for title in ("v1", "v2"):
        records.gates[title] = threading.Event()
        records.entered[title] = threading.Event()

    item = coordinator.add(TaskItem(title="v1"))
    assert records.entered["v1"].wait(5)
    coordinator.update(copy_item(item, title="v2"))
    assert records.entered["v2"].wait(5)

    records.gates["v1"].set()
    assert coordinator.wait_for_background(timeout=0.5) is False
    assert store.get_sync_status(item.id).synced is False

    records.gates["v2"].set()
    _settle(coordinator)
    assert store.get_sync_status(item.id).synced is True
    assert store.get(item.id).title == "v2"


def test_delete_is_local_first_and_remote_delete_is_retried(coordinator, store, auth, records):
    item = coordinator.add(TaskItem(title="gone"))
    _settle(coordinator)
    auth.ok = False

    coordinator.delete(item.id)

    assert store.get(item.id) is None
    _settle(coordinator)
    assert store.pending_delete_ids() == [item.id]
    assert item.id in records.files

    auth.ok = True
    assert coordinator.perform_sync() == 1
    assert store.pending_delete_ids() == []
    assert item.id not in records.files


def test_fetch_pulls_remote_items_and_emits_follow_up_refresh(coordinator, store, records, recorder):
    remote_item = TaskItem(title="from phone", owner_id="userX")
    records.seed(remote_item)
    events = recorder(DataRefreshed)

    assert coordinator.fetch() == []
    _settle(coordinator)

    assert [i.id for i in store.get_all()] == [remote_item.id]
    assert events == [DataRefreshed("reconciled")]

    coordinator.fetch()
    _settle(coordinator)
    assert len(events) == 1


def test_pull_does_not_overwrite_unsynced_local_edit(coordinator, store, auth, records):
    item = coordinator.add(TaskItem(title="remote"))
    _settle(coordinator)
    auth.ok = False
    coordinator.update(copy_item(item, title="local"))
    _settle(coordinator)
    auth.ok = True
    records.fail_titles["local"] = NetworkUnavailable("offline")

    assert coordinator.reconcile() == []
    assert records.files[item.id]["title"] == "remote"
    assert store.get(item.id).title == "local"


def test_account_switch_never_shows_previous_owner(store, bus, records, make_coordinator):
    store.set_current_identity("userX")
    provider = FakeProvider("userX", "userY", default="userY")
    authenticator = SessionAuthenticator(provider, store, bus, reset_delay=60)
    coordinator = make_coordinator(authenticator)
    reactor = AccountChangeReactor(bus, store, coordinator, authenticator)
    try:
        coordinator.add(TaskItem(title="x's task"))
        _settle(coordinator)
        records.seed(TaskItem(title="y's task", owner_id="userY"))

        seen = []
        bus.subscribe(DataRefreshed, lambda _e: seen.append(store.get_all()))
        authenticator.refresh_authentication().result(timeout=5)

        assert seen[0] == []
        assert all(i.owner_id == "userY" for i in store.get_all())
        _settle(coordinator)
        items = coordinator.fetch()
        assert [i.title for i in items] == ["y's task"]
        assert all(i.owner_id == "userY" for i in items)
        _settle(coordinator)
    finally:
        reactor.close()
        authenticator.close()


def test_pull_started_before_account_switch_is_dropped(store, bus, records, make_coordinator):
    store.set_current_identity("userX")
    provider = FakeProvider("userX", "userY", default="userY")
    authenticator = SessionAuthenticator(provider, store, bus, reset_delay=60)
    coordinator = make_coordinator(authenticator)
    reactor = AccountChangeReactor(bus, store, coordinator, authenticator)
    records.seed(TaskItem(title="x secret", owner_id="userX"))
    records.query_gates["userX"] = threading.Event()
    records.query_entered["userX"] = threading.Event()
    try:
        assert authenticator.perform_authentication().result(timeout=5)
        pulled = []
        pull = threading.Thread(target=lambda: pulled.extend(coordinator.reconcile()))
        pull.start()
        assert records.query_entered["userX"].wait(5)

        assert authenticator.refresh_authentication().result(timeout=5)
        assert authenticator.identity == "userY"
        records.query_gates["userX"].set()
        pull.join(5)
        _settle(coordinator)

        assert not pull.is_alive()
        assert pulled == []
        assert [(i.title, i.owner_id) for i in store.get_all()] == []
    finally:
        records.query_gates["userX"].set()
        reactor.close()
        authenticator.close()


def test_resolved_deletes_and_resets_release_revisions(coordinator, store):
    kept = coordinator.add(TaskItem(title="kept"))
    gone = coordinator.add(TaskItem(title="gone"))
    _settle(coordinator)

    coordinator.delete(gone.id)
    _settle(coordinator)
    assert set(coordinator._revisions) == {kept.id}

    coordinator.forget_revisions()
    assert coordinator._revisions == {}


def test_push_outcome_from_before_a_reset_is_dropped(coordinator, store, records):
    records.gates["slow"] = threading.Event()
    records.entered["slow"] = threading.Event()
    item = coordinator.add(TaskItem(title="slow"))
    assert records.entered["slow"].wait(5)

    coordinator.forget_revisions()
    store.clear_all()
    store.upsert(item)
    records.gates["slow"].set()
    _settle(coordinator)

    assert store.get_sync_status(item.id).synced is False


def test_status_report(coordinator, auth):
    auth.ok = False
    coordinator.add(TaskItem(title="a"))
    _settle(coordinator)

    report = coordinator.status()

    assert report.unsynced_count == 1
    assert report.pending_deletes == 0
    assert report.last_sync_time is None


def test_closed_coordinator_drops_background_work(make_coordinator, auth, store):
    coordinator = make_coordinator(auth)
    coordinator.close()

    item = coordinator.add(TaskItem(title="offline"))

    assert store.get(item.id) is not None
    assert store.get_unsynced_ids() == [item.id]


def test_ids_are_preserved(coordinator):
    item_id = uuid.uuid4()
    stored = coordinator.add(TaskItem(id=item_id, title="a"))
    assert stored.id == item_id
    _settle(coordinator)
