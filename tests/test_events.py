from core.events import (
    SYNC_COMPLETED,
    SYNC_FAILED,
    AccountChanged,
    DataRefreshed,
    EventBus,
    SyncStatusChanged,
)


def test_every_subscriber_receives_event_even_if_one_fails():
    bus = EventBus()
    received = []

    def broken(_event):
        raise RuntimeError("listener bug")

    bus.subscribe(DataRefreshed, broken)
    bus.subscribe(DataRefreshed, received.append)

    delivered = bus.emit(DataRefreshed("x"))

    assert received == [DataRefreshed("x")]
    assert delivered == 1


def test_events_are_routed_by_type():
    bus = EventBus()
    refreshed, accounts = [], []
    bus.subscribe(DataRefreshed, refreshed.append)
    bus.subscribe(AccountChanged, accounts.append)

    bus.emit(AccountChanged("userY"))

    assert refreshed == []
    assert accounts == [AccountChanged("userY")]


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(DataRefreshed, received.append)

    unsubscribe()
    unsubscribe()
    bus.emit(DataRefreshed())

    assert received == []


def test_subscriber_added_during_emit_waits_for_next_event():
    bus = EventBus()
    late = []

    def add_late(_event):
        bus.subscribe(DataRefreshed, late.append)

    bus.subscribe(DataRefreshed, add_late)
    bus.emit(DataRefreshed("first"))
    assert late == []

    bus.emit(DataRefreshed("second"))
    assert late == [DataRefreshed("second")]


def test_sync_status_constructors():
    error = RuntimeError("x")
    assert SyncStatusChanged.completed(3) == SyncStatusChanged(SYNC_COMPLETED, synced_count=3)
    assert SyncStatusChanged.failed(error).status == SYNC_FAILED
    assert SyncStatusChanged.failed(error).error is error
