import os
import tempfile
import threading
import uuid
from concurrent.futures import Future
from pathlib import Path
import sys

# Keep settings' import-time directories out of the real profile.
os.environ.setdefault("TODOLIST_DATA_DIR", tempfile.mkdtemp(prefix="todolist-tests-"))

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from sqlmodel import Session

from core.errors import AuthError
from core.events import EventBus
from services.drive_records import item_to_record
from storage.db import create_db_engine, init_db
from storage.local_store import LocalStore


class FakeProvider:
    """Credential provider returning scripted identities or errors."""

    def __init__(self, *outcomes, default="userX"):
        self.outcomes = list(outcomes)
        self.default = default
        self.calls = 0
        self.revoked = 0
        self._lock = threading.Lock()

    def authenticate(self):
        with self._lock:
            self.calls += 1
            outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            raise AuthError("no account")
        return outcome

    def revoke(self):
        self.revoked += 1


class FakeRecords:
    """In-memory stand-in for :class:`DriveRecordService`."""

    def __init__(self):
        self.files = {}
        self.saved = []
        self.deleted = []
        self.fail_with = None
        self.fail_titles = {}
        self.gates = {}
        self.entered = {}
        self.query_gates = {}
        self.query_entered = {}
        self.resets = 0
        self._lock = threading.Lock()

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def find(self, record_id):
        self._maybe_fail()
        with self._lock:
            if record_id in self.files:
                return {"id": f"file-{record_id}"}
        return None

    def put(self, record, *, file_id=None):
        self._maybe_fail()
        title = record.get("title")
        if title in self.gates:
            if title in self.entered:
                self.entered[title].set()
            assert self.gates[title].wait(5)
        if title in self.fail_titles:
            raise self.fail_titles[title]
        record_id = uuid.UUID(record["id"])
        with self._lock:
            self.files[record_id] = dict(record)
            self.saved.append(dict(record))
        return f"file-{record_id}"

    def delete(self, record_id):
        self._maybe_fail()
        with self._lock:
            self.deleted.append(record_id)
            return self.files.pop(record_id, None) is not None

    def query(self, owner_id):
        self._maybe_fail()
        with self._lock:
            found = [dict(r) for r in self.files.values() if r.get("ownerId") == owner_id]
        if owner_id in self.query_gates:
            if owner_id in self.query_entered:
                self.query_entered[owner_id].set()
            assert self.query_gates[owner_id].wait(5)
        return found

    def seed(self, item):
        self.files[item.id] = item_to_record(item)

    def reset(self):
        self.resets += 1


class StaticAuth:
    """Authenticator double with a fixed answer."""

    def __init__(self, identity="userX", ok=True):
        self.identity = identity
        self.ok = ok
        self.refreshes = 0

    def ensure_authenticated(self, callback=None):
        future = Future()
        future.set_result(self.ok)
        if callback is not None:
            callback(self.ok)
        return future

    def refresh_authentication(self):
        self.refreshes += 1
        future = Future()
        future.set_result(self.ok)
        return future

    def clear_remote_disabled(self):
        pass


@pytest.fixture()
def db_engine(tmp_path):
    # Worker threads need their own connections, so no in-memory database.
    engine = create_db_engine(tmp_path / "todolist.db")
    init_db(engine, backup=False)
    yield engine
    engine.dispose()


@pytest.fixture()
def store(db_engine):
    def factory():
        return Session(db_engine, expire_on_commit=False)

    return LocalStore(factory)


@pytest.fixture()
def bus():
    return EventBus()


@pytest.fixture()
def records():
    return FakeRecords()


@pytest.fixture()
def recorder(bus):
    """Collects every event of the given types emitted on ``bus``."""

    received = []

    def listen(*event_types):
        for event_type in event_types:
            bus.subscribe(event_type, received.append)
        return received

    return listen

