import pytest
import os
import sys
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient

# Add the 'backend' directory to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ace.config import Settings
from ace.main import create_app
from ace.memory import MemoryStore
from ace.models import ActivityCategory, ActivityRecord, ActivityType, category_weight
from ace.sessions import SessionManager, SessionRegistry
from ace.storage import DuplicateSessionError, MongoStorage, StorageError

NOW = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)

PRIORITIES = {
    ActivityType.DEVELOPMENT: 1,
    ActivityType.LEARNING: 2,
    ActivityType.COMMUNICATION: 3,
    ActivityType.ENTERTAINMENT: 4,
    ActivityType.WORK: 1,
}


class InMemoryStorage:
    """
    Test double with the same coroutine surface as MongoStorage.
    Operations named in `fail_on` raise StorageError; `fail_insert_memory_calls`
    fails specific (1-based) insert_memory calls; `taken_session_ids` collide on insert.
    """

    def __init__(self):
        self.users = {}
        self.sessions = {}
        self.memories = []
        self.activities = {}
        self.fail_on = set()
        self.fail_insert_memory_calls = set()
        self.taken_session_ids = set()
        self.insert_memory_calls = 0

    def _check(self, op):
        if op in self.fail_on:
            raise StorageError(f"{op} unavailable")

    async def ping(self):
        return "ping" not in self.fail_on

    async def ensure_indexes(self):
        self._check("ensure_indexes")

    async def upsert_user(self, profile):
        self._check("upsert_user")
        self.users[profile.user_id] = profile

    async def session_exists(self, session_id):
        self._check("session_exists")
        return session_id in self.sessions

    async def insert_session(self, session):
        self._check("insert_session")
        if session.id in self.sessions or session.id in self.taken_session_ids:
            raise DuplicateSessionError(f"Session id already exists: {session.id}")
        self.sessions[session.id] = session

    async def insert_memory(self, session_id, entry):
        self.insert_memory_calls += 1
        self._check("insert_memory")
        if self.insert_memory_calls in self.fail_insert_memory_calls:
            raise StorageError("insert failed")
        self.memories.append((session_id, entry))

    async def recent_memories(self, session_id, limit):
        self._check("recent_memories")
        entries = [entry for sid, entry in reversed(self.memories) if sid == session_id]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    async def upsert_activity(self, user_id, record):
        self._check("upsert_activity")
        self.activities[record.id] = (user_id, record)

    async def recent_activities(self, user_id, limit):
        self._check("recent_activities")
        records = sorted((r for uid, r in self.activities.values() if uid == user_id),
                         key=lambda r: r.timestamp, reverse=True)[:limit]
        return list(reversed(records))

    async def delete_activities(self, user_id):
        self._check("delete_activities")
        ids = [rid for rid, (uid, _) in self.activities.items() if uid == user_id]
        for rid in ids:
            del self.activities[rid]
        return len(ids)


@pytest.fixture
def settings():
    return Settings(tracking_enabled=False, activity_source="browser", default_user_id="test-user")


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def memory_store(storage, registry):
    return MemoryStore(storage, registry)


@pytest.fixture
def session_manager(storage, registry):
    return SessionManager(storage, registry)


@pytest.fixture
def client(settings, storage):
    """
    TestClient over an app wired to the in-memory storage.
    Entering the context runs the lifespan (hydration, tracker start when enabled).
    """
    app = create_app(settings, storage=storage)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_activity():
    """
    Helper fixture building an ActivityRecord `minutes_ago` before NOW
    that lasted `spent_minutes`.
    """
    def _make(activity_type=ActivityType.WORK, minutes_ago=1.0, spent_minutes=0.0,
              application=None, url=None, now=NOW):
        activity_type = ActivityType(activity_type)
        return ActivityRecord(
            timestamp=now - timedelta(minutes=minutes_ago),
            application=application or activity_type.value.title(),
            url=url,
            time_spent=spent_minutes * 60 * 1000,
            category=ActivityCategory(type=activity_type, priority=PRIORITIES[activity_type]),
            productivity_score=category_weight(activity_type),
        )
    return _make


def make_cursor(mocker, docs):
    """Mocked motor cursor: chainable sort/limit, `to_list` returns `docs`."""
    cursor = mocker.MagicMock()
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = mocker.AsyncMock(return_value=docs)
    return cursor


@pytest.fixture
def mongo(mocker):
    """MongoStorage over a mocked motor client; each collection is the same MagicMock."""
    client = mocker.MagicMock()
    collection = client.__getitem__.return_value.__getitem__.return_value
    return MongoStorage(Settings(), client=client), collection
