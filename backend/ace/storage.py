# ace/storage.py
import logging
from typing import Callable, List, Optional, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError
from pymongo.server_api import ServerApi
from pydantic import ValidationError

from .config import Settings
from .models import ActivityRecord, MemoryEntry, Session, UserProfile
from .utils import ensure_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageError(Exception):
    """Raised when the persistence backend cannot complete an operation."""
    pass


class DuplicateSessionError(StorageError):
    """Raised when a session id is already taken."""
    pass


# ------------------------
# Document <-> model helpers
# ------------------------

def _memory_from_doc(doc: dict) -> MemoryEntry:
    return MemoryEntry(
        timestamp=ensure_utc(doc.get("timestamp")),
        content=doc.get("content", ""),
        importance=doc.get("importance", 0.0),
        emotional_valence=doc.get("emotional_valence", 0.0),
        key_concepts=doc.get("key_concepts") or [],
        activity_type=doc.get("activity_type"),
        productivity_score=doc.get("productivity_score"),
    )


def _activity_from_doc(doc: dict) -> ActivityRecord:
    return ActivityRecord(
        id=str(doc["_id"]),
        timestamp=ensure_utc(doc.get("timestamp")),
        application=doc.get("application", ""),
        url=doc.get("url"),
        time_spent=doc.get("time_spent", 0.0),
        category=doc.get("category"),
        productivity_score=doc.get("productivity_score", 0.0),
    )


def _models_from_docs(docs: List[dict], convert: Callable[[dict], T], kind: str) -> List[T]:
    """Convert stored documents, skipping (and logging) rows that no longer validate."""
    models = []
    for doc in docs:
        try:
            models.append(convert(doc))
        except (ValidationError, KeyError, TypeError) as e:
            logger.warning(f"Skipping malformed {kind} document {doc.get('_id')}: {e}")
    return models


class MongoStorage:
    """Async MongoDB persistence for users, sessions, memories and activities."""

    def __init__(self, settings: Settings, client: Optional[AsyncIOMotorClient] = None):
        # tz_aware so timestamps come back as UTC-aware datetimes
        self.client = client or AsyncIOMotorClient(settings.mongo_uri, server_api=ServerApi('1'), tz_aware=True)
        db = self.client[settings.mongo_db]
        self.users = db["users"]
        self.sessions = db["sessions"]
        self.memories = db["memories"]
        self.activities = db["activities"]

    async def ping(self) -> bool:
        try:
            await self.client.admin.command('ping')
            return True
        except PyMongoError as e:
            logger.error(f"MongoDB ping failed: {e}")
            return False

    async def ensure_indexes(self) -> None:
        try:
            await self.sessions.create_index("user_id")
            await self.memories.create_index([("session_id", ASCENDING), ("timestamp", DESCENDING)])
            await self.activities.create_index([("user_id", ASCENDING), ("timestamp", DESCENDING)])
        except PyMongoError as e:
            raise StorageError(f"Index creation failed: {e}") from e

    # ------------------------
    # Users & Sessions
    # ------------------------

    async def upsert_user(self, profile: UserProfile) -> None:
        doc = profile.model_dump(exclude={"user_id"})
        try:
            await self.users.update_one({"_id": profile.user_id}, {"$set": doc}, upsert=True)
        except PyMongoError as e:
            raise StorageError(f"Failed to upsert user {profile.user_id}: {e}") from e

    async def session_exists(self, session_id: str) -> bool:
        try:
            return await self.sessions.find_one({"_id": session_id}, {"_id": 1}) is not None
        except PyMongoError as e:
            raise StorageError(f"Failed to look up session {session_id}: {e}") from e

    async def insert_session(self, session: Session) -> None:
        doc = session.model_dump(exclude={"id"})
        doc["_id"] = session.id
        try:
            await self.sessions.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateSessionError(f"Session id already exists: {session.id}") from e
        except PyMongoError as e:
            raise StorageError(f"Failed to insert session {session.id}: {e}") from e

    # ------------------------
    # Memories
    # ------------------------

    async def insert_memory(self, session_id: str, entry: MemoryEntry) -> None:
        doc = entry.model_dump(mode="python")
        doc["session_id"] = session_id
        if entry.activity_type is not None:
            doc["activity_type"] = entry.activity_type.value
        try:
            await self.memories.insert_one(doc)
        except PyMongoError as e:
            raise StorageError(f"Failed to insert memory for session {session_id}: {e}") from e

    async def recent_memories(self, session_id: str, limit: int) -> List[MemoryEntry]:
        """Newest-first, at most `limit` entries."""
        try:
            cursor = self.memories.find({"session_id": session_id}).sort("timestamp", DESCENDING).limit(limit)
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise StorageError(f"Failed to read memories for session {session_id}: {e}") from e
        return _models_from_docs(docs, _memory_from_doc, "memory")

    # ------------------------
    # Activities
    # ------------------------

    async def upsert_activity(self, user_id: str, record: ActivityRecord) -> None:
        doc = record.model_dump(mode="python", exclude={"id"})
        doc["category"]["type"] = record.category.type.value
        doc["user_id"] = user_id
        try:
            await self.activities.update_one({"_id": record.id}, {"$set": doc}, upsert=True)
        except PyMongoError as e:
            raise StorageError(f"Failed to persist activity {record.id}: {e}") from e

    async def recent_activities(self, user_id: str, limit: int) -> List[ActivityRecord]:
        """The newest `limit` records, returned oldest-first."""
        try:
            cursor = self.activities.find({"user_id": user_id}).sort("timestamp", DESCENDING).limit(limit)
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise StorageError(f"Failed to read activities for user {user_id}: {e}") from e
        return _models_from_docs(list(reversed(docs)), _activity_from_doc, "activity")

    async def delete_activities(self, user_id: str) -> int:
        try:
            result = await self.activities.delete_many({"user_id": user_id})
        except PyMongoError as e:
            raise StorageError(f"Failed to delete activities for user {user_id}: {e}") from e
        return result.deleted_count
