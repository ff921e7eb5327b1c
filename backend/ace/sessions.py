"""
Session management.

A session belongs to exactly one user. Each session owns an explicit state record
(working memory plus strength / association / last-accessed maps) held by the
SessionRegistry; memory ingestion and scoring receive that record directly.

    NotCreated --initialize_user--> UserReady --create_session--> SessionActive

There is no teardown state: sessions live until process exit or external deletion.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .models import MemoryEntry, Session, SessionContext, UserProfile, utc_now
from .storage import DuplicateSessionError, StorageError
from .utils import ensure_utc
from .working_memory import WORKING_MEMORY_CAPACITY, WorkingMemoryQueue

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class SessionCreationError(Exception):
    """Raised when no free session id was found within the retry budget."""
    pass


def generate_session_id() -> str:
    return f"session-{int(time.time() * 1000)}-{uuid.uuid4().hex[:10]}"


def memory_key(timestamp: datetime) -> str:
    """Strength and last-accessed maps are keyed by the memory's timestamp."""
    return ensure_utc(timestamp).isoformat()


@dataclass
class SessionState:
    session_id: str
    user_id: Optional[str] = None
    working_memory: WorkingMemoryQueue = field(default_factory=WorkingMemoryQueue)
    strength: Dict[str, float] = field(default_factory=dict)
    associations: Dict[str, List[MemoryEntry]] = field(default_factory=dict)
    last_accessed: Dict[str, datetime] = field(default_factory=dict)

    def strength_of(self, memory: MemoryEntry) -> float:
        return self.strength.get(memory_key(memory.timestamp), 0.0)


class SessionRegistry:
    """Owns every live SessionState, keyed by session id."""

    def __init__(self, working_memory_capacity: int = WORKING_MEMORY_CAPACITY):
        self.working_memory_capacity = working_memory_capacity
        self._sessions: Dict[str, SessionState] = {}
        self._users: Dict[str, UserProfile] = {}

    def register_user(self, profile: UserProfile) -> None:
        self._users[profile.user_id] = profile

    def has_user(self, user_id: str) -> bool:
        return user_id in self._users

    def get(self, session_id: str) -> Optional[SessionState]:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str, user_id: Optional[str] = None) -> SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            state = SessionState(
                session_id=session_id,
                user_id=user_id,
                working_memory=WorkingMemoryQueue(self.working_memory_capacity),
            )
            self._sessions[session_id] = state
        elif user_id and state.user_id is None:
            state.user_id = user_id
        return state

    def sessions_for(self, user_id: str) -> List[SessionState]:
        return [s for s in self._sessions.values() if s.user_id == user_id]


def build_session_context(now: Optional[datetime] = None) -> SessionContext:
    local = (now or utc_now()).astimezone()
    return SessionContext(
        time_of_day=local.strftime("%H:%M:%S"),
        day_of_week=local.strftime("%A"),
    )


class SessionManager:
    def __init__(
        self,
        storage,
        registry: SessionRegistry,
        id_factory: Callable[[], str] = generate_session_id,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.storage = storage
        self.registry = registry
        self.id_factory = id_factory
        self.max_attempts = max(1, max_attempts)

    async def initialize_user(self, user_id: str, email: str, first_name: str, last_name: str) -> UserProfile:
        profile = UserProfile(
            user_id=user_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            created_at=utc_now(),
        )
        self.registry.register_user(profile)

        try:
            await self.storage.upsert_user(profile)
        except StorageError as e:
            logger.error(f"Could not persist user {user_id}, continuing in memory: {e}")

        return profile

    async def create_session(self, user_id: str, session_id: Optional[str] = None) -> str:
        """
        Reuse the session if its id already exists, otherwise insert it.
        An id collision on insert regenerates the id and tries again, up to max_attempts.
        """
        candidate = session_id or self.id_factory()

        for attempt in range(1, self.max_attempts + 1):
            try:
                if await self.storage.session_exists(candidate):
                    logger.debug(f"Using existing session: {candidate}")
                    self.registry.get_or_create(candidate, user_id)
                    return candidate

                now = utc_now()
                await self.storage.insert_session(Session(
                    id=candidate,
                    user_id=user_id,
                    start_time=now,
                    context=build_session_context(now),
                ))
                logger.debug(f"Created new session: {candidate}")
                self.registry.get_or_create(candidate, user_id)
                return candidate

            except DuplicateSessionError as e:
                logger.warning(f"Session id conflict on attempt {attempt}/{self.max_attempts}: {e}")
                candidate = self.id_factory()
                logger.debug(f"Retrying with new session ID: {candidate}")

            except StorageError as e:
                # Persistence is best-effort; the session still works in memory
                logger.error(f"Session {candidate} not persisted, continuing in memory: {e}")
                self.registry.get_or_create(candidate, user_id)
                return candidate

        raise SessionCreationError(
            f"Could not create a session for user {user_id} after {self.max_attempts} attempts"
        )
