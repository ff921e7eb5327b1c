import logging
import math
from datetime import datetime
from typing import Iterable, List, Optional, Union

from .models import MemoryEntry, category_weight, utc_now
from .nlp_analysis import estimate_emotional_valence, extract_key_concepts, infer_activity_type
from .sessions import SessionRegistry, SessionState, memory_key
from .storage import StorageError

# ------------------------
# Constants
# ------------------------

STRENGTH_WEIGHT = 0.4
RECENCY_WEIGHT = 0.3
IMPORTANCE_WEIGHT = 0.3

RECENCY_SCALE_SECONDS = 24 * 3600
DEFAULT_CONTEXT_LIMIT = 5
DEFAULT_REINFORCEMENT = 0.1
MAX_STRENGTH = 1.0

# Productivity score for memories whose type has no weight
FALLBACK_PRODUCTIVITY = 0.2

Fragment = Union[str, dict]

# ------------------------
# Scoring
# ------------------------

def recency(age_seconds: float) -> float:
    """exp(-age / 1 day). Ages below zero (clock skew) count as zero."""
    return math.exp(-max(age_seconds, 0.0) / RECENCY_SCALE_SECONDS)


def blend_score(strength: float, recency_value: float, importance: float) -> float:
    return STRENGTH_WEIGHT * strength + RECENCY_WEIGHT * recency_value + IMPORTANCE_WEIGHT * importance


def calculate_memory_score(state: SessionState, memory: MemoryEntry, now: Optional[datetime] = None) -> float:
    """Relevance of a memory relative to one session's strength map."""
    now = now or utc_now()
    age = (now - memory.timestamp).total_seconds()
    return blend_score(state.strength_of(memory), recency(age), memory.importance)


def rank_memories(state: SessionState, memories: Iterable[MemoryEntry], limit: int,
                  now: Optional[datetime] = None) -> List[MemoryEntry]:
    now = now or utc_now()
    scored = [(calculate_memory_score(state, m, now), m) for m in memories]
    # sort is stable, so equal scores keep merge order
    scored.sort(key=lambda x: x[0], reverse=True)
    return [m for _, m in scored[:max(limit, 0)]]


def _fragment_content(fragment: Fragment) -> Optional[str]:
    if isinstance(fragment, dict):
        fragment = fragment.get("content")
    if not isinstance(fragment, str) or not fragment.strip():
        return None
    return fragment


def build_memory(content: str, importance: float, timestamp: datetime) -> MemoryEntry:
    key_concepts = extract_key_concepts(content)
    activity_type = infer_activity_type(key_concepts)
    return MemoryEntry(
        timestamp=timestamp,
        content=content,
        importance=importance,
        emotional_valence=estimate_emotional_valence(content),
        key_concepts=key_concepts,
        activity_type=activity_type,
        productivity_score=category_weight(activity_type, FALLBACK_PRODUCTIVITY),
    )


class MemoryStore:
    """
    Adaptive memory: per-session working memory in front of the persisted memory log,
    ranked by a decay-weighted relevance score.
    """

    def __init__(self, storage, registry: SessionRegistry, logger: Optional[logging.Logger] = None):
        self.storage = storage
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)

    # ------------------------
    # Ingestion
    # ------------------------

    async def add_memories(self, session_id: str, fragments: List[Fragment], importance: float = 1.0) -> List[MemoryEntry]:
        """
        Turn text fragments into memories, persist each one and push it into the
        session's working memory. A failing fragment is logged and skipped.
        """
        self.logger.debug(f"Adding {len(fragments)} memories for session: {session_id}")
        state = self.registry.get_or_create(session_id)

        if not 0.0 <= importance <= 1.0:
            clamped = min(max(importance, 0.0), 1.0)
            self.logger.warning(f"Importance {importance} out of range, clamped to {clamped}")
            importance = clamped

        timestamp = utc_now()
        processed = []

        for index, fragment in enumerate(fragments):
            content = _fragment_content(fragment)
            if content is None:
                self.logger.warning(f"Skipping empty fragment {index} for session {session_id}")
                continue

            try:
                memory = build_memory(content, importance, timestamp)
                await self.storage.insert_memory(session_id, memory)
            except Exception as e:
                self.logger.error(f"Memory processing error for fragment {index} in session {session_id}: {e}")
                continue

            processed.append(memory)
            evicted = state.working_memory.push(memory)
            self._associate(state, memory)
            if evicted is not None:
                self._dissociate(state, evicted)
            self.logger.debug(f"Successfully added memory: {memory.key_concepts}")

        return processed

    def _associate(self, state: SessionState, memory: MemoryEntry) -> None:
        for concept in memory.key_concepts:
            state.associations.setdefault(concept, []).append(memory)

    def _dissociate(self, state: SessionState, memory: MemoryEntry) -> None:
        # the index only covers what is still in working memory
        for concept in memory.key_concepts:
            remaining = [m for m in state.associations.get(concept, []) if m is not memory]
            if remaining:
                state.associations[concept] = remaining
            else:
                state.associations.pop(concept, None)

    # ------------------------
    # Retrieval
    # ------------------------

    async def get_relevant_context(self, session_id: str, limit: int = DEFAULT_CONTEXT_LIMIT,
                                   now: Optional[datetime] = None) -> List[MemoryEntry]:
        """
        Score working memory together with the most recent persisted memories and
        return the best `limit`. If the persisted read fails, working memory alone is ranked.
        """
        self.logger.debug(f"Getting relevant context for session: {session_id}")
        state = self.registry.get_or_create(session_id)
        working = state.working_memory.snapshot()

        try:
            persisted = await self.storage.recent_memories(session_id, limit)
        except StorageError as e:
            self.logger.error(f"Failed to fetch persisted memories, using working memory only: {e}")
            return rank_memories(state, working, limit, now)

        # persisted copy is authoritative; drop the cached duplicate
        seen = {(m.timestamp, m.content) for m in persisted}
        candidates = [m for m in working if (m.timestamp, m.content) not in seen] + persisted

        relevant = rank_memories(state, candidates, limit, now)
        self.logger.debug(f"Returning {len(relevant)} relevant memories")
        return relevant

    def associated(self, session_id: str, concept: str) -> List[MemoryEntry]:
        state = self.registry.get(session_id)
        if state is None:
            return []
        return list(state.associations.get(concept.lower(), []))

    # ------------------------
    # Reinforcement
    # ------------------------

    def reinforce(self, session_id: str, timestamp: datetime, boost: float = DEFAULT_REINFORCEMENT) -> float:
        """Strengthen the memories stored at `timestamp`; strength stays within [0, 1]."""
        state = self.registry.get_or_create(session_id)
        key = memory_key(timestamp)
        strength = min(max(state.strength.get(key, 0.0) + boost, 0.0), MAX_STRENGTH)
        state.strength[key] = strength
        state.last_accessed[key] = utc_now()
        return strength
