import math
from datetime import timedelta

import pytest

from ace.memory import (
    MemoryStore, blend_score, build_memory, calculate_memory_score, rank_memories, recency,
)
from ace.models import ActivityType, MemoryEntry
from ace.sessions import SessionRegistry, SessionState, memory_key
from conftest import NOW, make_cursor


def make_memory(content="note", minutes_ago=0.0, importance=0.5):
    return MemoryEntry(
        timestamp=NOW - timedelta(minutes=minutes_ago),
        content=content,
        importance=importance,
        emotional_valence=0.0,
    )


# ---------------------
# Scoring
# ---------------------

def test_recency_properties():
    assert recency(0) == 1.0
    assert recency(86400) == pytest.approx(math.exp(-1))
    assert recency(3600) > recency(7200) > 0.0


def test_negative_age_counts_as_zero():
    assert recency(-500) == 1.0


def test_score_is_monotonic_in_each_component():
    base = blend_score(0.5, 0.5, 0.5)
    assert blend_score(0.6, 0.5, 0.5) > base
    assert blend_score(0.5, 0.6, 0.5) > base
    assert blend_score(0.5, 0.5, 0.6) > base
    assert blend_score(1.0, 1.0, 1.0) == pytest.approx(1.0)


def test_memory_score_uses_session_strength():
    state = SessionState(session_id="s1")
    memory = make_memory(importance=1.0)

    assert calculate_memory_score(state, memory, NOW) == pytest.approx(0.6)

    state.strength[memory_key(memory.timestamp)] = 0.5
    assert calculate_memory_score(state, memory, NOW) == pytest.approx(0.8)


def test_rank_prefers_recent_then_respects_limit():
    state = SessionState(session_id="s1")
    old = make_memory("old", minutes_ago=600)
    fresh = make_memory("fresh", minutes_ago=1)
    middle = make_memory("middle", minutes_ago=60)

    ranked = rank_memories(state, [old, fresh, middle], limit=2, now=NOW)
    assert [m.content for m in ranked] == ["fresh", "middle"]


def test_rank_with_zero_limit_is_empty():
    state = SessionState(session_id="s1")
    assert rank_memories(state, [make_memory()], limit=0, now=NOW) == []


def test_build_memory_derives_fields():
    memory = build_memory("Debugging the parser code before the deadline", 0.7, NOW)
    assert memory.key_concepts == ["debugging", "parser", "code", "before", "deadline"]
    assert memory.activity_type == ActivityType.DEVELOPMENT
    assert memory.productivity_score == 1.0
    assert memory.importance == 0.7
    assert memory.timestamp == NOW


# ---------------------
# Ingestion
# ---------------------

@pytest.mark.asyncio
async def test_add_memories_persists_and_caches(memory_store, storage, registry):
    """Each fragment is persisted and pushed into the session's working memory."""
    added = await memory_store.add_memories("s1", ["Reviewing the quarterly report", {"content": "Email the team"}])

    assert [m.content for m in added] == ["Reviewing the quarterly report", "Email the team"]
    assert len(storage.memories) == 2
    assert [m.content for m in registry.get("s1").working_memory] == [m.content for m in added]
    # one batch shares a timestamp
    assert added[0].timestamp == added[1].timestamp


@pytest.mark.asyncio
async def test_failing_fragment_is_skipped(memory_store, storage, registry):
    storage.fail_insert_memory_calls = {2}

    added = await memory_store.add_memories("s1", ["first fragment", "second fragment", "third fragment"])

    assert [m.content for m in added] == ["first fragment", "third fragment"]
    assert len(registry.get("s1").working_memory) == 2


@pytest.mark.asyncio
async def test_empty_fragments_are_skipped(memory_store, storage):
    added = await memory_store.add_memories("s1", ["", "   ", {"content": ""}, {"other": "x"}, "kept"])

    assert [m.content for m in added] == ["kept"]
    assert storage.insert_memory_calls == 1


@pytest.mark.asyncio
async def test_importance_is_clamped(memory_store):
    high = await memory_store.add_memories("s1", ["too important"], importance=3.0)
    low = await memory_store.add_memories("s1", ["not important"], importance=-1.0)

    assert high[0].importance == 1.0
    assert low[0].importance == 0.0


@pytest.mark.asyncio
async def test_working_memory_is_bounded(memory_store, registry):
    await memory_store.add_memories("s1", [f"fragment number {i}" for i in range(10)])

    working = registry.get("s1").working_memory.snapshot()
    assert [m.content for m in working] == [f"fragment number {i}" for i in range(3, 10)]


@pytest.mark.asyncio
async def test_sessions_do_not_share_working_memory(memory_store, registry):
    await memory_store.add_memories("s1", ["only in one"])
    await memory_store.add_memories("s2", ["only in two"])

    assert [m.content for m in registry.get("s1").working_memory] == ["only in one"]
    assert [m.content for m in registry.get("s2").working_memory] == ["only in two"]


# ---------------------
# Retrieval
# ---------------------

@pytest.mark.asyncio
async def test_context_does_not_duplicate_cached_memories(memory_store):
    await memory_store.add_memories("s1", ["planning the sprint", "writing tests"])

    context = await memory_store.get_relevant_context("s1", limit=5)

    assert sorted(m.content for m in context) == ["planning the sprint", "writing tests"]


@pytest.mark.asyncio
async def test_context_respects_limit(memory_store):
    await memory_store.add_memories("s1", [f"fragment number {i}" for i in range(6)])

    context = await memory_store.get_relevant_context("s1", limit=3)
    assert len(context) == 3


@pytest.mark.asyncio
async def test_context_falls_back_to_working_memory(memory_store, storage):
    """A failed persisted read still returns the ranked working memory."""
    await memory_store.add_memories("s1", ["still here"])
    storage.fail_on.add("recent_memories")

    context = await memory_store.get_relevant_context("s1")

    assert [m.content for m in context] == ["still here"]


@pytest.mark.asyncio
async def test_context_is_scoped_to_session(memory_store):
    await memory_store.add_memories("s1", ["belongs to one"])
    await memory_store.add_memories("s2", ["belongs to two"])

    context = await memory_store.get_relevant_context("s2")
    assert [m.content for m in context] == ["belongs to two"]


@pytest.mark.asyncio
async def test_context_includes_persisted_memories_after_restart(storage, registry):
    first = MemoryStore(storage, registry)
    await first.add_memories("s1", ["from a previous run"])

    # fresh process: empty registry, same storage
    restarted = MemoryStore(storage, SessionRegistry())
    context = await restarted.get_relevant_context("s1")

    assert [m.content for m in context] == ["from a previous run"]


@pytest.mark.asyncio
async def test_reinforced_memory_ranks_first(memory_store, storage):
    old = make_memory("older but reinforced", minutes_ago=120, importance=0.5)
    new = make_memory("newer", minutes_ago=0, importance=0.5)
    storage.memories = [("s1", old), ("s1", new)]

    memory_store.reinforce("s1", old.timestamp, boost=1.0)
    context = await memory_store.get_relevant_context("s1", limit=2, now=NOW)

    assert [m.content for m in context] == ["older but reinforced", "newer"]


# ---------------------
# Reinforcement & associations
# ---------------------

def test_reinforce_accumulates_and_caps(memory_store, registry):
    assert memory_store.reinforce("s1", NOW) == pytest.approx(0.1)
    assert memory_store.reinforce("s1", NOW, boost=0.5) == pytest.approx(0.6)
    assert memory_store.reinforce("s1", NOW, boost=5.0) == 1.0
    assert memory_store.reinforce("s1", NOW, boost=-5.0) == 0.0
    assert memory_key(NOW) in registry.get("s1").last_accessed


@pytest.mark.asyncio
async def test_associated_memories_by_concept(memory_store):
    await memory_store.add_memories("s1", ["Refactor parser module", "Parser benchmarks tomorrow"])

    related = memory_store.associated("s1", "Parser")

    assert [m.content for m in related] == ["Refactor parser module", "Parser benchmarks tomorrow"]
    assert memory_store.associated("s1", "unknown") == []
    assert memory_store.associated("missing-session", "parser") == []


@pytest.mark.asyncio
async def test_malformed_persisted_row_does_not_break_context(mongo, mocker):
    """A stored row that no longer validates is dropped; cached memories still come back."""
    storage, collection = mongo
    collection.insert_one = mocker.AsyncMock()
    collection.find.return_value = make_cursor(mocker, [
        {"content": "legacy row", "timestamp": NOW, "importance": 5},
    ])
    store = MemoryStore(storage, SessionRegistry())
    await store.add_memories("s1", ["cached fragment here"])

    context = await store.get_relevant_context("s1")

    assert [m.content for m in context] == ["cached fragment here"]


@pytest.mark.asyncio
async def test_associations_only_cover_working_memory(memory_store, registry):
    await memory_store.add_memories("s1", [f"topic{i} shared" for i in range(10)])

    state = registry.get("s1")
    assert memory_store.associated("s1", "topic0") == []
    assert memory_store.associated("s1", "topic2") == []
    assert [m.content for m in memory_store.associated("s1", "topic3")] == ["topic3 shared"]
    assert len(memory_store.associated("s1", "shared")) == 7
    assert set(state.associations) == {f"topic{i}" for i in range(3, 10)} | {"shared"}
