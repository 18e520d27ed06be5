"""Tests for the in-memory conversation store."""

from __future__ import annotations

from aira.services.conversation_store import ConversationStore

TENANT = "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b"
OTHER = "7d9e0a1b-2c3d-4e5f-a6b7-c8d9e0f1a2b3"


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _turn(content: str, role: str = "user") -> dict:
    return {"role": role, "content": content}


# ── Core operations ──────────────────────────────────────────────────


class TestConversationStoreBasics:
    def test_append_and_get(self):
        store = ConversationStore()
        store.append(TENANT, "conv-1", _turn("hi"), _turn("hello", "assistant"))
        assert store.get(TENANT, "conv-1") == [_turn("hi"), _turn("hello", "assistant")]

    def test_get_missing_returns_empty_list(self):
        assert ConversationStore().get(TENANT, "nope") == []

    def test_get_returns_a_copy(self):
        store = ConversationStore()
        store.append(TENANT, "conv-1", _turn("hi"))
        store.get(TENANT, "conv-1")[0]["content"] = "mutated"
        assert store.get(TENANT, "conv-1")[0]["content"] == "hi"

    def test_delete(self):
        store = ConversationStore()
        store.append(TENANT, "conv-1", _turn("hi"))
        assert store.delete(TENANT, "conv-1") is True
        assert store.delete(TENANT, "conv-1") is False
        assert store.get(TENANT, "conv-1") == []

    def test_clear(self):
        store = ConversationStore()
        store.append(TENANT, "a", _turn("1"))
        store.append(TENANT, "b", _turn("2"))
        store.clear()
        assert store.entry_count == 0


# ── Isolation and bounds ─────────────────────────────────────────────


class TestConversationStoreBounds:
    def test_tenants_are_isolated(self):
        store = ConversationStore()
        store.append(TENANT, "conv-1", _turn("secret"))
        assert store.get(OTHER, "conv-1") == []

    def test_transcript_trimmed_to_most_recent(self):
        store = ConversationStore(max_messages=3)
        store.append(TENANT, "conv-1", *[_turn(str(i)) for i in range(5)])
        assert [m["content"] for m in store.get(TENANT, "conv-1")] == ["2", "3", "4"]

    def test_evicts_least_recently_used(self):
        store = ConversationStore(max_conversations=2)
        store.append(TENANT, "a", _turn("1"))
        store.append(TENANT, "b", _turn("2"))
        store.get(TENANT, "a")
        store.append(TENANT, "c", _turn("3"))

        assert store.get(TENANT, "a") != []
        assert store.get(TENANT, "b") == []
        assert store.entry_count == 2


# ── TTL ──────────────────────────────────────────────────────────────


class TestConversationStoreTTL:
    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        store = ConversationStore(ttl_seconds=60, clock=clock)
        store.append(TENANT, "conv-1", _turn("hi"))

        clock.now += 61
        assert store.get(TENANT, "conv-1") == []
        assert store.entry_count == 0

    def test_append_refreshes_ttl(self):
        clock = FakeClock()
        store = ConversationStore(ttl_seconds=60, clock=clock)
        store.append(TENANT, "conv-1", _turn("hi"))
        clock.now += 50
        store.append(TENANT, "conv-1", _turn("still here"))
        clock.now += 50

        assert len(store.get(TENANT, "conv-1")) == 2

    def test_expired_transcript_restarts_on_append(self):
        clock = FakeClock()
        store = ConversationStore(ttl_seconds=60, clock=clock)
        store.append(TENANT, "conv-1", _turn("old"))
        clock.now += 120
        store.append(TENANT, "conv-1", _turn("new"))
        assert store.get(TENANT, "conv-1") == [_turn("new")]

    def test_purge_expired(self):
        clock = FakeClock()
        store = ConversationStore(ttl_seconds=60, clock=clock)
        store.append(TENANT, "old", _turn("1"))
        clock.now += 30
        store.append(TENANT, "fresh", _turn("2"))
        clock.now += 40

        assert store.purge_expired() == 1
        assert store.entry_count == 1
        assert store.get(TENANT, "fresh") != []
