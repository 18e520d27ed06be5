"""Thread-safe in-memory conversation store with LRU eviction and idle TTL.

Backs the basic chat endpoint, which threads turns together by
``conversationId``.  The tool-calling endpoint never touches it: its history
is supplied by the caller on every request.

• **OrderedDict** for O(1) LRU eviction and promotion.
• Keys are ``"<tenant_id>:<conversation_id>"`` so one tenant can never read
  another tenant's transcript, even with a guessed conversation id.
• Entries expire ``ttl_seconds`` after their last write.
• Each transcript keeps only the most recent ``max_messages`` turns.
• Purely ephemeral; data is lost on process restart.

>>> store = ConversationStore(max_conversations=100, ttl_seconds=3600)
>>> store.append("tenant-a", "conv-1", {"role": "user", "content": "Hi"})
>>> store.get("tenant-a", "conv-1")
[{'role': 'user', 'content': 'Hi'}]
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

from aira.config import CONVERSATION_TTL_SECONDS

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONVERSATIONS = 1_000
DEFAULT_MAX_MESSAGES = 50

Message = dict[str, Any]


class ConversationStore:
    """Least-Recently-Used transcript store bounded by conversation count."""

    def __init__(
        self,
        max_conversations: int = DEFAULT_MAX_CONVERSATIONS,
        ttl_seconds: float = CONVERSATION_TTL_SECONDS,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_conversations = max_conversations
        self._ttl = ttl_seconds
        self._max_messages = max_messages
        self._clock = clock
        # key → (messages, expires_at)
        self._store: OrderedDict[str, tuple[list[Message], float]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _key(tenant_id: str, conversation_id: str) -> str:
        return f"{tenant_id}:{conversation_id}"

    def _live_entry(self, key: str) -> list[Message] | None:
        """Return the transcript for *key*, dropping it if expired.  Lock held."""
        entry = self._store.get(key)
        if entry is None:
            return None
        messages, expires_at = entry
        if expires_at <= self._clock():
            del self._store[key]
            logger.debug("Conversation %s expired", key)
            return None
        return messages

    # ── Core operations ──────────────────────────────────────────────

    def get(self, tenant_id: str, conversation_id: str) -> list[Message]:
        """Return a copy of the transcript (promoting it to MRU), or ``[]``."""
        key = self._key(tenant_id, conversation_id)
        with self._lock:
            messages = self._live_entry(key)
            if messages is None:
                return []
            self._store.move_to_end(key)
            return copy.deepcopy(messages)

    def append(self, tenant_id: str, conversation_id: str, *messages: Message) -> None:
        """Add turns to a transcript, creating it if needed.

        Refreshes the TTL and evicts the least-recently-used conversations
        when over capacity.
        """
        key = self._key(tenant_id, conversation_id)
        with self._lock:
            transcript = self._live_entry(key) or []
            transcript.extend(copy.deepcopy(list(messages)))
            if len(transcript) > self._max_messages:
                transcript = transcript[-self._max_messages:]

            self._store[key] = (transcript, self._clock() + self._ttl)
            self._store.move_to_end(key)

            while len(self._store) > self._max_conversations:
                evicted_key, _ = self._store.popitem(last=False)
                logger.debug("Conversation store: evicted %s", evicted_key)

    def delete(self, tenant_id: str, conversation_id: str) -> bool:
        """Remove a transcript.  Returns ``True`` if it existed."""
        with self._lock:
            return self._store.pop(self._key(tenant_id, conversation_id), None) is not None

    def purge_expired(self) -> int:
        """Drop every expired transcript.  Returns count removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._store.items() if expires_at <= now]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug("Conversation store: purged %d expired entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    @property
    def entry_count(self) -> int:
        """Number of transcripts currently stored (expired ones included)."""
        return len(self._store)
