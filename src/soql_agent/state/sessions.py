"""Per-session conversation stores with serialized writes."""

import asyncio
import logging
from typing import Dict, Tuple

from soql_agent.state.domain import DEFAULT_MAX_TURNS, ConversationStore, ConversationTurn

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns one ConversationStore and one asyncio.Lock per session key.

    Writes for a session go through its lock; sessions never share a lock, so
    concurrent requests for different sessions do not contend.
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        """Initialize an empty registry."""
        self._max_turns = max_turns
        self._stores: Dict[str, ConversationStore] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, session_id: str) -> asyncio.Lock:
        """Return the lock guarding ``session_id``."""
        return self._locks.setdefault(session_id, asyncio.Lock())

    def store(self, session_id: str) -> ConversationStore:
        """Return (creating if needed) the store of ``session_id``."""
        store = self._stores.get(session_id)
        if store is None:
            store = ConversationStore(max_turns=self._max_turns)
            self._stores[session_id] = store
        return store

    def snapshot(self, session_id: str) -> Tuple[ConversationTurn, ...]:
        """Turns of a session, oldest first (empty for unknown sessions)."""
        store = self._stores.get(session_id)
        return store.turns if store is not None else ()

    def reset(self, session_id: str) -> None:
        """Forget a session's history.

        The lock is dropped too unless a request for the session holds it; that
        request keeps serializing later ones until it finishes.
        """
        self._stores.pop(session_id, None)
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]
        logger.info("Conversation reset", extra={"session_id": session_id})

    def __contains__(self, session_id: object) -> bool:
        """Return True when the session has a store."""
        return session_id in self._stores
