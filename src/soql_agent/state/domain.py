"""Conversation turns and the bounded per-session turn store."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

MAX_RESULT_IDENTIFIERS = 200
DEFAULT_MAX_TURNS = 15


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConversationTurn:
    """Immutable record of one completed conversation turn."""

    question: str
    statement: Optional[str] = None
    target_entity_type: Optional[str] = None
    result_identifiers: Tuple[str, ...] = ()
    result_count: int = 0
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        """Freeze identifiers into a bounded tuple."""
        ids = tuple(self.result_identifiers)[:MAX_RESULT_IDENTIFIERS]
        object.__setattr__(self, "result_identifiers", ids)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "question": self.question,
            "statement": self.statement,
            "target_entity_type": self.target_entity_type,
            "result_identifiers": list(self.result_identifiers),
            "result_count": self.result_count,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationTurn":
        """Deserialize from ``to_dict`` output."""
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            question=data["question"],
            statement=data.get("statement"),
            target_entity_type=data.get("target_entity_type"),
            result_identifiers=tuple(data.get("result_identifiers") or ()),
            result_count=int(data.get("result_count") or 0),
            timestamp=timestamp or _utcnow(),
        )


class ConversationStore:
    """Bounded, ordered history of completed turns.

    Holds at most ``max_turns`` turns; appending beyond that evicts the oldest
    first. Besides append and trim the store has no behavior.
    """

    def __init__(
        self, max_turns: int = DEFAULT_MAX_TURNS, turns: Iterable[ConversationTurn] = ()
    ) -> None:
        """Initialize, keeping only the newest ``max_turns`` of ``turns``."""
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._max_turns = max_turns
        self._turns: List[ConversationTurn] = []
        for turn in turns:
            self.append(turn)

    @property
    def max_turns(self) -> int:
        """Capacity of the store."""
        return self._max_turns

    @property
    def turns(self) -> Tuple[ConversationTurn, ...]:
        """All retained turns, oldest first."""
        return tuple(self._turns)

    @property
    def previous_turn(self) -> Optional[ConversationTurn]:
        """Most recent turn, if any."""
        return self._turns[-1] if self._turns else None

    def append(self, turn: ConversationTurn) -> None:
        """Add a turn to history, maintaining the size limit."""
        self._turns.append(turn)
        if len(self._turns) > self._max_turns:
            self._turns = self._turns[-self._max_turns :]

    def recent(self, count: int) -> Tuple[ConversationTurn, ...]:
        """The newest ``count`` turns, oldest first."""
        if count <= 0:
            return ()
        return tuple(self._turns[-count:])

    def clear(self) -> None:
        """Drop all turns."""
        self._turns = []

    def is_empty(self) -> bool:
        """Return True when no turn has been recorded."""
        return not self._turns

    def __len__(self) -> int:
        """Return number of retained turns."""
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        """Iterate oldest first."""
        return iter(tuple(self._turns))

    def to_json(self) -> str:
        """Serialize to a JSON string."""
        return json.dumps(
            {"max_turns": self._max_turns, "turns": [t.to_dict() for t in self._turns]}
        )

    @classmethod
    def from_json(cls, json_str: str) -> "ConversationStore":
        """Deserialize from ``to_json`` output."""
        data = json.loads(json_str)
        turns = [ConversationTurn.from_dict(t) for t in data.get("turns", [])]
        return cls(max_turns=int(data.get("max_turns") or DEFAULT_MAX_TURNS), turns=turns)
