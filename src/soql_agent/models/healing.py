"""Records produced by the healing loop."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from soql_agent.models.errors import ErrorKind
from soql_agent.state.domain import ConversationTurn

Row = Dict[str, Any]


class HealingPhase(str, Enum):
    """States of the generate/execute/repair state machine."""

    GENERATING = "GENERATING"
    EXECUTING = "EXECUTING"
    SUCCEEDED = "SUCCEEDED"
    FAILED_FATAL = "FAILED_FATAL"
    FAILED_EXHAUSTED = "FAILED_EXHAUSTED"
    AMBIGUOUS = "AMBIGUOUS"
    IMPOSSIBLE = "IMPOSSIBLE"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        """True for every state the loop stops in."""
        return self not in (HealingPhase.GENERATING, HealingPhase.EXECUTING)


class HealingOutcome(str, Enum):
    """Outcome reported to callers of generate_and_heal."""

    SUCCEEDED = "SUCCEEDED"
    FATAL = "FATAL"
    EXHAUSTED = "EXHAUSTED"
    AMBIGUOUS = "AMBIGUOUS"
    IMPOSSIBLE = "IMPOSSIBLE"
    CANCELLED = "CANCELLED"


PHASE_TO_OUTCOME = {
    HealingPhase.SUCCEEDED: HealingOutcome.SUCCEEDED,
    HealingPhase.FAILED_FATAL: HealingOutcome.FATAL,
    HealingPhase.FAILED_EXHAUSTED: HealingOutcome.EXHAUSTED,
    HealingPhase.AMBIGUOUS: HealingOutcome.AMBIGUOUS,
    HealingPhase.IMPOSSIBLE: HealingOutcome.IMPOSSIBLE,
    HealingPhase.CANCELLED: HealingOutcome.CANCELLED,
}


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of executing one statement."""

    succeeded: bool
    rows: Optional[List[Row]] = None
    total_count: int = 0
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_category: Optional[str] = None

    @classmethod
    def success(cls, rows: List[Row], total_count: Optional[int] = None) -> "ExecutionOutcome":
        """Build a successful outcome."""
        return cls(
            succeeded=True,
            rows=list(rows),
            total_count=len(rows) if total_count is None else total_count,
        )

    @classmethod
    def failure(
        cls, message: str, kind: ErrorKind, category: Optional[str] = None
    ) -> "ExecutionOutcome":
        """Build a failed outcome."""
        return cls(succeeded=False, error_message=message, error_kind=kind, error_category=category)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize without the rows (those live on the result)."""
        return {
            "succeeded": self.succeeded,
            "total_count": self.total_count,
            "error_message": self.error_message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_category": self.error_category,
        }


@dataclass(frozen=True)
class HealingAttempt:
    """One executed statement and what happened to it."""

    attempt_number: int
    statement: str
    outcome: ExecutionOutcome

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "attempt_number": self.attempt_number,
            "statement": self.statement,
            "outcome": self.outcome.to_dict(),
        }


@dataclass(frozen=True)
class HealingResult:
    """What generate_and_heal returns: the outcome plus the attempt trail."""

    outcome: HealingOutcome
    final_statement: Optional[str] = None
    rows: Optional[List[Row]] = None
    total_count: int = 0
    attempts: Tuple[HealingAttempt, ...] = ()
    clarification: Optional[str] = None
    impossibility_reason: Optional[str] = None
    error_message: Optional[str] = None
    turn: Optional[ConversationTurn] = None
    run_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        """True when a statement executed successfully."""
        return self.outcome is HealingOutcome.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "outcome": self.outcome.value,
            "final_statement": self.final_statement,
            "rows": self.rows,
            "total_count": self.total_count,
            "attempts": [a.to_dict() for a in self.attempts],
            "clarification": self.clarification,
            "impossibility_reason": self.impossibility_reason,
            "error_message": self.error_message,
            "turn": self.turn.to_dict() if self.turn else None,
            "run_id": self.run_id,
            "metadata": dict(self.metadata),
        }
