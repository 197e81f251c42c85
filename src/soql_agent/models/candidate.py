"""Tagged result of parsing a text-generation response."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CandidateKind(str, Enum):
    """Mutually exclusive outcome tags of a generation."""

    STATEMENT = "statement"
    AMBIGUOUS = "ambiguous"
    IMPOSSIBLE = "impossible"


@dataclass(frozen=True)
class CandidateStatement:
    """A generated statement, a clarification request, or an impossibility signal.

    Build instances through ``statement``, ``ambiguous`` or ``impossible`` so
    that exactly one tag holds.
    """

    kind: CandidateKind
    text: str = ""
    clarification_question: Optional[str] = None
    impossibility_reason: Optional[str] = None

    @classmethod
    def statement(cls, text: str) -> "CandidateStatement":
        """A plain candidate statement."""
        if not text or not text.strip():
            raise ValueError("statement text must not be empty")
        return cls(kind=CandidateKind.STATEMENT, text=text)

    @classmethod
    def ambiguous(cls, clarification_question: str) -> "CandidateStatement":
        """The question needs clarification before a statement can be written."""
        return cls(kind=CandidateKind.AMBIGUOUS, clarification_question=clarification_question)

    @classmethod
    def impossible(cls, reason: str) -> "CandidateStatement":
        """The question cannot be answered with a statement."""
        return cls(kind=CandidateKind.IMPOSSIBLE, impossibility_reason=reason)

    @property
    def is_statement(self) -> bool:
        return self.kind is CandidateKind.STATEMENT

    @property
    def is_ambiguous(self) -> bool:
        return self.kind is CandidateKind.AMBIGUOUS

    @property
    def is_impossible(self) -> bool:
        return self.kind is CandidateKind.IMPOSSIBLE
