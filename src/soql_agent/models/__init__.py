"""Data records of the query engine."""

from soql_agent.models.candidate import CandidateKind, CandidateStatement
from soql_agent.models.context import (
    ContinuationKind,
    DomainConstraints,
    GenerationContext,
    SchemaExcerpt,
)
from soql_agent.models.errors import ErrorCategory, ErrorKind
from soql_agent.models.healing import (
    PHASE_TO_OUTCOME,
    ExecutionOutcome,
    HealingAttempt,
    HealingOutcome,
    HealingPhase,
    HealingResult,
)

__all__ = [
    "PHASE_TO_OUTCOME",
    "CandidateKind",
    "CandidateStatement",
    "ContinuationKind",
    "DomainConstraints",
    "ErrorCategory",
    "ErrorKind",
    "ExecutionOutcome",
    "GenerationContext",
    "HealingAttempt",
    "HealingOutcome",
    "HealingPhase",
    "HealingResult",
    "SchemaExcerpt",
]
