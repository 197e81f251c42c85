"""Healing state definition for the LangGraph workflow."""

from typing import Any, Dict, List, Optional, Tuple, TypedDict

from common.models.schema_metadata import ObjectMetadata
from soql_agent.models import (
    CandidateStatement,
    ExecutionOutcome,
    GenerationContext,
    HealingAttempt,
    HealingPhase,
)
from soql_agent.state.classifier import ResolvedReference
from soql_agent.state.domain import ConversationStore


class HealingState(TypedDict, total=False):
    """
    State carried between nodes of one generate-and-heal run.

    Collaborators are not part of the state; nodes receive them through
    ``config["configurable"]``.
    """

    # Sanitized question and the history it is asked against
    question: str
    history: ConversationStore

    # Unique identifier for this run
    run_id: str

    # Caller-supplied entity type hint and the acting user
    entity_hint: Optional[str]
    current_user_id: Optional[str]

    # Entity vocabulary fetched once per run
    entity_types: Tuple[ObjectMetadata, ...]

    # Output of the reference resolver
    resolved: ResolvedReference

    # Context and candidate of the current attempt
    generation_context: Optional[GenerationContext]
    candidate: Optional[CandidateStatement]
    current_statement: Optional[str]
    sanitizer_rules_applied: List[str]

    # Attempt trail (contiguous, starting at 1)
    attempts: List[HealingAttempt]
    last_outcome: Optional[ExecutionOutcome]
    error_category: Optional[str]

    # Loop control
    phase: HealingPhase
    deadline_ts: Optional[float]
    cancel_reason: Optional[str]

    # Successful result
    rows: Optional[List[Dict[str, Any]]]
    total_count: int
