"""LangGraph workflow of the generate-and-heal loop."""

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from langchain_core.prompts import PromptTemplate
from langgraph.graph import END, StateGraph

from common.interfaces import QueryExecutor, SchemaProvider, TextGenerator
from common.sanitization import sanitize_question
from soql_agent.config import PROMPT_VERSION, HealingSettings
from soql_agent.models import PHASE_TO_OUTCOME, HealingOutcome, HealingPhase, HealingResult
from soql_agent.nodes.classify import classify_failure_node
from soql_agent.nodes.deps import DEPS_KEY, HealingDeps
from soql_agent.nodes.execute import execute_statement_node
from soql_agent.nodes.generate import StatementGenerator, generate_statement_node
from soql_agent.nodes.resolve import resolve_reference_node
from soql_agent.nodes.retrieve import ContextBuilder, build_context_node
from soql_agent.nodes.sanitize import sanitize_statement_node
from soql_agent.prompts import DEFAULT_PROMPT
from soql_agent.state.agent import HealingState
from soql_agent.state.classifier import ReferenceResolver, ResolverPatterns
from soql_agent.state.domain import ConversationStore, ConversationTurn
from soql_agent.telemetry import telemetry
from soql_agent.telemetry_schema import SpanKind, TelemetryKeys
from soql_agent.utils.cancellation import deadline_from_timeout
from soql_agent.utils.clauses import from_entity
from soql_agent.validation import StatementSanitizer

logger = logging.getLogger(__name__)

HistoryInput = Union[ConversationStore, Iterable[Union[ConversationTurn, Dict[str, Any]]]]

_STOPPED_BEFORE_EXECUTION = (
    HealingPhase.AMBIGUOUS,
    HealingPhase.IMPOSSIBLE,
    HealingPhase.CANCELLED,
)


def route_after_resolve(state: HealingState) -> str:
    """Stop when the vocabulary lookup was cancelled."""
    if state.get("phase") is HealingPhase.CANCELLED:
        return "end"
    return "build_context"


def route_after_context(state: HealingState) -> str:
    """Stop when a schema lookup was cancelled."""
    if state.get("phase") is HealingPhase.CANCELLED:
        return "end"
    return "generate"


def route_after_generation(state: HealingState) -> str:
    """
    Conditional edge logic after generation.

    Ambiguous, impossible and cancelled generations end the run without an
    execution attempt; statements go on to sanitization.
    """
    if state.get("phase") in _STOPPED_BEFORE_EXECUTION:
        return "end"
    return "sanitize"


def route_after_execution(state: HealingState) -> str:
    """Success and cancellation end the run; failures get classified."""
    if state.get("phase") in (HealingPhase.SUCCEEDED, HealingPhase.CANCELLED):
        return "end"
    return "classify"


def route_after_classification(state: HealingState) -> str:
    """Another round unless the classifier reached a terminal phase."""
    if state.get("phase") is HealingPhase.GENERATING:
        return "build_context"
    return "end"


def create_workflow() -> StateGraph:
    """
    Create and configure the LangGraph workflow.

    Flow:
    resolve → build_context → generate → sanitize → execute
    execute failure → classify → build_context (next attempt) | END

    Returns:
        StateGraph: Configured workflow graph (not compiled)
    """
    workflow = StateGraph(HealingState)

    workflow.add_node("resolve", resolve_reference_node)
    workflow.add_node("build_context", build_context_node)
    workflow.add_node("generate", generate_statement_node)
    workflow.add_node("sanitize", sanitize_statement_node)
    workflow.add_node("execute", execute_statement_node)
    workflow.add_node("classify", classify_failure_node)

    workflow.set_entry_point("resolve")

    workflow.add_conditional_edges(
        "resolve",
        route_after_resolve,
        {"build_context": "build_context", "end": END},
    )
    workflow.add_conditional_edges(
        "build_context",
        route_after_context,
        {"generate": "generate", "end": END},
    )
    workflow.add_conditional_edges(
        "generate",
        route_after_generation,
        {"sanitize": "sanitize", "end": END},
    )
    workflow.add_edge("sanitize", "execute")
    workflow.add_conditional_edges(
        "execute",
        route_after_execution,
        {"classify": "classify", "end": END},
    )
    # Correction loops back to context building with the error history
    workflow.add_conditional_edges(
        "classify",
        route_after_classification,
        {"build_context": "build_context", "end": END},
    )

    return workflow


# Stateless between runs; collaborators arrive through config["configurable"]
app = create_workflow().compile()


def recursion_limit(max_attempts: int) -> int:
    """Graph step budget for a run of ``max_attempts`` attempts."""
    return 6 * max_attempts + 10


def build_deps(
    text_generator: TextGenerator,
    executor: QueryExecutor,
    schema_provider: SchemaProvider,
    settings: HealingSettings,
    cancel_event: Optional[asyncio.Event] = None,
    prompt: Optional[PromptTemplate] = None,
) -> HealingDeps:
    """Wire the per-run collaborators."""
    return HealingDeps(
        executor=executor,
        schema_provider=schema_provider,
        settings=settings,
        resolver=ReferenceResolver(ResolverPatterns.from_settings(settings)),
        context_builder=ContextBuilder(settings),
        generator=StatementGenerator(text_generator, prompt or DEFAULT_PROMPT, settings),
        sanitizer=StatementSanitizer(fallback_fields=settings.fallback_fields),
        cancel_event=cancel_event,
    )


def history_store(conversation_history: HistoryInput, max_turns: int) -> ConversationStore:
    """Copy caller-supplied history into a bounded store."""
    if isinstance(conversation_history, ConversationStore):
        turns: Iterable[ConversationTurn] = conversation_history.turns
    else:
        turns = [
            t if isinstance(t, ConversationTurn) else ConversationTurn.from_dict(t)
            for t in (conversation_history or ())
        ]
    return ConversationStore(max_turns=max_turns, turns=turns)


def _row_identifiers(rows: List[Dict[str, Any]], limit: int) -> Tuple[str, ...]:
    ids: List[str] = []
    for row in rows or []:
        value = row.get("Id") if isinstance(row, dict) else None
        if isinstance(value, str) and value not in ids:
            ids.append(value)
            if len(ids) >= limit:
                break
    return tuple(ids)


def _build_result(
    final_state: Dict[str, Any], question: str, run_id: str, settings: HealingSettings
) -> HealingResult:
    phase = final_state.get("phase")
    if phase not in PHASE_TO_OUTCOME:
        raise RuntimeError(f"Healing graph stopped in non-terminal phase {phase}")
    outcome = PHASE_TO_OUTCOME[phase]

    attempts = tuple(final_state.get("attempts") or ())
    candidate = final_state.get("candidate")
    context = final_state.get("generation_context")
    resolved = final_state.get("resolved")

    metadata: Dict[str, Any] = {
        "prompt_version": PROMPT_VERSION,
        "continuation_kind": resolved.continuation_kind.value if resolved else None,
        "target_entity_type": context.target_entity_type if context else None,
        "sanitizer_rules": list(final_state.get("sanitizer_rules_applied") or []),
    }

    final_statement = attempts[-1].statement if attempts else None
    rows = None
    total_count = 0
    turn = None
    error_message = None

    if outcome is HealingOutcome.SUCCEEDED:
        rows = list(final_state.get("rows") or [])
        total_count = final_state.get("total_count") or len(rows)
        target = from_entity(final_statement) or (context.target_entity_type if context else None)
        turn = ConversationTurn(
            question=question,
            statement=final_statement,
            target_entity_type=target,
            result_identifiers=_row_identifiers(rows, settings.max_result_ids),
            result_count=total_count,
        )
    elif outcome in (HealingOutcome.FATAL, HealingOutcome.EXHAUSTED):
        error_message = attempts[-1].outcome.error_message
    elif outcome is HealingOutcome.CANCELLED:
        error_message = final_state.get("cancel_reason")
        metadata["cancel_reason"] = final_state.get("cancel_reason")

    return HealingResult(
        outcome=outcome,
        final_statement=final_statement,
        rows=rows,
        total_count=total_count,
        attempts=attempts,
        clarification=candidate.clarification_question if candidate else None,
        impossibility_reason=candidate.impossibility_reason if candidate else None,
        error_message=error_message,
        turn=turn,
        run_id=run_id,
        metadata=metadata,
    )


async def generate_and_heal(
    question: str,
    conversation_history: HistoryInput = (),
    *,
    text_generator: TextGenerator,
    executor: QueryExecutor,
    schema_provider: SchemaProvider,
    settings: Optional[HealingSettings] = None,
    entity_hint: Optional[str] = None,
    cancel_event: Optional[asyncio.Event] = None,
    timeout_seconds: Optional[float] = None,
    prompt: Optional[PromptTemplate] = None,
) -> HealingResult:
    """
    Translate a question into an executed statement, repairing failures.

    Args:
        question: Natural-language question.
        conversation_history: Prior turns (a ConversationStore, turns, or their
            ``to_dict`` forms), oldest first. Never mutated.
        text_generator: Text-generation collaborator.
        executor: Query execution collaborator.
        schema_provider: Schema discovery collaborator.
        settings: Loop tunables; read from the environment when omitted.
        entity_hint: Entity type to target when the question names none.
        cancel_event: Set it to stop the run; the in-flight call is cancelled.
        timeout_seconds: Deadline for the whole run (defaults to settings).
        prompt: Replacement generation prompt template.

    Returns:
        HealingResult with the outcome and every attempt made.

    Raises:
        ValueError: If the question is empty or too long.
    """
    settings = settings or HealingSettings.from_env()
    sanitized = sanitize_question(question)
    if not sanitized.is_valid:
        raise ValueError(f"Invalid question: {', '.join(sanitized.errors)}")

    store = history_store(conversation_history, settings.history_max_turns)
    timeout = timeout_seconds if timeout_seconds is not None else settings.timeout_seconds
    run_id = str(uuid.uuid4())

    telemetry.configure()
    base_metadata = {
        TelemetryKeys.RUN_ID.value: run_id,
        TelemetryKeys.MAX_ATTEMPTS.value: settings.max_attempts,
        "prompt.version": PROMPT_VERSION,
    }

    with telemetry.start_span(
        "healing_workflow", span_type=SpanKind.CHAIN, attributes=base_metadata
    ) as span:
        telemetry.update_current_trace(base_metadata)

        inputs: HealingState = {
            "question": sanitized.sanitized,
            "history": store,
            "run_id": run_id,
            "entity_hint": entity_hint,
            "attempts": [],
            "phase": HealingPhase.GENERATING,
            "deadline_ts": deadline_from_timeout(timeout),
        }
        config = {
            "configurable": {
                DEPS_KEY: build_deps(
                    text_generator, executor, schema_provider, settings, cancel_event, prompt
                )
            },
            "recursion_limit": recursion_limit(settings.max_attempts),
        }

        final_state = await app.ainvoke(inputs, config=config)
        result = _build_result(final_state, sanitized.sanitized, run_id, settings)

        span.set_attribute(TelemetryKeys.OUTCOME.value, result.outcome.value)
        span.set_attribute("healing.attempts", len(result.attempts))

    logger.info(
        "Healing run finished",
        extra={
            "run_id": run_id,
            "outcome": result.outcome.value,
            "attempts": len(result.attempts),
        },
    )
    return result
