"""Failure classification node: decides between stopping and another round."""

import logging

from langchain_core.runnables import RunnableConfig

from common.utils.hashing import statement_fingerprint
from soql_agent.models import ErrorKind, HealingPhase
from soql_agent.nodes.deps import get_deps
from soql_agent.state.agent import HealingState
from soql_agent.telemetry import telemetry
from soql_agent.telemetry_schema import SpanKind, TelemetryKeys
from soql_agent.utils.sql_similarity import compute_statement_similarity

logger = logging.getLogger(__name__)


async def classify_failure_node(state: HealingState, config: RunnableConfig) -> dict:
    """
    Node: ClassifyFailure.

    FATAL stops at once regardless of budget. Recoverable and unknown errors
    retry until ``max_attempts`` executions have failed. Repeated statements
    are recorded, not blocked.

    Returns:
        dict: phase
    """
    deps = get_deps(config)
    with telemetry.start_span(name="classify_error", span_type=SpanKind.AGENT_NODE) as span:
        attempts = state.get("attempts") or []
        last = attempts[-1]
        max_attempts = deps.settings.max_attempts

        span.set_attribute(TelemetryKeys.ATTEMPT.value, last.attempt_number)
        span.set_attribute(TelemetryKeys.MAX_ATTEMPTS.value, max_attempts)
        span.set_attribute(TelemetryKeys.ERROR_CATEGORY.value, last.outcome.error_category)

        earlier = [a.statement for a in attempts[:-1]]
        if earlier:
            seen = {statement_fingerprint(s) for s in earlier}
            span.set_attribute(
                TelemetryKeys.REPEATED_STATEMENT.value,
                statement_fingerprint(last.statement) in seen,
            )
            span.set_attribute(
                TelemetryKeys.STATEMENT_SIMILARITY.value,
                compute_statement_similarity(earlier[-1], last.statement),
            )

        if last.outcome.error_kind is ErrorKind.FATAL:
            phase = HealingPhase.FAILED_FATAL
        elif len(attempts) >= max_attempts:
            phase = HealingPhase.FAILED_EXHAUSTED
        else:
            phase = HealingPhase.GENERATING

        span.set_attribute(TelemetryKeys.PHASE.value, phase.value)
        span.add_event(
            "retry.decision",
            {
                "category": last.outcome.error_category,
                "attempt": last.attempt_number,
                "max_attempts": max_attempts,
                "will_retry": phase is HealingPhase.GENERATING,
            },
        )
        if phase.is_terminal:
            logger.info(
                "Healing loop stopped",
                extra={"phase": phase.value, "attempts": len(attempts)},
            )
        return {"phase": phase}
