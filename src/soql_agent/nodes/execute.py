"""Execution node: runs the sanitized statement and records the attempt."""

import logging

from langchain_core.runnables import RunnableConfig

from common.errors import ExecutionError
from common.sanitization import redact_sensitive_info
from soql_agent.models import ExecutionOutcome, HealingAttempt, HealingPhase
from soql_agent.nodes.deps import cancelled_update, get_deps
from soql_agent.state.agent import HealingState
from soql_agent.taxonomy import classify_error_kind
from soql_agent.telemetry import telemetry
from soql_agent.telemetry_schema import SpanKind, TelemetryKeys
from soql_agent.utils.cancellation import HealingCancelled, run_cancellable

logger = logging.getLogger(__name__)


async def execute_statement_node(state: HealingState, config: RunnableConfig) -> dict:
    """
    Node: ExecuteStatement.

    Only ``ExecutionError`` is treated as a statement failure; anything else
    the executor raises propagates out of the graph. A cancelled execution is
    not recorded as an attempt.

    Returns:
        dict: attempts, last_outcome, phase and, on success, rows/total_count
    """
    deps = get_deps(config)
    with telemetry.start_span(name="execute_statement", span_type=SpanKind.AGENT_NODE) as span:
        statement = state["current_statement"]
        attempts = list(state.get("attempts") or [])
        attempt_number = len(attempts) + 1
        span.set_attribute(TelemetryKeys.ATTEMPT.value, attempt_number)
        span.set_inputs({"statement": statement, "attempt": attempt_number})

        try:
            with telemetry.start_span(
                name="execute",
                span_type=SpanKind.TOOL_CALL,
                attributes={TelemetryKeys.TOOL_NAME.value: "execute"},
            ):
                result = await run_cancellable(
                    deps.executor.execute(statement), deps.cancel_event, state.get("deadline_ts")
                )
            outcome = ExecutionOutcome.success(result.records, result.total_size)
        except HealingCancelled as exc:
            return cancelled_update(exc, span)
        except ExecutionError as exc:
            message = str(exc)
            kind, category = classify_error_kind(message)
            outcome = ExecutionOutcome.failure(message, kind, category)

        attempts.append(HealingAttempt(attempt_number, statement, outcome))

        if outcome.succeeded:
            span.set_attribute(TelemetryKeys.ROWS_RETURNED.value, len(outcome.rows or []))
            span.set_outputs({"total_count": outcome.total_count})
            return {
                "attempts": attempts,
                "last_outcome": outcome,
                "rows": outcome.rows,
                "total_count": outcome.total_count,
                "phase": HealingPhase.SUCCEEDED,
            }

        redacted = redact_sensitive_info(outcome.error_message or "")
        span.set_attribute(TelemetryKeys.ERROR_KIND.value, outcome.error_kind.value)
        span.set_attribute(TelemetryKeys.ERROR_CATEGORY.value, outcome.error_category)
        span.set_outputs({"error": redacted})
        logger.warning(
            "Statement failed",
            extra={
                "attempt": attempt_number,
                "error_kind": outcome.error_kind.value,
                "error_category": outcome.error_category,
                "error": redacted,
            },
        )
        return {
            "attempts": attempts,
            "last_outcome": outcome,
            "error_category": outcome.error_category,
            "phase": HealingPhase.EXECUTING,
        }
