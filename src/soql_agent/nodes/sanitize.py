"""Sanitization node."""

import logging

from langchain_core.runnables import RunnableConfig

from soql_agent.models import HealingPhase
from soql_agent.nodes.deps import get_deps
from soql_agent.state.agent import HealingState
from soql_agent.telemetry import telemetry
from soql_agent.telemetry_schema import SpanKind, TelemetryKeys

logger = logging.getLogger(__name__)


async def sanitize_statement_node(state: HealingState, config: RunnableConfig) -> dict:
    """Node: SanitizeStatement. Deterministic rewrite of the candidate text."""
    deps = get_deps(config)
    with telemetry.start_span(name="sanitize_statement", span_type=SpanKind.AGENT_NODE) as span:
        candidate = state["candidate"]
        result = deps.sanitizer.apply(candidate.text, state.get("generation_context"))
        span.set_attribute(TelemetryKeys.SANITIZER_RULES.value, list(result.applied_rules))
        span.set_attribute("statement", result.text)
        if result.text != candidate.text:
            logger.debug("Candidate rewritten", extra={"rules": list(result.applied_rules)})
        return {
            "current_statement": result.text,
            "sanitizer_rules_applied": list(result.applied_rules),
            "phase": HealingPhase.EXECUTING,
        }
