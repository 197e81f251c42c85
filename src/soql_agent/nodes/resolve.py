"""Reference resolution node: vocabulary lookup plus continuation detection."""

import inspect
import logging

from langchain_core.runnables import RunnableConfig

from common.errors import ExecutionError
from soql_agent.models import HealingPhase
from soql_agent.nodes.deps import cancelled_update, get_deps
from soql_agent.state.agent import HealingState
from soql_agent.telemetry import telemetry
from soql_agent.telemetry_schema import SpanKind, TelemetryKeys
from soql_agent.utils.cancellation import HealingCancelled, run_cancellable

logger = logging.getLogger(__name__)


async def resolve_reference_node(state: HealingState, config: RunnableConfig) -> dict:
    """
    Node: ResolveReference.

    Fetches the entity vocabulary once per run and decides how the question
    relates to the previous turn. A failing vocabulary lookup degrades to an
    empty vocabulary.

    Returns:
        dict: entity_types, resolved, current_user_id and phase
    """
    deps = get_deps(config)
    with telemetry.start_span(name="resolve_reference", span_type=SpanKind.AGENT_NODE) as span:
        deadline_ts = state.get("deadline_ts")
        try:
            vocabulary = await run_cancellable(
                deps.schema_provider.schema(None), deps.cancel_event, deadline_ts
            )
        except HealingCancelled as exc:
            return cancelled_update(exc, span)
        except ExecutionError as exc:
            logger.warning("Entity vocabulary lookup failed: %s", exc)
            vocabulary = []

        try:
            user_id = await _current_user_id(deps, deadline_ts)
        except HealingCancelled as exc:
            return cancelled_update(exc, span)

        resolved = deps.resolver.resolve(state["question"], state["history"], vocabulary)
        span.set_attribute(TelemetryKeys.CONTINUATION_KIND.value, resolved.continuation_kind.value)
        span.set_attribute("resolve.literal_identifiers", len(resolved.literal_identifiers))
        span.set_attribute("resolve.vocabulary_size", len(vocabulary))
        logger.debug(
            "Resolved reference",
            extra={
                "continuation_kind": resolved.continuation_kind.value,
                "mentioned_entity_type": resolved.mentioned_entity_type,
            },
        )

        return {
            "entity_types": tuple(vocabulary),
            "resolved": resolved,
            "current_user_id": user_id,
            "phase": HealingPhase.GENERATING,
        }


async def _current_user_id(deps, deadline_ts):
    if deps.settings.current_user_id:
        return deps.settings.current_user_id
    lookup = getattr(deps.executor, "current_user_id", None)
    if not inspect.iscoroutinefunction(lookup):
        return None
    try:
        user_id = await run_cancellable(lookup(), deps.cancel_event, deadline_ts)
    except ExecutionError as exc:
        logger.warning("Current user lookup failed: %s", exc)
        return None
    return user_id if isinstance(user_id, str) else None
