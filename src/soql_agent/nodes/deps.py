"""Per-run collaborators handed to graph nodes through ``config["configurable"]``."""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from common.interfaces import QueryExecutor, SchemaProvider
from soql_agent.config import HealingSettings
from soql_agent.models import HealingPhase
from soql_agent.state.classifier import ReferenceResolver
from soql_agent.telemetry_schema import TelemetryKeys
from soql_agent.utils.cancellation import HealingCancelled
from soql_agent.validation import StatementSanitizer

if TYPE_CHECKING:
    from soql_agent.nodes.generate import StatementGenerator
    from soql_agent.nodes.retrieve import ContextBuilder

logger = logging.getLogger(__name__)

DEPS_KEY = "deps"


@dataclass
class HealingDeps:
    """Everything a node needs besides the state."""

    executor: QueryExecutor
    schema_provider: SchemaProvider
    settings: HealingSettings
    resolver: ReferenceResolver
    context_builder: "ContextBuilder"
    generator: "StatementGenerator"
    sanitizer: StatementSanitizer
    cancel_event: Optional[asyncio.Event] = None


def get_deps(config: Optional[dict]) -> HealingDeps:
    """Extract the run's collaborators from a LangGraph config."""
    configurable = (config or {}).get("configurable") or {}
    deps = configurable.get(DEPS_KEY)
    if deps is None:
        raise KeyError("configurable.deps is required to run the healing graph")
    return deps


def cancelled_update(exc: HealingCancelled, span: Any) -> dict:
    """State update that stops the loop after a cancellation."""
    span.set_attribute(TelemetryKeys.CANCEL_REASON.value, exc.reason)
    logger.info("Healing run stopped: %s", exc.reason)
    return {"phase": HealingPhase.CANCELLED, "cancel_reason": exc.reason}
