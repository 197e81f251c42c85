"""SOQL query generation and self-healing engine."""

from soql_agent.config import HealingSettings
from soql_agent.engine import HealingEngine
from soql_agent.graph import generate_and_heal
from soql_agent.models import HealingOutcome, HealingResult
from soql_agent.state.domain import ConversationStore, ConversationTurn

__all__ = [
    "ConversationStore",
    "ConversationTurn",
    "HealingEngine",
    "HealingOutcome",
    "HealingResult",
    "HealingSettings",
    "generate_and_heal",
]
