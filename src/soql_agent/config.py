"""Engine configuration helpers."""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from common.config.env import get_env_float, get_env_int, get_env_list, get_env_str

logger = logging.getLogger(__name__)

# Semantic version of the generation prompt template.
# Increment this when changing prompts.py.
PROMPT_VERSION = "1.2.0"

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_HISTORY_MAX_TURNS = 15
DEFAULT_MAX_RESULT_IDS = 200
DEFAULT_MAX_SCHEMA_FIELDS = 200
DEFAULT_MAX_RELATED_OBJECTS = 5

CLARIFICATION_SENTINEL = "CLARIFICATION_NEEDED:"
IMPOSSIBLE_SENTINEL = "QUERY_IMPOSSIBLE:"

DEFAULT_FALLBACK_FIELDS: Tuple[str, ...] = ("Id", "Name")

DEFAULT_BACKWARD_REFERENCE_MARKERS: Tuple[str, ...] = (
    "these",
    "those",
    "above",
    "them",
    "too",
    "also",
    "previous",
    "their",
)

DEFAULT_FILTER_MARKERS: Tuple[str, ...] = (
    "what about",
    "only",
    "filter",
    "where",
    "exclude",
    "excluding",
    "except",
    "those in",
    "ones in",
    "located in",
    "with status",
    "since",
    "before",
    "after",
    "between",
    "greater than",
    "less than",
    "more than",
)

DEFAULT_RELATED_MARKERS: Tuple[str, ...] = (
    "related",
    "associated",
    "linked",
    "belonging",
    "for these",
    "for those",
    "of these",
    "of those",
    "their",
)


def _safe_env_int(name: str, default: int, minimum: int) -> int:
    try:
        parsed = get_env_int(name, default)
    except ValueError:
        logger.warning("Invalid %s; using default %s", name, default)
        return default
    if parsed is None:
        return default
    return max(minimum, int(parsed))


def _safe_env_timeout(name: str) -> Optional[float]:
    try:
        value = get_env_float(name, None)
    except ValueError:
        logger.warning("Invalid %s; running without a deadline", name)
        return None
    if value is None or value <= 0:
        return None
    return float(value)


def _env_markers(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    values = get_env_list(name)
    if not values:
        return default
    return tuple(v.lower() for v in values)


@dataclass(frozen=True)
class HealingSettings:
    """Tunables of the generate-and-heal loop."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    history_max_turns: int = DEFAULT_HISTORY_MAX_TURNS
    max_result_ids: int = DEFAULT_MAX_RESULT_IDS
    max_schema_fields: int = DEFAULT_MAX_SCHEMA_FIELDS
    max_related_objects: int = DEFAULT_MAX_RELATED_OBJECTS
    fallback_fields: Tuple[str, ...] = DEFAULT_FALLBACK_FIELDS
    timeout_seconds: Optional[float] = None
    backward_reference_markers: Tuple[str, ...] = DEFAULT_BACKWARD_REFERENCE_MARKERS
    filter_markers: Tuple[str, ...] = DEFAULT_FILTER_MARKERS
    related_markers: Tuple[str, ...] = DEFAULT_RELATED_MARKERS
    current_user_id: Optional[str] = None
    clarification_sentinel: str = CLARIFICATION_SENTINEL
    impossible_sentinel: str = IMPOSSIBLE_SENTINEL
    conversation_excerpt_turns: int = 2

    def __post_init__(self) -> None:
        """Reject budgets that would make the loop unable to run."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.history_max_turns < 1:
            raise ValueError("history_max_turns must be at least 1")
        if not self.fallback_fields:
            raise ValueError("fallback_fields must not be empty")

    @classmethod
    def from_env(cls) -> "HealingSettings":
        """Build settings from AGENT_* environment variables."""
        fallback = get_env_list("AGENT_FALLBACK_SELECT_FIELDS") or list(DEFAULT_FALLBACK_FIELDS)
        return cls(
            max_attempts=_safe_env_int("AGENT_MAX_RETRIES", DEFAULT_MAX_ATTEMPTS, minimum=1),
            history_max_turns=_safe_env_int(
                "AGENT_HISTORY_MAX_TURNS", DEFAULT_HISTORY_MAX_TURNS, minimum=1
            ),
            max_result_ids=_safe_env_int("AGENT_MAX_RESULT_IDS", DEFAULT_MAX_RESULT_IDS, minimum=1),
            max_schema_fields=_safe_env_int(
                "AGENT_MAX_SCHEMA_FIELDS", DEFAULT_MAX_SCHEMA_FIELDS, minimum=1
            ),
            max_related_objects=_safe_env_int(
                "AGENT_MAX_RELATED_OBJECTS", DEFAULT_MAX_RELATED_OBJECTS, minimum=0
            ),
            fallback_fields=tuple(fallback),
            timeout_seconds=_safe_env_timeout("AGENT_TIMEOUT_SECONDS"),
            backward_reference_markers=_env_markers(
                "AGENT_BACKWARD_REFERENCE_MARKERS", DEFAULT_BACKWARD_REFERENCE_MARKERS
            ),
            filter_markers=_env_markers("AGENT_FILTER_MARKERS", DEFAULT_FILTER_MARKERS),
            related_markers=_env_markers("AGENT_RELATED_MARKERS", DEFAULT_RELATED_MARKERS),
            current_user_id=get_env_str("SALESFORCE_USER_ID"),
        )
