"""Generation context assembled before each attempt."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Optional, Tuple

from common.models.schema_metadata import ObjectMetadata
from soql_agent.models.healing import HealingAttempt
from soql_agent.state.domain import ConversationTurn


class ContinuationKind(str, Enum):
    """How the current question relates to the previous turn."""

    NONE = "none"
    SAME_TOPIC_ADD_FIELDS = "same_topic_add_fields"
    SAME_TOPIC_FILTER = "same_topic_filter"
    TOPIC_SWITCH = "topic_switch"

    @property
    def is_continuation(self) -> bool:
        """True for the two same-topic kinds."""
        return self in (ContinuationKind.SAME_TOPIC_ADD_FIELDS, ContinuationKind.SAME_TOPIC_FILTER)


@dataclass(frozen=True)
class SchemaExcerpt:
    """Bounded slice of entity metadata handed to the generator."""

    target: Optional[ObjectMetadata] = None
    related: Tuple[ObjectMetadata, ...] = ()
    available_entities: Tuple[ObjectMetadata, ...] = ()

    def render(self) -> str:
        """Plain-text rendering used inside the prompt."""
        lines = []
        if self.target is not None:
            lines.append(f"ENTITY {self.target.name}" + _label(self.target))
            for fld in self.target.fields:
                lines.append(f"- {fld.name} ({fld.data_type})")
            if self.target.relationships:
                lines.append("LOOKUPS:")
                for rel in self.target.relationships:
                    via = f" via {rel.relationship_name}" if rel.relationship_name else ""
                    lines.append(f"- {rel.field} -> {rel.target_type}{via}")
        for obj in self.related:
            lines.append("")
            lines.append(f"RELATED ENTITY {obj.name}" + _label(obj))
            for fld in obj.fields:
                lines.append(f"- {fld.name} ({fld.data_type})")
        if self.available_entities:
            standard = [o for o in self.available_entities if not o.is_custom]
            custom = [o for o in self.available_entities if o.is_custom]
            if standard:
                lines.append("STANDARD ENTITIES:")
                lines.extend(f"- {o.name}" + _label(o) for o in standard)
            if custom:
                lines.append("CUSTOM ENTITIES:")
                lines.extend(f"- {o.name}" + _label(o) for o in custom)
        return "\n".join(lines) if lines else "(no schema available)"


def _label(obj: ObjectMetadata) -> str:
    return f" ({obj.label})" if obj.label and obj.label != obj.name else ""


@dataclass(frozen=True)
class DomainConstraints:
    """Facts about the caller the generator may rely on."""

    current_user_id: Optional[str] = None
    today: date = field(default_factory=date.today)


@dataclass(frozen=True)
class GenerationContext:
    """Everything the statement generator sees for one attempt.

    Built fresh per attempt and never persisted.
    """

    question: str
    schema_excerpt: SchemaExcerpt = field(default_factory=SchemaExcerpt)
    relationship_hints: Tuple[str, ...] = ()
    previous_turn: Optional[ConversationTurn] = None
    continuation_kind: ContinuationKind = ContinuationKind.NONE
    literal_identifiers: Tuple[str, ...] = ()
    target_entity_type: Optional[str] = None
    result_identifiers: Tuple[str, ...] = ()
    carried_clauses: Dict[str, str] = field(default_factory=dict)
    conversation_excerpt: Tuple[ConversationTurn, ...] = ()
    prior_attempts: Tuple[HealingAttempt, ...] = ()
    error_category: Optional[str] = None
    domain_constraints: DomainConstraints = field(default_factory=DomainConstraints)
    is_fields_listing: bool = False

    @property
    def is_correction(self) -> bool:
        """True once at least one attempt has failed."""
        return bool(self.prior_attempts)

    @property
    def available_identifiers(self) -> Tuple[str, ...]:
        """Identifiers a placeholder may be replaced with, best candidates first.

        Literal identifiers that contain a digit come first (they look like
        record ids), then ids carried from the previous turn, then any other
        literal tokens.
        """
        record_like = [i for i in self.literal_identifiers if any(c.isdigit() for c in i)]
        others = [i for i in self.literal_identifiers if i not in record_like]
        ordered = []
        for ident in (*record_like, *self.result_identifiers, *others):
            if ident not in ordered:
                ordered.append(ident)
        return tuple(ordered)

    @property
    def tried_statements(self) -> Tuple[str, ...]:
        """Statement texts of every prior attempt."""
        return tuple(a.statement for a in self.prior_attempts)
