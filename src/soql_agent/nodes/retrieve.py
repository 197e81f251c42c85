"""Context building node: schema excerpt, continuation hints and error history."""

import asyncio
import dataclasses
import logging
from datetime import date
from typing import List, Optional, Sequence, Tuple

from langchain_core.runnables import RunnableConfig

from common.errors import ExecutionError
from common.interfaces import SchemaProvider
from common.models.schema_metadata import ObjectMetadata
from soql_agent.config import HealingSettings
from soql_agent.models import (
    ContinuationKind,
    DomainConstraints,
    GenerationContext,
    HealingAttempt,
    SchemaExcerpt,
)
from soql_agent.nodes.deps import cancelled_update, get_deps
from soql_agent.state.agent import HealingState
from soql_agent.state.classifier import ResolvedReference, match_entity_name
from soql_agent.state.domain import ConversationStore
from soql_agent.telemetry import telemetry
from soql_agent.telemetry_schema import SpanKind, TelemetryKeys
from soql_agent.utils.cancellation import HealingCancelled, run_cancellable
from soql_agent.utils.clauses import PINNED_CLAUSES, split_clauses

logger = logging.getLogger(__name__)


class ContextBuilder:
    """Assembles the GenerationContext for one attempt."""

    def __init__(self, settings: Optional[HealingSettings] = None):
        """Initialize with engine settings (defaults when omitted)."""
        self.settings = settings or HealingSettings()

    async def build(
        self,
        question: str,
        resolved: ResolvedReference,
        store: ConversationStore,
        schema_provider: SchemaProvider,
        prior_attempts: Sequence[HealingAttempt] = (),
        entity_hint: Optional[str] = None,
        *,
        entity_types: Sequence[ObjectMetadata] = (),
        error_category: Optional[str] = None,
        current_user_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        deadline_ts: Optional[float] = None,
    ) -> GenerationContext:
        """Build the context; schema failures degrade, cancellation propagates.

        Raises:
            HealingCancelled: If the caller cancelled or the deadline passed
                during a schema lookup.
        """
        kind = resolved.continuation_kind
        previous = store.previous_turn
        target = self.resolve_target(resolved, store, entity_hint, entity_types)

        target_meta = None
        related: Tuple[ObjectMetadata, ...] = ()
        if target:
            target_meta = await self._describe(target, schema_provider, cancel_event, deadline_ts)
            if target_meta is not None:
                related = await self._related(
                    target_meta, schema_provider, cancel_event, deadline_ts
                )

        available: Tuple[ObjectMetadata, ...] = ()
        if target_meta is None:
            available = self._vocabulary_excerpt(entity_types)

        relationship_hints: Tuple[str, ...] = ()
        if (
            kind is ContinuationKind.TOPIC_SWITCH
            and resolved.references_related
            and previous is not None
            and previous.target_entity_type
            and target_meta is not None
        ):
            previous_meta = await self._describe(
                previous.target_entity_type, schema_provider, cancel_event, deadline_ts
            )
            hint = relationship_hint(
                target_meta, previous.target_entity_type, previous_meta, previous.result_identifiers
            )
            if hint:
                relationship_hints = (hint,)

        carried_clauses = {}
        result_identifiers: Tuple[str, ...] = ()
        if previous is not None and kind is not ContinuationKind.NONE:
            result_identifiers = previous.result_identifiers[: self.settings.max_result_ids]
            if kind is ContinuationKind.SAME_TOPIC_ADD_FIELDS and previous.statement:
                carried_clauses = split_clauses(previous.statement).as_dict(PINNED_CLAUSES)

        conversation_excerpt = ()
        if kind is not ContinuationKind.NONE:
            conversation_excerpt = store.recent(self.settings.conversation_excerpt_turns)

        return GenerationContext(
            question=question,
            schema_excerpt=SchemaExcerpt(
                target=target_meta, related=related, available_entities=available
            ),
            relationship_hints=relationship_hints,
            previous_turn=previous,
            continuation_kind=kind,
            literal_identifiers=resolved.literal_identifiers,
            target_entity_type=target_meta.name if target_meta is not None else target,
            result_identifiers=result_identifiers,
            carried_clauses=carried_clauses,
            conversation_excerpt=conversation_excerpt,
            prior_attempts=tuple(prior_attempts),
            error_category=error_category,
            domain_constraints=DomainConstraints(
                current_user_id=current_user_id or self.settings.current_user_id,
                today=date.today(),
            ),
            is_fields_listing=resolved.fields_listing_target is not None,
        )

    def resolve_target(
        self,
        resolved: ResolvedReference,
        store: ConversationStore,
        entity_hint: Optional[str],
        entity_types: Sequence[ObjectMetadata],
    ) -> Optional[str]:
        """Pick the target entity type.

        Priority: explicit mention, custom-type token, fields-listing target,
        caller hint, previous turn's type (continuations only). Lexical
        candidates must match the vocabulary when one is available; the caller
        hint and the previous type are trusted as given.
        """
        lexical = (
            (resolved.mentioned_entity_type, True),
            (resolved.custom_entity_token, True),
            (resolved.fields_listing_target, False),
        )
        for candidate, usable_without_vocabulary in lexical:
            if not candidate:
                continue
            if not entity_types:
                if usable_without_vocabulary:
                    return candidate
                continue
            matched = match_entity_name(candidate, entity_types)
            if matched:
                return matched

        if entity_hint:
            return match_entity_name(entity_hint, entity_types) or entity_hint

        previous = store.previous_turn
        if resolved.continuation_kind.is_continuation and previous is not None:
            return previous.target_entity_type
        return None

    async def _describe(
        self,
        name: str,
        schema_provider: SchemaProvider,
        cancel_event: Optional[asyncio.Event],
        deadline_ts: Optional[float],
    ) -> Optional[ObjectMetadata]:
        try:
            found = await run_cancellable(schema_provider.schema(name), cancel_event, deadline_ts)
        except ExecutionError as exc:
            logger.warning("Schema lookup failed for %s: %s", name, exc)
            return None
        if not found:
            return None
        meta = found[0]
        fields = tuple(meta.fields[: self.settings.max_schema_fields])
        return dataclasses.replace(meta, fields=fields)

    async def _related(
        self,
        target_meta: ObjectMetadata,
        schema_provider: SchemaProvider,
        cancel_event: Optional[asyncio.Event],
        deadline_ts: Optional[float],
    ) -> Tuple[ObjectMetadata, ...]:
        names: List[str] = []
        for rel in target_meta.relationships:
            if rel.target_type != target_meta.name and rel.target_type not in names:
                names.append(rel.target_type)
        related = []
        for name in names[: self.settings.max_related_objects]:
            meta = await self._describe(name, schema_provider, cancel_event, deadline_ts)
            if meta is not None:
                related.append(dataclasses.replace(meta, relationships=()))
        return tuple(related)

    def _vocabulary_excerpt(
        self, entity_types: Sequence[ObjectMetadata]
    ) -> Tuple[ObjectMetadata, ...]:
        ordered = sorted(entity_types, key=lambda e: (e.is_custom, e.name.lower()))
        return tuple(ordered[: self.settings.max_schema_fields])


def relationship_hint(
    target_meta: ObjectMetadata,
    previous_type: str,
    previous_meta: Optional[ObjectMetadata],
    previous_ids: Sequence[str] = (),
) -> Optional[str]:
    """Describe how to reach ``target_meta`` from the previous turn's records.

    Uses whichever side of the lookup the schema shows: the target pointing at
    the previous type (filter the target by its lookup field), or the previous
    type pointing at the target (semi-join through the previous type).
    """
    source_filter = "WHERE <previous filter>"
    if previous_ids:
        source_filter = "WHERE Id IN (" + ", ".join(f"'{i}'" for i in previous_ids) + ")"

    for rel in target_meta.relationships:
        if rel.target_type.lower() == previous_type.lower():
            return (
                f"RELATIONSHIP: {target_meta.name}.{rel.field} -> {previous_type}. "
                f"Example: SELECT Id, Name FROM {target_meta.name} WHERE {rel.field} IN "
                f"(SELECT Id FROM {previous_type} {source_filter})"
            )

    if previous_meta is not None:
        for rel in previous_meta.relationships:
            if rel.target_type.lower() == target_meta.name.lower():
                return (
                    f"RELATIONSHIP: {previous_type}.{rel.field} -> {target_meta.name}. "
                    f"Example: SELECT Id, Name FROM {target_meta.name} WHERE Id IN "
                    f"(SELECT {rel.field} FROM {previous_type} {source_filter})"
                )
    return None


async def build_context_node(state: HealingState, config: RunnableConfig) -> dict:
    """
    Node: BuildContext.

    Rebuilds the generation context for every attempt so that correction
    rounds see the full error history.

    Returns:
        dict: generation_context, or the cancellation update
    """
    deps = get_deps(config)
    with telemetry.start_span(name="build_context", span_type=SpanKind.AGENT_NODE) as span:
        attempts = state.get("attempts") or []
        span.set_attribute(TelemetryKeys.ATTEMPT.value, len(attempts) + 1)
        try:
            context = await deps.context_builder.build(
                state["question"],
                state["resolved"],
                state["history"],
                deps.schema_provider,
                prior_attempts=attempts,
                entity_hint=state.get("entity_hint"),
                entity_types=state.get("entity_types") or (),
                error_category=state.get("error_category"),
                current_user_id=state.get("current_user_id"),
                cancel_event=deps.cancel_event,
                deadline_ts=state.get("deadline_ts"),
            )
        except HealingCancelled as exc:
            return cancelled_update(exc, span)

        span.set_attribute(TelemetryKeys.TARGET_ENTITY.value, context.target_entity_type)
        target_meta = context.schema_excerpt.target
        span.set_attribute(
            "context.schema_fields", len(target_meta.fields) if target_meta is not None else 0
        )
        span.set_attribute("context.relationship_hints", len(context.relationship_hints))
        span.set_attribute("context.carried_clauses", sorted(context.carried_clauses))
        return {"generation_context": context}
