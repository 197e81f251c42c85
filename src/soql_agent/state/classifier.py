"""Reference resolution for follow-up questions.

Each heuristic is a named predicate over a pattern table so the tables can be
tuned (see ``HealingSettings``) without touching the decision logic in
``ReferenceResolver.resolve``.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from common.models.schema_metadata import ObjectMetadata
from soql_agent.config import (
    DEFAULT_BACKWARD_REFERENCE_MARKERS,
    DEFAULT_FILTER_MARKERS,
    DEFAULT_RELATED_MARKERS,
    HealingSettings,
)
from soql_agent.models.context import ContinuationKind
from soql_agent.state.domain import ConversationStore

logger = logging.getLogger(__name__)

# Salesforce record ids are 15 (case-sensitive) or 18 (case-insensitive) characters.
IDENTIFIER_PATTERN = r"\b(?:[A-Za-z0-9]{18}|[A-Za-z0-9]{15})\b"
CUSTOM_ENTITY_PATTERN = r"\b([A-Za-z][A-Za-z0-9_]*__c)\b"
FIELDS_LISTING_PATTERN = r"\bfields?\b.*?\b(?:of|for|on|in)\s+(?:the\s+)?([A-Za-z][A-Za-z0-9_]*)"


@dataclass(frozen=True)
class ResolverPatterns:
    """Pattern tables consumed by the resolver predicates."""

    backward_reference_markers: Tuple[str, ...] = DEFAULT_BACKWARD_REFERENCE_MARKERS
    filter_markers: Tuple[str, ...] = DEFAULT_FILTER_MARKERS
    related_markers: Tuple[str, ...] = DEFAULT_RELATED_MARKERS
    identifier_pattern: str = IDENTIFIER_PATTERN
    custom_entity_pattern: str = CUSTOM_ENTITY_PATTERN
    fields_listing_pattern: str = FIELDS_LISTING_PATTERN

    @classmethod
    def from_settings(cls, settings: HealingSettings) -> "ResolverPatterns":
        """Take the marker tables from engine settings."""
        return cls(
            backward_reference_markers=settings.backward_reference_markers,
            filter_markers=settings.filter_markers,
            related_markers=settings.related_markers,
        )


@dataclass(frozen=True)
class ResolvedReference:
    """What the resolver learned about a question."""

    continuation_kind: ContinuationKind = ContinuationKind.NONE
    literal_identifiers: Tuple[str, ...] = ()
    mentioned_entity_type: Optional[str] = None
    custom_entity_token: Optional[str] = None
    fields_listing_target: Optional[str] = None
    references_related: bool = False


@lru_cache(maxsize=64)
def _marker_regex(markers: Tuple[str, ...]) -> Optional[Pattern[str]]:
    cleaned = sorted({m.strip().lower() for m in markers if m and m.strip()}, key=len, reverse=True)
    if not cleaned:
        return None
    alternatives = "|".join(r"\s+".join(re.escape(part) for part in m.split()) for m in cleaned)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


def _contains_marker(question: str, markers: Sequence[str]) -> bool:
    pattern = _marker_regex(tuple(markers))
    return bool(pattern and pattern.search(question or ""))


def has_backward_reference(question: str, markers: Sequence[str]) -> bool:
    """True when the question points back at earlier results ("those", "too")."""
    return _contains_marker(question, markers)


def has_filter_intent(question: str, markers: Sequence[str]) -> bool:
    """True when the question narrows a result set ("only", "what about ... in NY")."""
    return _contains_marker(question, markers)


def has_related_reference(question: str, markers: Sequence[str]) -> bool:
    """True when the question asks for records related to earlier ones."""
    return _contains_marker(question, markers)


def extract_literal_identifiers(
    question: str, pattern: str = IDENTIFIER_PATTERN
) -> Tuple[str, ...]:
    """Return every id-shaped token verbatim, in order of first appearance."""
    seen: List[str] = []
    for match in re.finditer(pattern, question or ""):
        token = match.group(0)
        if token not in seen:
            seen.append(token)
    return tuple(seen)


def find_custom_entity_token(question: str, pattern: str = CUSTOM_ENTITY_PATTERN) -> Optional[str]:
    """Return the first custom entity API name (``Invoice__c``) in the question."""
    match = re.search(pattern, question or "", re.IGNORECASE)
    return match.group(1) if match else None


def find_fields_listing_target(
    question: str, pattern: str = FIELDS_LISTING_PATTERN
) -> Optional[str]:
    """Return X for questions like "list the fields of X"."""
    match = re.search(pattern, question or "", re.IGNORECASE)
    return match.group(1) if match else None


def _entity_aliases(entity: ObjectMetadata) -> Iterable[str]:
    names = {entity.name}
    if entity.label:
        names.add(entity.label)
    if entity.name.endswith("__c"):
        names.add(entity.name[: -len("__c")].replace("_", " "))
    for name in list(names):
        lowered = name.lower()
        if lowered.endswith("y") and not lowered.endswith(("ay", "ey", "oy", "uy")):
            names.add(name[:-1] + "ies")
        elif lowered.endswith(("s", "x", "ch", "sh")):
            names.add(name + "es")
        else:
            names.add(name + "s")
    return names


def find_entity_mentions(question: str, entity_types: Sequence[ObjectMetadata]) -> List[str]:
    """Entity API names explicitly named in the question, in order of appearance.

    Matches API names, labels and simple plurals, case-insensitively. When two
    candidates overlap, the longer one wins ("Account Contact Role" over
    "Account").
    """
    text = question or ""
    hits: List[Tuple[int, int, str]] = []
    for entity in entity_types:
        for alias in _entity_aliases(entity):
            words = r"\s+".join(re.escape(part) for part in alias.split())
            for match in re.finditer(rf"\b{words}\b", text, re.IGNORECASE):
                hits.append((match.start(), match.end(), entity.name))

    hits.sort(key=lambda h: (h[0], -(h[1] - h[0])))
    mentions: List[str] = []
    covered_until = -1
    for start, end, name in hits:
        if start < covered_until:
            continue
        covered_until = end
        if name not in mentions:
            mentions.append(name)
    return mentions


class ReferenceResolver:
    """Decides how a question relates to the conversation so far."""

    def __init__(self, patterns: Optional[ResolverPatterns] = None):
        """Initialize with pattern tables (defaults when omitted)."""
        self.patterns = patterns or ResolverPatterns()

    def resolve(
        self,
        question: str,
        store: ConversationStore,
        entity_types: Sequence[ObjectMetadata] = (),
    ) -> ResolvedReference:
        """Classify the question; never raises.

        An explicit mention of an entity type different from the previous turn's
        always yields TOPIC_SWITCH, even when backward-reference markers are
        present. This is a heuristic: a field name that happens to match another
        entity's label can trigger it.
        """
        p = self.patterns
        try:
            literal_identifiers = extract_literal_identifiers(question, p.identifier_pattern)
            mentions = find_entity_mentions(question, entity_types)
            custom_token = find_custom_entity_token(question, p.custom_entity_pattern)
            fields_target = find_fields_listing_target(question, p.fields_listing_pattern)
            references_related = has_related_reference(question, p.related_markers)
            explicit = mentions[0] if mentions else custom_token
            kind = self._continuation_kind(question, store, explicit)
        except (re.error, TypeError) as exc:
            logger.warning("Reference resolution failed; treating as new question: %s", exc)
            return ResolvedReference()

        return ResolvedReference(
            continuation_kind=kind,
            literal_identifiers=literal_identifiers,
            mentioned_entity_type=explicit,
            custom_entity_token=custom_token,
            fields_listing_target=fields_target,
            references_related=references_related,
        )

    def _continuation_kind(
        self, question: str, store: ConversationStore, explicit_entity: Optional[str]
    ) -> ContinuationKind:
        previous = store.previous_turn
        if previous is None:
            return ContinuationKind.NONE

        previous_type = previous.target_entity_type
        if explicit_entity and previous_type and explicit_entity.lower() != previous_type.lower():
            return ContinuationKind.TOPIC_SWITCH

        if has_backward_reference(question, self.patterns.backward_reference_markers):
            if has_filter_intent(question, self.patterns.filter_markers):
                return ContinuationKind.SAME_TOPIC_FILTER
            return ContinuationKind.SAME_TOPIC_ADD_FIELDS

        return ContinuationKind.NONE


def match_entity_name(term: str, entity_types: Sequence[ObjectMetadata]) -> Optional[str]:
    """Resolve a loosely named entity against the vocabulary.

    Tries the API name, then label and plural aliases, then a substring match
    (shortest API name wins). Returns None when nothing matches.
    """
    wanted = (term or "").strip().lower()
    if not wanted:
        return None
    for entity in entity_types:
        if entity.name.lower() == wanted:
            return entity.name
    for entity in entity_types:
        if wanted in {alias.lower() for alias in _entity_aliases(entity)}:
            return entity.name
    if len(wanted) < 3:
        return None
    partial = [e.name for e in entity_types if wanted in e.name.lower()]
    return min(partial, key=len) if partial else None
