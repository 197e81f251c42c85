"""Deterministic post-processing of generated statements.

Every candidate passes through ``StatementSanitizer`` before execution. The
rules never touch the network, never alter the contents of string literals
(other than replacing a placeholder literal wholesale) and are idempotent:
sanitizing a sanitized statement returns it unchanged.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence, Tuple

from soql_agent.config import DEFAULT_FALLBACK_FIELDS
from soql_agent.models.context import ContinuationKind, GenerationContext
from soql_agent.utils.clauses import from_entity, mask_literals, pin_clauses, unmask_literals

logger = logging.getLogger(__name__)

MAX_IN_LIST_IDENTIFIERS = 200

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_CODE_FENCE = re.compile(
    r"```(?:(?:soql|sql)\b[ \t]*|(?!select\b)[A-Za-z]+[ \t]*(?=\n))?", re.IGNORECASE
)
_TRAILING_SEMICOLONS = re.compile(r"(?:\s*;)+\s*$")
_SELECT_STAR = re.compile(r"\bSELECT\s+\*", re.IGNORECASE)
_FIELDS_ALL = re.compile(r"\bFIELDS\s*\(\s*(?:ALL|STANDARD|CUSTOM)\s*\)", re.IGNORECASE)
_OUTER_SELECT = re.compile(r"^\s*SELECT\s+", re.IGNORECASE)
_MASKED_LITERAL = re.compile(r"\x00(\d+)\x00")

# Placeholder catalog, matched against the content of a literal or token.
GENERIC_PLACEHOLDER_PATTERNS: Tuple[str, ...] = (
    r"(?:your|my|the|some|sample|example|dummy|insert|enter|replace(?:_with)?|placeholder)"
    r"[_\s-]*(?:\w+[_\s-]*)?ids?(?:[_\s-]*here)?",
    r"(?:\w+[_\s-]*)?ids?[_\s-]*here",
    r"placeholder\w*",
    r"x{3,}",
    r"unknown_user",
)
BRACKETED_PLACEHOLDER_PATTERNS: Tuple[str, ...] = (
    r"\[[^\[\]]*\]",
    r"<[^<>]*>",
    r"\{[^{}]*\}",
)
REPEATED_PLACEHOLDER_PATTERNS: Tuple[str, ...] = (
    r"([A-Za-z])\1{4,}",
    r"[A-Za-z0-9]{3}([Xx])\1{8,}",
)

# Bare (unquoted) placeholder tokens in statement text.
_BARE_BRACKETED = re.compile(
    r"(?<![\w.])(\[[^\[\]()'\x00]{1,80}\]|<[A-Za-z_][^<>()='\x00]{0,80}>|\{[^{}()'\x00]{1,80}\})"
)
_BIND_VARIABLE = re.compile(r"(?<![\w:])(:[A-Za-z_][A-Za-z0-9_]*)")
_IN_LIST = re.compile(r"\bIN\s*\(([^()]*)\)", re.IGNORECASE)
_IN_BIND = re.compile(r"\bIN\s+(:[A-Za-z_][A-Za-z0-9_]*)", re.IGNORECASE)


def _compile_all(patterns: Sequence[str]) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(rf"^(?:{p})$", re.IGNORECASE) for p in patterns)


@dataclass(frozen=True)
class SanitizedStatement:
    """Sanitizer output with the names of the rules that changed something."""

    text: str
    applied_rules: Tuple[str, ...] = ()


@dataclass
class SanitizerRules:
    """Pattern tables for placeholder detection."""

    generic: Sequence[str] = GENERIC_PLACEHOLDER_PATTERNS
    bracketed: Sequence[str] = BRACKETED_PLACEHOLDER_PATTERNS
    repeated: Sequence[str] = REPEATED_PLACEHOLDER_PATTERNS
    _compiled: Tuple[Pattern[str], ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Compile the catalog once."""
        self._compiled = _compile_all([*self.generic, *self.bracketed, *self.repeated])

    def is_placeholder(self, value: str) -> bool:
        """True when ``value`` (unquoted) is a known placeholder shape."""
        candidate = (value or "").strip()
        if not candidate:
            return False
        return any(p.match(candidate) for p in self._compiled)


def is_user_placeholder(value: str) -> bool:
    """Placeholders that stand for the current user rather than a record."""
    return "user" in value.lower()


class StatementSanitizer:
    """Applies the normalization, selection, placeholder and pinning rules."""

    def __init__(
        self,
        fallback_fields: Sequence[str] = DEFAULT_FALLBACK_FIELDS,
        rules: Optional[SanitizerRules] = None,
        max_in_list: int = MAX_IN_LIST_IDENTIFIERS,
    ) -> None:
        """Initialize with the fallback field list and placeholder catalog."""
        if not fallback_fields:
            raise ValueError("fallback_fields must not be empty")
        self.fallback_fields = tuple(fallback_fields)
        self.rules = rules or SanitizerRules()
        self.max_in_list = max_in_list

    def sanitize(self, text: str, context: Optional[GenerationContext] = None) -> str:
        """Return the cleaned statement text."""
        return self.apply(text, context).text

    def apply(self, text: str, context: Optional[GenerationContext] = None) -> SanitizedStatement:
        """Run every rule in order and report which ones fired."""
        applied: List[str] = []

        masked, literals = mask_literals(self._strip_decoration(text or ""))
        normalized = _TRAILING_SEMICOLONS.sub("", " ".join(masked.split()))
        if normalized != masked:
            applied.append("normalize")
        masked = normalized

        rewritten = self._ban_unrestricted_selection(masked)
        if rewritten != masked:
            applied.append("unrestricted_selection")
            masked = rewritten

        identifiers, user_id = self._identifiers(context)
        if identifiers or user_id:
            masked, literals, changed = self._substitute_placeholders(
                masked, literals, identifiers, user_id
            )
            if changed:
                applied.append("placeholder_substitution")

        statement = unmask_literals(masked, literals)

        pinned = self._pin_clauses(statement, context)
        if pinned != statement:
            applied.append("clause_pinning")
            statement = pinned

        if applied:
            logger.debug("Sanitizer rules applied: %s", ", ".join(applied))
        return SanitizedStatement(text=statement, applied_rules=tuple(applied))

    @staticmethod
    def _strip_decoration(text: str) -> str:
        text = _CONTROL_CHARS.sub("", text)
        return _CODE_FENCE.sub(" ", text)

    def _ban_unrestricted_selection(self, masked: str) -> str:
        fields = ", ".join(self.fallback_fields)
        outer_star = bool(_SELECT_STAR.match(masked.lstrip())) or bool(
            _FIELDS_ALL.search(self._outer_select_list(masked) or "")
        )
        rewritten = _SELECT_STAR.sub(f"SELECT {fields}", masked)
        rewritten = _FIELDS_ALL.sub(fields, rewritten)
        if outer_star and rewritten != masked:
            rewritten = self._dedupe_outer_select(rewritten)
        return rewritten

    @staticmethod
    def _outer_select_bounds(masked: str) -> Optional[Tuple[int, int]]:
        head = _OUTER_SELECT.match(masked)
        if head is None:
            return None
        depth = 0
        for match in re.finditer(r"[()]|\bFROM\b", masked[head.end() :], re.IGNORECASE):
            token = match.group(0)
            if token == "(":
                depth += 1
            elif token == ")":
                depth -= 1
            elif depth == 0:
                return head.end(), head.end() + match.start()
        return None

    def _outer_select_list(self, masked: str) -> Optional[str]:
        bounds = self._outer_select_bounds(masked)
        return masked[bounds[0] : bounds[1]] if bounds else None

    def _dedupe_outer_select(self, masked: str) -> str:
        bounds = self._outer_select_bounds(masked)
        if bounds is None:
            return masked
        start, end = bounds
        items: List[str] = []
        depth = 0
        current = ""
        for char in masked[start:end]:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
            if char == "," and depth == 0:
                items.append(current.strip())
                current = ""
            else:
                current += char
        items.append(current.strip())

        unique: List[str] = []
        for item in items:
            if item and item.lower() not in (u.lower() for u in unique):
                unique.append(item)
        return masked[:start] + ", ".join(unique) + " " + masked[end:].lstrip()

    def _identifiers(
        self, context: Optional[GenerationContext]
    ) -> Tuple[Tuple[str, ...], Optional[str]]:
        if context is None:
            return (), None
        identifiers = tuple(
            i for i in context.available_identifiers if not self.rules.is_placeholder(i)
        )
        return identifiers[: self.max_in_list], context.domain_constraints.current_user_id

    def _is_placeholder_token(self, token: str, literals: List[str]) -> Optional[str]:
        """Return the placeholder's inner text when ``token`` is one, else None."""
        token = token.strip()
        literal = _MASKED_LITERAL.fullmatch(token)
        if literal:
            inner = literals[int(literal.group(1))][1:-1]
            return inner if self.rules.is_placeholder(inner) else None
        if _BIND_VARIABLE.fullmatch(token):
            return token
        if _BARE_BRACKETED.fullmatch(token) and "id" in token.lower():
            return token
        return None

    def _substitute_placeholders(
        self,
        masked: str,
        literals: List[str],
        identifiers: Tuple[str, ...],
        user_id: Optional[str],
    ) -> Tuple[str, List[str], bool]:
        literals = list(literals)
        changed = False

        def _replacement(inner: str) -> Optional[str]:
            if user_id and is_user_placeholder(inner):
                return user_id
            return identifiers[0] if identifiers else None

        def _new_literal(value: str) -> str:
            literals.append(f"'{value}'")
            return f"\x00{len(literals) - 1}\x00"

        def _in_list(match: "re.Match[str]") -> str:
            nonlocal changed
            elements = match.group(1).split(",")
            inner = [self._is_placeholder_token(e, literals) for e in elements]
            if not elements or any(i is None for i in inner):
                return match.group(0)
            if all(user_id and is_user_placeholder(i) for i in inner):
                values = [user_id]
            elif identifiers:
                values = list(identifiers)
            else:
                return match.group(0)
            changed = True
            return "IN (" + ", ".join(_new_literal(v) for v in values) + ")"

        def _in_bind(match: "re.Match[str]") -> str:
            nonlocal changed
            if user_id and is_user_placeholder(match.group(1)):
                values = [user_id]
            elif identifiers:
                values = list(identifiers)
            else:
                return match.group(0)
            changed = True
            return "IN (" + ", ".join(_new_literal(v) for v in values) + ")"

        masked = _IN_LIST.sub(_in_list, masked)
        masked = _IN_BIND.sub(_in_bind, masked)

        def _single_literal(match: "re.Match[str]") -> str:
            nonlocal changed
            index = int(match.group(1))
            inner = literals[index][1:-1]
            if not self.rules.is_placeholder(inner):
                return match.group(0)
            value = _replacement(inner)
            if value is None:
                return match.group(0)
            changed = True
            return _new_literal(value)

        def _single_token(match: "re.Match[str]") -> str:
            nonlocal changed
            token = match.group(1)
            if not token.startswith(":") and "id" not in token.lower():
                return match.group(0)
            value = _replacement(token)
            if value is None:
                return match.group(0)
            changed = True
            return _new_literal(value)

        masked = _MASKED_LITERAL.sub(_single_literal, masked)
        masked = _BARE_BRACKETED.sub(_single_token, masked)
        masked = _BIND_VARIABLE.sub(_single_token, masked)
        return masked, literals, changed

    @staticmethod
    def _pin_clauses(statement: str, context: Optional[GenerationContext]) -> str:
        if context is None:
            return statement
        if context.continuation_kind is not ContinuationKind.SAME_TOPIC_ADD_FIELDS:
            return statement
        if not context.carried_clauses or context.previous_turn is None:
            return statement
        previous_entity = context.previous_turn.target_entity_type or from_entity(
            context.previous_turn.statement or ""
        )
        current_entity = from_entity(statement)
        if not previous_entity or not current_entity:
            return statement
        if previous_entity.lower() != current_entity.lower():
            return statement
        return pin_clauses(statement, context.carried_clauses)
