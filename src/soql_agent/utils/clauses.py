"""Top-level clause splitting for SOQL statements.

String literals are masked before scanning so that keywords, parentheses and
whitespace inside quotes are never interpreted.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

_LITERAL_RE = re.compile(r"'(?:\\.|[^'\\])*'")
_MASK_RE = re.compile(r"\x00(\d+)\x00")

# Canonical SOQL clause order after SELECT ... FROM.
CLAUSE_ORDER: Tuple[str, ...] = (
    "USING SCOPE",
    "WHERE",
    "WITH",
    "GROUP BY",
    "HAVING",
    "ORDER BY",
    "LIMIT",
    "OFFSET",
    "FOR",
)
PINNED_CLAUSES: Tuple[str, ...] = ("WHERE", "ORDER BY", "LIMIT", "OFFSET")

_CLAUSE_RE = re.compile(
    r"\b(USING\s+SCOPE|WHERE|WITH|GROUP\s+BY|HAVING|ORDER\s+BY|LIMIT|OFFSET|FOR)\b",
    re.IGNORECASE,
)
_FROM_RE = re.compile(r"\bFROM\b", re.IGNORECASE)
_ENTITY_RE = re.compile(r"\s*([A-Za-z_][A-Za-z0-9_]*)")


def mask_literals(text: str) -> Tuple[str, List[str]]:
    """Replace quoted literals with indexed placeholders."""
    literals: List[str] = []

    def _sub(match: "re.Match[str]") -> str:
        literals.append(match.group(0))
        return f"\x00{len(literals) - 1}\x00"

    return _LITERAL_RE.sub(_sub, text), literals


def unmask_literals(text: str, literals: List[str]) -> str:
    """Inverse of ``mask_literals``."""
    return _MASK_RE.sub(lambda m: literals[int(m.group(1))], text)


def _depths(masked: str) -> List[int]:
    depth = 0
    depths = []
    for char in masked:
        if char == "(":
            depth += 1
        depths.append(depth)
        if char == ")":
            depth = max(0, depth - 1)
    return depths


def _canonical(keyword: str) -> str:
    return " ".join(keyword.upper().split())


@dataclass(frozen=True)
class StatementClauses:
    """A statement split into its ``SELECT ... FROM`` head and trailing clauses."""

    head: str
    clauses: Tuple[Tuple[str, str], ...] = ()

    def get(self, keyword: str) -> Optional[str]:
        """Body of a clause (without its keyword), if present."""
        wanted = _canonical(keyword)
        for name, body in self.clauses:
            if name == wanted:
                return body
        return None

    def as_dict(self, keywords: Iterable[str] = CLAUSE_ORDER) -> Dict[str, str]:
        """Clause bodies keyed by canonical keyword, restricted to ``keywords``."""
        wanted = {_canonical(k) for k in keywords}
        return {name: body for name, body in self.clauses if name in wanted}

    def render(self) -> str:
        """Reassemble in canonical clause order with single spaces."""
        ordered = sorted(
            self.clauses,
            key=lambda c: CLAUSE_ORDER.index(c[0]) if c[0] in CLAUSE_ORDER else len(CLAUSE_ORDER),
        )
        parts = [self.head] + [f"{name} {body}".strip() for name, body in ordered]
        return " ".join(p for p in parts if p)


def _top_level_from(masked: str, depths: List[int]) -> Optional["re.Match[str]"]:
    for match in _FROM_RE.finditer(masked):
        if depths[match.start()] == 0:
            return match
    return None


def split_clauses(statement: str) -> StatementClauses:
    """Split at top-level clause keywords (outside parentheses and quotes)."""
    masked, literals = mask_literals(statement.strip())
    depths = _depths(masked)
    from_match = _top_level_from(masked, depths)
    if from_match is None:
        return StatementClauses(head=unmask_literals(masked, literals).strip())

    boundaries = [
        m
        for m in _CLAUSE_RE.finditer(masked, from_match.end())
        if depths[m.start()] == 0
    ]
    if not boundaries:
        return StatementClauses(head=unmask_literals(masked, literals).strip())

    head = masked[: boundaries[0].start()].strip()
    clauses = []
    for index, match in enumerate(boundaries):
        end = boundaries[index + 1].start() if index + 1 < len(boundaries) else len(masked)
        body = masked[match.end() : end].strip()
        clauses.append((_canonical(match.group(1)), unmask_literals(body, literals)))
    return StatementClauses(head=unmask_literals(head, literals), clauses=tuple(clauses))


def from_entity(statement: str) -> Optional[str]:
    """Entity API name after the top-level FROM, if any."""
    if not statement:
        return None
    masked, _ = mask_literals(statement)
    depths = _depths(masked)
    from_match = _top_level_from(masked, depths)
    if from_match is None:
        return None
    entity = _ENTITY_RE.match(masked, from_match.end())
    return entity.group(1) if entity else None


def pin_clauses(statement: str, carried: Dict[str, str]) -> str:
    """Replace the statement's filter/sort/limit clauses with ``carried``.

    Every clause in ``PINNED_CLAUSES`` is dropped from the statement and the
    carried ones are added back; other clauses (GROUP BY, WITH, ...) stay.
    """
    parts = split_clauses(statement)
    kept = [(name, body) for name, body in parts.clauses if name not in PINNED_CLAUSES]
    pinned = [(_canonical(k), v) for k, v in carried.items() if _canonical(k) in PINNED_CLAUSES]
    return StatementClauses(head=parts.head, clauses=tuple(kept + pinned)).render()
