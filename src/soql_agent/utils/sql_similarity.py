"""Structural similarity between two statements, used to flag repeated corrections."""

import logging
from typing import Set

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

logger = logging.getLogger(__name__)


def _extract_tables(expression: exp.Expression) -> Set[str]:
    return {table.name.lower() for table in expression.find_all(exp.Table)}


def _extract_columns(expression: exp.Expression) -> Set[str]:
    columns = set()
    for col in expression.find_all(exp.Column):
        qualifier = f"{col.table.lower()}." if col.table else ""
        columns.add(qualifier + col.name.lower())
    return columns


def _jaccard(left: Set[str], right: Set[str]) -> float:
    union = left | right
    if not union:
        return 1.0
    return len(left & right) / len(union)


def compute_statement_similarity(first: str, second: str) -> float:
    """
    Compute structural similarity between two statements (0.0 to 1.0).

    Jaccard similarity of entities (weight 0.7) and fields (weight 0.3) over
    the sqlglot AST. SOQL-only syntax sqlglot cannot parse yields 0.0 unless
    the normalized texts are identical.
    """
    if not first or not second:
        return 0.0

    if " ".join(first.split()).lower() == " ".join(second.split()).lower():
        return 1.0

    try:
        ast1 = sqlglot.parse_one(first)
        ast2 = sqlglot.parse_one(second)
    except SqlglotError as exc:
        logger.debug("Similarity parse failed: %s", exc)
        return 0.0

    table_sim = _jaccard(_extract_tables(ast1), _extract_tables(ast2))
    col_sim = _jaccard(_extract_columns(ast1), _extract_columns(ast2))
    return (0.7 * table_sim) + (0.3 * col_sim)
