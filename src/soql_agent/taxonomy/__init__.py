"""Execution error taxonomy."""

from soql_agent.taxonomy.error_taxonomy import (
    ERROR_TAXONOMY,
    ErrorTaxonomyEntry,
    classify_error,
    classify_error_kind,
    generate_correction_strategy,
)

__all__ = [
    "ERROR_TAXONOMY",
    "ErrorTaxonomyEntry",
    "classify_error",
    "classify_error_kind",
    "generate_correction_strategy",
]
