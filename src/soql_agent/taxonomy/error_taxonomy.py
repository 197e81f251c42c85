"""Error taxonomy for SOQL execution failures and targeted correction.

Execution errors are classified into a kind (fatal, recoverable, unknown) that
drives the healing loop, and a category whose strategy text is handed to the
generator on the next correction round.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from soql_agent.models.errors import ErrorCategory, ErrorKind


@dataclass
class ErrorTaxonomyEntry:
    """Represents a category of execution error with its correction strategy."""

    name: str
    kind: ErrorKind
    patterns: list[str] = field(default_factory=list)  # Regex patterns, case-insensitive
    strategy: str = ""
    example_fix: Optional[str] = None


# Fatal categories come first: an expired session must never be mistaken for a
# statement problem just because the message also mentions a field.
ERROR_TAXONOMY = {
    ErrorCategory.AUTHENTICATION: ErrorTaxonomyEntry(
        name="Authentication Failure",
        kind=ErrorKind.FATAL,
        patterns=[
            r"INVALID_SESSION_ID",
            r"session expired or invalid",
            r"INVALID_AUTH_HEADER",
            r"INVALID_LOGIN",
            r"authentication fail",
            r"\bunauthori[sz]ed\b",
            r"\bHTTP 401\b",
            r"invalid_grant",
        ],
        strategy="The session is no longer valid. Re-authenticate before retrying.",
    ),
    ErrorCategory.PERMISSION: ErrorTaxonomyEntry(
        name="Permission Denied",
        kind=ErrorKind.FATAL,
        patterns=[
            r"INSUFFICIENT_ACCESS",
            r"insufficient access rights",
            r"insufficient privileges",
            r"permission denied",
            r"API_DISABLED_FOR_ORG",
            r"API_CURRENTLY_DISABLED",
            r"\bHTTP 403\b",
        ],
        strategy="The integration user lacks access. An administrator must grant it.",
    ),
    ErrorCategory.SERVICE_UNAVAILABLE: ErrorTaxonomyEntry(
        name="Service Unavailable",
        kind=ErrorKind.FATAL,
        patterns=[
            r"the requested resource does not exist",
            r"^NOT_FOUND\b",
            r"invalid instance",
            r"instance.*not found",
            r"REQUEST_LIMIT_EXCEEDED",
            r"SERVER_UNAVAILABLE",
            r"CONNECTION_FAILED",
            r"connection refused",
            r"\bHTTP 50[23]\b",
        ],
        strategy="The remote service cannot be reached. Re-establish the connection.",
    ),
    ErrorCategory.REFERENTIAL: ErrorTaxonomyEntry(
        name="Invalid Record Identifier",
        kind=ErrorKind.RECOVERABLE,
        patterns=[
            r"invalid ID field",
            r"MALFORMED_ID",
            r"INVALID_ID_FIELD",
            r"INVALID_CROSS_REFERENCE_KEY",
            r"invalid (?:record )?id\b",
            r"ENTITY_IS_DELETED",
            r"record (?:was )?not found",
        ],
        strategy=(
            "A record identifier in the statement is not a real id. Use only the ids "
            "listed in the context (from the question or the previous results). "
            "If no real id is available, answer with the impossibility sentinel."
        ),
        example_fix="WHERE Id = 'your_id'  ->  WHERE Id = '001xx000003DGb2AAG'",
    ),
    ErrorCategory.STRUCTURAL: ErrorTaxonomyEntry(
        name="Invalid Statement Structure",
        kind=ErrorKind.RECOVERABLE,
        patterns=[
            # Unknown field / entity
            r"INVALID_FIELD",
            r"no such column",
            r"didn't understand relationship",
            r"INVALID_TYPE",
            r"sObject type .* is not supported",
            # Compound fields
            r"compound field",
            r"\bAddress\b.*(?:not supported|cannot be)",
            r"Geolocation",
            # Subqueries
            r"nesting of semi join sub-selects",
            r"semi join sub-?selects? (?:are|is) only allowed",
            r"semi join sub-?select",
            # Aggregation
            r"must be grouped or aggregated",
            r"aggregate (?:query|function)",
            r"field must be grouped",
            # Syntax
            r"MALFORMED_QUERY",
            r"unexpected token",
            r"unexpected end of",
            r"bind variables only allowed",
            r"INVALID_QUERY_FILTER_OPERATOR",
            r"can ?not be filtered",
            r"can ?not be sorted",
            r"duplicate field selected",
            r"QUERY_TOO_COMPLICATED",
        ],
        strategy=(
            "Fix the statement structure. Use only fields listed in the schema, "
            "query address components (BillingCity, MailingState) instead of compound "
            "Address fields, avoid nesting semi-join subqueries, group every "
            "non-aggregated field when using aggregate functions, and use literal "
            "values instead of bind variables."
        ),
        example_fix=(
            "SELECT Address FROM Account  ->  SELECT BillingCity, BillingState FROM Account"
        ),
    ),
}

UNKNOWN_ENTRY = ErrorTaxonomyEntry(
    name="Unknown Error",
    kind=ErrorKind.UNKNOWN,
    strategy=(
        "Analyze the error message carefully. Check entity and field names against "
        "the schema, clause order and literal formats."
    ),
)

_MISSING_IDENTIFIER_PATTERNS = (
    r"No such column '([^']+)'",
    r"sObject type '([^']+)' is not supported",
    r"Didn't understand relationship '([^']+)'",
)


def classify_error(error_message: str) -> tuple[str, ErrorTaxonomyEntry]:
    """
    Classify an error message into a category from the taxonomy.

    Args:
        error_message: The execution error message

    Returns:
        Tuple of (category_key, ErrorTaxonomyEntry); unmatched messages map to UNKNOWN.
    """
    message = error_message or ""
    for category_key, category in ERROR_TAXONOMY.items():
        for pattern in category.patterns:
            if re.search(pattern, message, re.IGNORECASE | re.MULTILINE):
                return category_key.value, category
    return ErrorCategory.UNKNOWN.value, UNKNOWN_ENTRY


def classify_error_kind(error_message: str) -> Tuple[ErrorKind, str]:
    """Return ``(kind, category_key)`` for an execution error message."""
    category_key, entry = classify_error(error_message)
    return entry.kind, category_key


def extract_missing_identifiers(error_message: str) -> List[str]:
    """Field, entity or relationship names the service reported as unknown."""
    found: List[str] = []
    for pattern in _MISSING_IDENTIFIER_PATTERNS:
        for match in re.finditer(pattern, error_message or "", re.IGNORECASE):
            if match.group(1) not in found:
                found.append(match.group(1))
    return found


def generate_correction_strategy(
    error_message: str,
    failed_statement: str,
    schema_context: str = "",
) -> str:
    """
    Build the correction guidance for the next generation round.

    Args:
        error_message: The execution error message
        failed_statement: The statement that failed
        schema_context: Rendered schema excerpt, if available

    Returns:
        Markdown section appended to the generation prompt
    """
    _, category = classify_error(error_message)

    strategy = f"""## Error Classification: {category.name}

### Error Message
{error_message}
"""

    missing = extract_missing_identifiers(error_message)
    if missing:
        strategy += f"""
### Unknown Names (Confirmed)
The service does not recognize: {", ".join(f"'{m}'" for m in missing)}
"""

    strategy += f"""
### Failed Statement
{failed_statement}

### Correction Strategy
{category.strategy}
"""

    if category.example_fix:
        strategy += f"""
### Example Fix
{category.example_fix}
"""

    if schema_context:
        strategy += "\nVerify every field against the schema above before answering.\n"

    return strategy
