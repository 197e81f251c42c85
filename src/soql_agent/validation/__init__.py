"""Statement validation and sanitization."""

from soql_agent.validation.sanitizer import SanitizedStatement, SanitizerRules, StatementSanitizer

__all__ = ["SanitizedStatement", "SanitizerRules", "StatementSanitizer"]
