"""Sanitization utilities."""

from .text import SanitizationResult, redact_recursive, redact_sensitive_info, sanitize_question

__all__ = ["sanitize_question", "redact_sensitive_info", "redact_recursive", "SanitizationResult"]
