"""Stable hashing utilities."""

import hashlib


def statement_fingerprint(statement: str) -> str:
    """Short fingerprint of a statement, insensitive to case and spacing."""
    normalized = " ".join((statement or "").split()).lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]
