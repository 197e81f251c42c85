"""OTEL tracing for DAL operations."""

import hashlib
from typing import Awaitable, Optional, TypeVar

from opentelemetry import trace

from common.config.env import get_env_bool

T = TypeVar("T")


def trace_enabled() -> bool:
    """Return True when DAL query tracing is enabled (default on)."""
    return bool(get_env_bool("DAL_TRACE_QUERIES", True))


def _hash_statement(statement: str) -> str:
    return hashlib.sha256(statement.encode("utf-8")).hexdigest()


async def trace_query_operation(
    name: str,
    provider: str,
    statement: Optional[str],
    operation: Awaitable[T],
) -> T:
    """Trace a DAL operation with OTEL when enabled.

    Only a hash of the statement is recorded; literal values may be sensitive.
    """
    if not trace_enabled():
        return await operation

    tracer = trace.get_tracer("dal")
    with tracer.start_as_current_span(name) as span:
        span.set_attribute("db.system", provider)
        if statement:
            span.set_attribute("db.statement_hash", _hash_statement(statement))
        try:
            result = await operation
            span.set_attribute("db.status", "ok")
            return result
        except Exception:
            span.set_attribute("db.status", "error")
            raise
