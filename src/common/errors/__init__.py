"""Common error types."""

from common.errors.execution import ExecutionError

__all__ = ["ExecutionError"]
