"""Errors raised by query executors."""

from typing import Optional


class ExecutionError(Exception):
    """A statement could not be executed by the remote data service.

    The message is the service's own error text (for Salesforce:
    ``"<ERROR_CODE>: <message>"``); the error taxonomy pattern-matches it.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        """Initialize with the service message and optional structured codes."""
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code

    def __str__(self) -> str:
        """Return the service message."""
        return self.message
