from typing import Protocol, runtime_checkable

from common.models.query_result import QueryResult


@runtime_checkable
class QueryExecutor(Protocol):
    """Protocol for running a statement against the remote data service."""

    async def execute(self, statement: str) -> QueryResult:
        """Execute a statement.

        Args:
            statement: The statement text, already sanitized.

        Returns:
            The returned rows and the service-reported total count.

        Raises:
            ExecutionError: If the service rejects the statement or cannot be reached.
        """
        ...
