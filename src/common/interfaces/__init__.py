"""Collaborator interfaces consumed by the query engine."""

from .query_executor import QueryExecutor
from .schema_provider import SchemaProvider
from .text_generator import TextGenerator

__all__ = [
    "QueryExecutor",
    "SchemaProvider",
    "TextGenerator",
]
