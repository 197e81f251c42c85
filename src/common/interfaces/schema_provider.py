from typing import List, Optional, Protocol, runtime_checkable

from common.models.schema_metadata import ObjectMetadata


@runtime_checkable
class SchemaProvider(Protocol):
    """Protocol for entity metadata lookups.

    Implementations own their caching and TTL; callers only read.
    """

    async def schema(self, entity_type_hint: Optional[str] = None) -> List[ObjectMetadata]:
        """Look up entity metadata.

        Args:
            entity_type_hint: An entity API name, or None for the vocabulary of
                all queryable entity types (names and labels only).

        Returns:
            With a hint, a list holding the matching entity type with its fields and
            relationships, or an empty list when it does not exist. Without one,
            every known entity type.
        """
        ...
