"""Salesforce entity metadata provider backed by a TTL cache."""

import logging
from typing import Dict, List, Optional

from common.errors import ExecutionError
from common.models.schema_metadata import FieldMetadata, ObjectMetadata, RelationshipMetadata
from dal.salesforce.executor import SalesforceQueryExecutor
from dal.salesforce.models import DescribeResponse
from dal.schema_cache import SchemaCache

logger = logging.getLogger(__name__)

VOCABULARY_STATEMENT = (
    "SELECT QualifiedApiName, Label FROM EntityDefinition "
    "WHERE IsCustomizable = true ORDER BY QualifiedApiName"
)

DEFAULT_MAX_FIELDS = 200


class SalesforceSchemaProvider:
    """Implements ``schema(hint)`` on top of EntityDefinition and describe calls."""

    def __init__(
        self,
        executor: SalesforceQueryExecutor,
        cache: Optional[SchemaCache] = None,
        max_fields: int = DEFAULT_MAX_FIELDS,
    ) -> None:
        """Initialize with an executor (shares its session) and a cache."""
        self._executor = executor
        self._cache = cache if cache is not None else SchemaCache()
        self._max_fields = max_fields

    @property
    def _instance(self) -> str:
        return self._executor.config.instance_url

    async def schema(self, entity_type_hint: Optional[str] = None) -> List[ObjectMetadata]:
        """Return the entity vocabulary, or the detailed metadata for one entity."""
        vocabulary = await self._vocabulary()
        if entity_type_hint is None:
            return list(vocabulary)

        by_name: Dict[str, ObjectMetadata] = {obj.name.lower(): obj for obj in vocabulary}
        match = by_name.get(entity_type_hint.strip().lower())
        if match is None:
            logger.debug("Unknown entity type requested: %s", entity_type_hint)
            return []

        detailed = await self._describe(match)
        return [detailed] if detailed is not None else []

    async def _vocabulary(self) -> List[ObjectMetadata]:
        key = (self._instance, None)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result = await self._executor.execute(VOCABULARY_STATEMENT)
        vocabulary = []
        for record in result.records:
            name = record.get("QualifiedApiName")
            if not name:
                continue
            vocabulary.append(
                ObjectMetadata(name=name, label=record.get("Label"), is_custom=name.endswith("__c"))
            )
        vocabulary.sort(key=lambda obj: (obj.is_custom, obj.name))
        self._cache.set(key, vocabulary)
        logger.info("Loaded entity vocabulary", extra={"entity_count": len(vocabulary)})
        return vocabulary

    async def _describe(self, entity: ObjectMetadata) -> Optional[ObjectMetadata]:
        key = (self._instance, entity.name)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        url = f"{self._executor.config.data_url}/sobjects/{entity.name}/describe"
        try:
            body = await self._executor.get_json(url)
        except ExecutionError as exc:
            if exc.error_code == "NOT_FOUND":
                return None
            raise

        described = DescribeResponse.model_validate(body)
        fields = tuple(
            FieldMetadata(name=f.name, data_type=f.type, label=f.label)
            for f in described.fields[: self._max_fields]
        )
        relationships = tuple(
            RelationshipMetadata(
                field=f.name, target_type=target, relationship_name=f.relationship_name
            )
            for f in described.fields
            for target in f.reference_to
        )
        metadata = ObjectMetadata(
            name=described.name,
            label=described.label or entity.label,
            is_custom=described.custom,
            fields=fields,
            relationships=relationships,
        )
        self._cache.set(key, metadata)
        return metadata
