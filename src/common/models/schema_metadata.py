"""Entity metadata returned by schema providers."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class FieldMetadata:
    """A single field on an entity type."""

    name: str
    data_type: str
    label: Optional[str] = None


@dataclass(frozen=True)
class RelationshipMetadata:
    """A lookup/foreign-key field pointing at another entity type."""

    field: str
    target_type: str
    relationship_name: Optional[str] = None


@dataclass(frozen=True)
class ObjectMetadata:
    """Metadata for one entity type (sObject).

    Vocabulary listings carry only ``name``/``label``/``is_custom``; a detailed
    lookup additionally fills ``fields`` and ``relationships``.
    """

    name: str
    label: Optional[str] = None
    is_custom: bool = False
    fields: Tuple[FieldMetadata, ...] = field(default_factory=tuple)
    relationships: Tuple[RelationshipMetadata, ...] = field(default_factory=tuple)

    @property
    def lookup_fields(self) -> Tuple[str, ...]:
        """Names of fields that reference another entity type."""
        return tuple(rel.field for rel in self.relationships)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "name": self.name,
            "label": self.label,
            "is_custom": self.is_custom,
            "fields": [
                {"name": f.name, "data_type": f.data_type, "label": f.label} for f in self.fields
            ],
            "relationships": [
                {
                    "field": r.field,
                    "target_type": r.target_type,
                    "relationship_name": r.relationship_name,
                }
                for r in self.relationships
            ],
        }
