"""Pydantic models for Salesforce REST payloads."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SalesforceApiError(BaseModel):
    """One entry of a Salesforce error response body."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    error_code: str = Field("UNKNOWN_ERROR", alias="errorCode")
    message: str = ""

    def render(self) -> str:
        """Format as ``"<CODE>: <message>"``."""
        return f"{self.error_code}: {self.message}".strip()


class QueryResponse(BaseModel):
    """Body of ``GET /query`` and of ``nextRecordsUrl`` pages."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    total_size: int = Field(0, alias="totalSize")
    done: bool = True
    records: List[Dict[str, Any]] = Field(default_factory=list)
    next_records_url: Optional[str] = Field(None, alias="nextRecordsUrl")


class DescribeField(BaseModel):
    """A field entry of ``GET /sobjects/<name>/describe``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    type: str = "string"
    label: Optional[str] = None
    reference_to: List[str] = Field(default_factory=list, alias="referenceTo")
    relationship_name: Optional[str] = Field(None, alias="relationshipName")


class DescribeResponse(BaseModel):
    """Body of ``GET /sobjects/<name>/describe``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    label: Optional[str] = None
    custom: bool = False
    fields: List[DescribeField] = Field(default_factory=list)


def strip_attributes(record: Dict[str, Any]) -> Dict[str, Any]:
    """Drop the ``attributes`` envelope from a record, recursing into lookups."""
    cleaned: Dict[str, Any] = {}
    for key, value in record.items():
        if key == "attributes":
            continue
        if isinstance(value, dict):
            if "records" in value and isinstance(value["records"], list):
                cleaned[key] = [strip_attributes(r) for r in value["records"]]
            else:
                cleaned[key] = strip_attributes(value)
        else:
            cleaned[key] = value
    return cleaned
