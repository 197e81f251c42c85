"""Result container returned by query executors."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

Row = Dict[str, Any]


@dataclass
class QueryResult:
    """Rows returned by a successful statement plus the service-reported total."""

    records: List[Row] = field(default_factory=list)
    total_size: Optional[int] = None
    is_truncated: bool = False

    def __post_init__(self) -> None:
        """Default the total to the number of rows actually returned."""
        if self.total_size is None:
            self.total_size = len(self.records)
