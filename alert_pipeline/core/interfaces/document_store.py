"""
Document store interface.

Provides the abstract data access layer the pipeline is written against, plus
the filter and sort builders used to express queries in MongoDB syntax.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any, Tuple


class _ServerTimestamp:
    """Sentinel replaced with the store's clock at write time"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class QueryFilter:
    """Query filter builder for flexible filtering"""

    def __init__(self):
        self.filters: Dict[str, Any] = {}

    def _merge(self, field: str, op: str, value: Any) -> 'QueryFilter':
        existing = self.filters.get(field)
        if isinstance(existing, dict):
            existing[op] = value
        else:
            self.filters[field] = {op: value}
        return self

    def eq(self, field: str, value: Any) -> 'QueryFilter':
        """Equal filter"""
        self.filters[field] = value
        return self

    def ne(self, field: str, value: Any) -> 'QueryFilter':
        """Not equal filter"""
        return self._merge(field, "$ne", value)

    def gt(self, field: str, value: Any) -> 'QueryFilter':
        """Greater than filter"""
        return self._merge(field, "$gt", value)

    def gte(self, field: str, value: Any) -> 'QueryFilter':
        """Greater than or equal filter"""
        return self._merge(field, "$gte", value)

    def lt(self, field: str, value: Any) -> 'QueryFilter':
        """Less than filter"""
        return self._merge(field, "$lt", value)

    def lte(self, field: str, value: Any) -> 'QueryFilter':
        """Less than or equal filter"""
        return self._merge(field, "$lte", value)

    def in_list(self, field: str, values: List[Any]) -> 'QueryFilter':
        """In list filter"""
        return self._merge(field, "$in", list(values))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to MongoDB query dict"""
        return self.filters


class SortOption:
    """Sort option builder"""

    def __init__(self):
        self.sorts: List[Tuple[str, int]] = []

    def asc(self, field: str) -> 'SortOption':
        """Ascending sort"""
        self.sorts.append((field, 1))
        return self

    def desc(self, field: str) -> 'SortOption':
        """Descending sort"""
        self.sorts.append((field, -1))
        return self

    def to_list(self) -> List[Tuple[str, int]]:
        """Convert to MongoDB sort list"""
        return self.sorts


class DocumentStore(ABC):
    """
    Generic document store used by every repository in the pipeline.

    Documents are plain dicts keyed by ``_id``. Implementations must translate
    their native errors into ``PersistenceError`` and must assign
    ``SERVER_TIMESTAMP`` fields from their own clock.
    """

    @abstractmethod
    async def query(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        order_by: Optional[List[Tuple[str, int]]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Return documents matching ``filter`` in ``order_by`` order"""

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Return one document or None"""

    @abstractmethod
    async def set(
        self,
        collection: str,
        document_id: str,
        fields: Dict[str, Any],
        merge: bool = False
    ) -> None:
        """Create or replace a document; ``merge`` keeps fields not named in ``fields``"""

    @abstractmethod
    async def update(self, collection: str, document_id: str, fields: Dict[str, Any]) -> None:
        """Update named fields of an existing document; raises NotFoundError when absent"""

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> bool:
        """Delete a document, returning whether it existed"""

    @abstractmethod
    async def atomic_increment(self, collection: str, document_id: str, field: str, delta: int = 1) -> None:
        """Increment a numeric field server-side; raises NotFoundError when absent"""

    @abstractmethod
    async def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching ``filter``"""
