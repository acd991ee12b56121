"""
Async SQL store contract shared by the remote and local backends.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

Statement = Tuple[str, Sequence[Any]]


@dataclass
class QueryResult:
    """Outcome of one statement."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    changes: int = 0
    last_row_id: Optional[int] = None


class Store(ABC):
    """
    Minimal SQL access used by the pipeline.

    Statements use ``?`` placeholders. Implementations raise StoreError
    subclasses; transient failures are retried inside the store.
    """

    @abstractmethod
    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Execute one statement."""

    @abstractmethod
    async def batch(self, statements: Sequence[Statement]) -> List[QueryResult]:
        """Execute several statements in order, one result per statement."""

    async def first(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        """First row or None."""
        result = await self.query(sql, params)
        return result.rows[0] if result.rows else None

    async def all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """All rows."""
        result = await self.query(sql, params)
        return result.rows

    async def run(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Execute a write; the result carries ``changes`` and ``last_row_id``."""
        return await self.query(sql, params)

    async def close(self):
        """Release connections."""
