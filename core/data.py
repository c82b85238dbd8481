"""
Data Layer Base Classes.

Every care entity is stored through a Repository. The same interface is
implemented twice (Cosmos DB and in-memory), and services receive one or
the other at construction time.

Key principles:
- Repositories load and store entities, nothing more
- Callers get dataclasses back, never raw documents
- A stale version token on save is a StateConflictError
- Nothing is ever deleted: care records are append-only or state-transitioned
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .errors import NotFoundError

# Type variable for entity types
T = TypeVar("T")


@dataclass
class QueryOptions:
    """Options for repository queries."""
    limit: int = 100
    offset: int = 0
    order_by: Optional[str] = None
    order_desc: bool = False
    filters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryResult(Generic[T]):
    """Result of a repository query with pagination info."""
    data: List[T]
    total_count: int
    has_more: bool
    next_offset: Optional[int] = None


def paginate(items: List[T], options: QueryOptions) -> QueryResult[T]:
    """Slice an already filtered and ordered list according to the options."""
    total = len(items)
    end = options.offset + options.limit
    page = items[options.offset:end]
    has_more = end < total
    return QueryResult(
        data=page,
        total_count=total,
        has_more=has_more,
        next_offset=end if has_more else None,
    )


class Repository(ABC, Generic[T]):
    """
    Storage contract for one entity type T.

    `entity_name` is used in NotFoundError and conflict messages.
    """

    entity_name: str = "Entity"

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Load one entity, or None when the id is unknown."""
        pass

    @abstractmethod
    def find(self, options: Optional[QueryOptions] = None) -> QueryResult[T]:
        """
        Query entities.

        Args:
            options: Equality filters on document fields, ordering and paging

        Returns:
            One page of matching entities
        """
        pass

    @abstractmethod
    def add(self, entity: T) -> T:
        """
        Create a new entity.

        Raises:
            StateConflictError: If an entity with the same id already exists
        """
        pass

    @abstractmethod
    def save(self, entity: T) -> T:
        """
        Replace an existing entity.

        Implementations holding a version token must reject stale writes
        with StateConflictError.

        Returns:
            The saved entity (with a refreshed version token)
        """
        pass

    def require(self, id: str) -> T:
        """Get an entity or raise NotFoundError."""
        entity = self.get_by_id(id)
        if entity is None:
            raise NotFoundError(self.entity_name, id)
        return entity

    def find_all(self, **filters: Any) -> List[T]:
        """Convenience wrapper returning every entity matching the filters."""
        options = QueryOptions(limit=10_000, filters=filters)
        return self.find(options).data
