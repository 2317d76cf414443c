"""Base repository with shared get-by-ID patterns.

Subclasses specify model_class and not_found_error; the base provides the
lookups. Override _base_query() to apply default filters (NodeRepository
hides soft-deleted nodes this way).
"""

from typing import TypeVar, Generic, Optional, Type
from sqlalchemy.orm import Session, Query

from ..database import Base
from ..exceptions import OrgScopeError

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Shared repository logic for SQLAlchemy models.

    Class variables to set in subclasses:
        model_class:     The SQLAlchemy model (e.g., HierarchyNode)
        id_column:       Name of the primary-key column (default "id")
        not_found_error: Exception class to raise from get_by_id
    """

    model_class: Type[ModelT]
    id_column: str = "id"
    not_found_error: Type[OrgScopeError]

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self) -> Query:
        return self.db.query(self.model_class)

    def get_by_id(self, entity_id: str, for_update: bool = False) -> ModelT:
        """Get entity by primary key. Raises not_found_error if missing."""
        entity = self.get_by_id_optional(entity_id, for_update=for_update)
        if not entity:
            raise self.not_found_error(entity_id)
        return entity

    def get_by_id_optional(self, entity_id: str, for_update: bool = False) -> Optional[ModelT]:
        """Get entity by primary key, or None if not found.

        ``for_update`` takes a row lock where the dialect supports it and
        reloads the row, so an instance already in the session never keeps
        values read before the lock.
        """
        col = getattr(self.model_class, self.id_column)
        query = self._base_query().filter(col == entity_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def add(self, entity: ModelT) -> ModelT:
        """Stage a new row and flush so generated defaults are populated."""
        self.db.add(entity)
        self.db.flush()
        return entity
