"""
Base repository class for the data access layer.

Repositories keep query logic in one place and out of the sync engine and
the resolver. They never commit: the caller owns the transaction, which is
what lets the sync engine apply a whole batch or nothing.

Example:
    class PlayerRepository(BaseRepository[Player]):
        def find_by_provider_id(self, provider_id: str) -> Optional[Player]:
            return self.where_first(Player.provider_id == provider_id)
"""
from abc import ABC
from datetime import datetime
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Common data access helpers for one SQLAlchemy model.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # Lookups
    # ========================================================================

    def find_by_id(self, id: Any) -> Optional[T]:
        """Find a single record by primary key."""
        return self.db.get(self.model_type, id)

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def where(self, *criterion) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        return self.db.query(self.model_type).filter(*criterion).all()

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.db.query(self.model_type).filter(*criterion).first()

    def exists_where(self, *criterion) -> bool:
        """Check if any record matching the criterion exists."""
        return self.db.query(
            self.db.query(self.model_type).filter(*criterion).exists()
        ).scalar()

    def count(self, *criterion) -> int:
        """Count records matching optional criterion."""
        query = self.db.query(func.count(self.model_type.id))
        if criterion:
            query = query.filter(*criterion)
        return query.scalar() or 0

    # ========================================================================
    # Writes (uncommitted)
    # ========================================================================

    def create(self, **kwargs) -> T:
        """Add a new record to the session (not yet committed)."""
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        return instance

    def apply(self, instance: T, **values) -> bool:
        """
        Copy non-None values onto an existing record.

        Returns:
            True if any column changed; updated_at is bumped only then.
        """
        changed = False
        for key, value in values.items():
            if value is None or not hasattr(instance, key):
                continue
            if getattr(instance, key) != value:
                setattr(instance, key, value)
                changed = True
        if changed and hasattr(instance, "updated_at"):
            instance.updated_at = datetime.utcnow()
        return changed

    def flush(self) -> None:
        """Flush pending changes without committing."""
        self.db.flush()
