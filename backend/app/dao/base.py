"""
Base Data Access Object (DAO) class.

WHY: The DAO pattern separates database operations from business logic,
making the codebase more testable and keeping the billing engine free of
persistence concerns. The engine treats the store as a generic record store
(create / find / update / count keyed by id); this class is that store.
"""

from datetime import datetime
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import Base

# Type variable for model class
ModelType = TypeVar("ModelType", bound=Base)


class BaseDAO(Generic[ModelType]):
    """
    Base Data Access Object providing CRUD operations for all models.

    WHY: Centralizing database operations in DAOs separates data access
    concerns from business logic. Using generics allows type-safe reuse
    across different models.

    Soft delete: for models carrying a ``deleted_at`` column every read
    filters ``deleted_at IS NULL`` and :meth:`delete` only stamps the column.

    Type Parameters:
        ModelType: The SQLAlchemy model class this DAO manages
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize DAO with model class and database session.

        Args:
            model: The SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    @property
    def soft_deletes(self) -> bool:
        return hasattr(self.model, "deleted_at")

    def _select(self) -> Select:
        """Base query with the soft-delete filter applied."""
        query = select(self.model)
        if self.soft_deletes:
            query = query.where(self.model.deleted_at.is_(None))
        return query

    def _apply_filters(self, query: Select, filters: dict) -> Select:
        for field, value in filters.items():
            if hasattr(self.model, field):
                query = query.where(getattr(self.model, field) == value)
        return query

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Field values for the new record

        Returns:
            The created model instance with database-generated fields populated

        Raises:
            IntegrityError: If unique constraints are violated
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()  # Flush to get auto-generated fields
        await self.session.refresh(instance)
        return instance

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        """
        Retrieve a single live record by primary key.

        Args:
            id: Primary key value

        Returns:
            The model instance if found and not soft-deleted, None otherwise
        """
        result = await self.session.execute(self._select().where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_all(self, skip: int = 0, limit: int = 100, **filters: Any) -> List[ModelType]:
        """
        Retrieve multiple records with optional pagination and filtering.

        Args:
            skip: Number of records to skip (for pagination)
            limit: Maximum number of records to return
            **filters: Field name to value filters (e.g., client_id=1)

        Returns:
            List of model instances matching the filters, ordered by id
        """
        query = self._apply_filters(self._select(), filters)
        query = query.order_by(self.model.id).offset(skip).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_by_field(self, field_name: str, value: Any) -> Optional[ModelType]:
        """
        Retrieve a single record by any field.

        Raises:
            AttributeError: If field_name doesn't exist on the model
        """
        if not hasattr(self.model, field_name):
            raise AttributeError(f"{self.model.__name__} has no field '{field_name}'")

        result = await self.session.execute(
            self._select().where(getattr(self.model, field_name) == value)
        )
        return result.scalar_one_or_none()

    async def update(self, id: int, **kwargs: Any) -> Optional[ModelType]:
        """
        Update an existing record.

        Args:
            id: Primary key of the record to update
            **kwargs: Fields to update

        Returns:
            Updated model instance if found, None otherwise
        """
        instance = await self.get_by_id(id)
        if instance is None:
            return None
        for field, value in kwargs.items():
            setattr(instance, field, value)
        await self.session.flush()
        return instance

    async def delete(self, id: int) -> bool:
        """
        Delete a record by primary key.

        Soft-deletable models are stamped with ``deleted_at``; others are
        removed.

        Returns:
            True if a record was deleted, False if not found
        """
        instance = await self.get_by_id(id)
        if instance is None:
            return False
        if self.soft_deletes:
            await self.session.execute(
                update(self.model)
                .where(self.model.id == id)
                .values(deleted_at=datetime.utcnow())
            )
        else:
            await self.session.delete(instance)
        await self.session.flush()
        return True

    async def count(self, **filters: Any) -> int:
        """
        Count live records matching filters.

        Args:
            **filters: Field name to value filters

        Returns:
            Number of records matching the filters
        """
        query = self._apply_filters(self._select(), filters)
        result = await self.session.execute(
            select(func.count()).select_from(query.subquery())
        )
        return result.scalar_one()

    async def exists(self, **filters: Any) -> bool:
        """
        Check if any live records matching filters exist.

        Returns:
            True if at least one matching record exists
        """
        query = self._apply_filters(self._select(), filters).limit(1)
        result = await self.session.execute(query)
        return result.scalars().first() is not None
