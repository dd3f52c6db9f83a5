"""
Base repository class with common CRUD operations.
"""
from typing import Generic, Optional, Type, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.infra.db.base import Base

# Type variable for model classes
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository providing common CRUD operations.

    Inherit from this class and specify the model type:
        class ConfigurationRepository(BaseRepository[Configuration]):
            def __init__(self, session: AsyncSession, tenant_id: Optional[str] = None):
                super().__init__(Configuration, session, tenant_id)

    When tenant_id is provided, queries on models with a tenant_id column are
    scoped to that tenant. Repositories flush but never commit: the request's
    session owns the transaction.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession, tenant_id: Optional[str] = None):
        self.model = model
        self.session = session
        self.tenant_id = tenant_id

    def _apply_tenant_filter(self, stmt):
        """Apply tenant_id filter if set and model has tenant_id column."""
        if self.tenant_id is not None and hasattr(self.model, "tenant_id"):
            return stmt.where(self.model.tenant_id == self.tenant_id)
        return stmt

    async def create(self, **kwargs) -> ModelType:
        """Create a new record."""
        if self.tenant_id is not None and hasattr(self.model, "tenant_id") and "tenant_id" not in kwargs:
            kwargs["tenant_id"] = self.tenant_id

        obj = self.model(**kwargs)
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """Get a record by ID (scoped to tenant if tenant_id is set)."""
        stmt = select(self.model).where(self.model.id == id)
        stmt = self._apply_tenant_filter(stmt)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def update(self, obj: ModelType, **kwargs) -> ModelType:
        """Apply field changes to a loaded record."""
        for key, value in kwargs.items():
            setattr(obj, key, value)
        await self.session.flush()
        return obj

    async def delete(self, id: str) -> bool:
        """Delete a record by ID (scoped to tenant if tenant_id is set). Returns True if deleted."""
        stmt = delete(self.model).where(self.model.id == id)
        if self.tenant_id is not None and hasattr(self.model, "tenant_id"):
            stmt = stmt.where(self.model.tenant_id == self.tenant_id)
        return await self._bulk_delete(stmt) > 0

    async def _bulk_delete(self, stmt) -> int:
        """Run a DELETE without syncing the identity map. Returns rows removed."""
        return await self._bulk_write(stmt)

    async def _bulk_write(self, stmt) -> int:
        """Run a bulk UPDATE or DELETE without syncing the identity map. Returns rows matched."""
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount
