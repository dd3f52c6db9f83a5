"""
Tenant worker-endpoint repository.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.infra.db.models.tenant_endpoint import TenantEndpoint
from prompt_rater.infra.db.repositories.base import BaseRepository


class TenantEndpointRepository(BaseRepository[TenantEndpoint]):
    """Repository keyed by tenant_id rather than a surrogate id."""

    def __init__(self, session: AsyncSession):
        super().__init__(TenantEndpoint, session)

    async def get(self, tenant_id: str) -> Optional[TenantEndpoint]:
        result = await self.session.execute(select(TenantEndpoint).where(TenantEndpoint.tenant_id == tenant_id))
        return result.scalar_one_or_none()

    async def upsert(self, tenant_id: str, worker_url: str) -> TenantEndpoint:
        endpoint = await self.get(tenant_id)
        if endpoint is None:
            endpoint = TenantEndpoint(tenant_id=tenant_id, worker_url=worker_url)
            self.session.add(endpoint)
        else:
            endpoint.worker_url = worker_url
        await self.session.flush()
        return endpoint

    async def remove(self, tenant_id: str) -> bool:
        endpoint = await self.get(tenant_id)
        if endpoint is None:
            return False
        await self.session.delete(endpoint)
        await self.session.flush()
        return True
