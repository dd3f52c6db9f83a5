"""
Worker endpoint store and manual worker trigger.
"""
import logging
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.config import Settings
from prompt_rater.errors import ValidationError, WorkerRelayError
from prompt_rater.infra.db.models import TenantEndpoint
from prompt_rater.infra.db.repositories import TenantEndpointRepository

logger = logging.getLogger(__name__)


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        raise ValidationError("Worker URL must start with http:// or https://")
    return url


class WorkerEndpointStore:
    """Per-tenant worker URL, falling back to the configured default."""

    def __init__(self, session: AsyncSession, settings: Settings):
        self.repo = TenantEndpointRepository(session)
        self.settings = settings

    async def get(self, tenant_id: str) -> Optional[TenantEndpoint]:
        return await self.repo.get(tenant_id)

    async def resolve(self, tenant_id: str) -> str:
        endpoint = await self.repo.get(tenant_id)
        return endpoint.worker_url if endpoint else self.settings.worker_url

    async def set(self, tenant_id: str, worker_url: str) -> TenantEndpoint:
        endpoint = await self.repo.upsert(tenant_id, _validate_url(worker_url))
        logger.info(f"Worker endpoint for tenant {tenant_id} set to {endpoint.worker_url}")
        return endpoint

    async def clear(self, tenant_id: str) -> bool:
        removed = await self.repo.remove(tenant_id)
        if removed:
            logger.info(f"Worker endpoint for tenant {tenant_id} cleared")
        return removed


class WorkerRelay:
    """POSTs a processing trigger to the external worker.

    ``transport`` lets tests substitute an ``httpx.MockTransport``.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.worker_secret:
            headers["Authorization"] = f"Bearer {self.settings.worker_secret}"
        return headers

    async def trigger(self, worker_url: str, tenant_id: str) -> Any:
        """Ask the worker to process the queue and return its JSON reply.

        Raises:
            WorkerRelayError: unreachable worker, error status or non-JSON body
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.worker_timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.post(worker_url, headers=self._headers(), json={"tenantId": tenant_id})
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Worker at {worker_url} returned {e.response.status_code} for tenant {tenant_id}")
            raise WorkerRelayError() from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach worker at {worker_url} for tenant {tenant_id}: {e}")
            raise WorkerRelayError() from e
        except ValueError as e:
            logger.error(f"Worker at {worker_url} returned a non-JSON body: {e}")
            raise WorkerRelayError() from e
