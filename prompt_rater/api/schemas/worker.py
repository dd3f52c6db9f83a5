"""
API Schemas for the worker-facing routes and the tenant worker endpoint.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from .common import CamelModel
from .runs import RunResponse


class ClaimedInstanceOut(CamelModel):
    id: str
    data: dict[str, Any]
    prompt: str
    completions_needed: int


class ClaimResponse(CamelModel):
    run: Optional[RunResponse] = None
    configuration_id: Optional[str] = None
    model_provider: Optional[str] = None
    model_name: Optional[str] = None
    instances: list[ClaimedInstanceOut] = Field(default_factory=list)
    message: str


class CompletionCreate(CamelModel):
    output: str
    provider: Optional[str] = None
    model_name: Optional[str] = None
    tokens_used: Optional[int] = Field(None, ge=0)


class CompletionRecorded(CamelModel):
    completion_id: str
    index: int
    instance_status: str
    ready_for_rating: bool
    matches_created: int
    run_status: str
    processed_count: int


class ReleaseRequest(CamelModel):
    error: Optional[str] = None


class ReleaseResponse(CamelModel):
    instance_id: str
    status: str


class WorkerEndpointUpdate(CamelModel):
    worker_url: str


class WorkerEndpointResponse(CamelModel):
    tenant_id: str
    worker_url: str
    is_default: bool = False
    updated_at: Optional[datetime] = None
