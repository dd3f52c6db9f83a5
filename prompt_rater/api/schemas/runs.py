"""
API Schemas for Generation Runs and the run queue.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .common import CamelModel


class RunAction(str, Enum):
    """Admin action on a single run."""
    CANCEL = "cancel"
    RETRY = "retry"


class RunResponse(CamelModel):
    id: str
    configuration_id: str
    provider: str
    model_name: str
    status: str
    total_instances: int
    processed_count: int
    progress: int = Field(..., ge=0, le=100, description="Percent of instances processed")
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


class ExecuteResponse(CamelModel):
    success: bool = True
    run_id: str
    total_instances: int
    message: str


class RunHistory(CamelModel):
    runs: list[RunResponse]


class RunConfigurationInfo(CamelModel):
    id: str
    name: str
    generations_per_instance: int


class QueuedRun(RunResponse):
    configuration: RunConfigurationInfo
    instance_stats: dict[str, int] = Field(default_factory=dict)


class QueueSummary(CamelModel):
    queued_runs: int = 0
    running_runs: int = 0
    completed_runs: int = 0
    failed_runs: int = 0
    total_pending_instances: int = 0
    total_generating_instances: int = 0


class QueueSnapshot(CamelModel):
    runs: list[QueuedRun]
    summary: QueueSummary


class RecentCompletion(CamelModel):
    id: str
    prompt_instance_id: str
    index: int
    output: str
    tokens_used: Optional[int] = None
    created_at: datetime


class RunDetailResponse(QueuedRun):
    completions: list[RecentCompletion] = Field(default_factory=list)


class RunActionRequest(CamelModel):
    action: RunAction


class RunDeleteResponse(CamelModel):
    message: str
    deleted_completions: int = 0
    deleted_matches: int = 0
    deleted_winners: int = 0
    reset_instances: int = 0
