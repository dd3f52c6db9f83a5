"""
API Schemas for Configurations and Prompt Instances.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from .common import CamelModel
from .runs import RunResponse


# ============================================================================
# Configurations
# ============================================================================

class VariableDefinition(CamelModel):
    """A template variable each uploaded row must (or may) provide."""
    key: str = Field(..., min_length=1)
    label: Optional[str] = None
    description: Optional[str] = None
    required: bool = True


class ConfigurationCreate(CamelModel):
    name: str = Field(..., description="Display name")
    description: Optional[str] = None
    prompt_template: str = Field(..., description="Template with {{key}} placeholders")
    model_provider: Optional[str] = None
    model_name: Optional[str] = None
    generations_per_instance: Optional[int] = Field(None, description="Completions per instance, at least 2")
    rubric: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    variables: list[VariableDefinition] = Field(default_factory=list)


class ConfigurationUpdate(CamelModel):
    """Partial update. Status is not editable here."""
    name: Optional[str] = None
    description: Optional[str] = None
    prompt_template: Optional[str] = None
    model_provider: Optional[str] = None
    model_name: Optional[str] = None
    generations_per_instance: Optional[int] = None
    rubric: Optional[str] = None
    tags: Optional[list[str]] = None
    variables: Optional[list[VariableDefinition]] = None


class ConfigurationResponse(CamelModel):
    id: str
    tenant_id: str
    name: str
    description: Optional[str] = None
    prompt_template: str
    model_provider: str
    model_name: str
    generations_per_instance: int
    rubric: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    variables: list[dict[str, Any]] = Field(default_factory=list)
    status: str
    created_by_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ConfigurationSummary(ConfigurationResponse):
    instance_count: int = 0
    run_count: int = 0


class ConfigurationList(CamelModel):
    items: list[ConfigurationSummary]
    total: int


class ConfigurationDetail(ConfigurationResponse):
    instance_stats: dict[str, int] = Field(default_factory=dict)
    total_instances: int = 0
    recent_runs: list[RunResponse] = Field(default_factory=list)


# ============================================================================
# Instances and completions
# ============================================================================

class InstanceUpload(CamelModel):
    """Rows of variable values, one instance per row."""
    rows: list[dict[str, Any]] = Field(..., min_length=1)


class InstanceResponse(CamelModel):
    id: str
    configuration_id: str
    data: dict[str, Any]
    status: str
    created_at: datetime


class InstanceSummary(InstanceResponse):
    completion_count: int = 0
    match_count: int = 0


class InstanceUploadResponse(CamelModel):
    created: int
    errors: list[str]
    instances: list[InstanceResponse]


class CompletionResponse(CamelModel):
    id: str
    prompt_instance_id: str
    generation_run_id: Optional[str] = None
    index: int
    output: str
    provider: Optional[str] = None
    model_name: Optional[str] = None
    tokens_used: Optional[int] = None
    created_at: datetime


class InstanceCompletions(CamelModel):
    instance: InstanceResponse
    completions: list[CompletionResponse]
    configuration_name: str
    prompt_template: str


class InstanceConfigurationRef(CamelModel):
    id: str
    name: str


class InstanceDetailResponse(InstanceResponse):
    configuration: InstanceConfigurationRef
    completions: list[CompletionResponse]
    completion_count: int = 0
    match_count: int = 0


class InstanceDeleted(CamelModel):
    success: bool = True
    message: str = "Instance deleted successfully"
    configuration_id: str
