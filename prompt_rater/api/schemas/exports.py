"""
API Schemas for configuration exports.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from .common import CamelModel


class ExportVariable(CamelModel):
    key: str
    label: Optional[str] = None


class ExportConfiguration(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    prompt_template: str
    model_provider: str
    model_name: str
    generations_per_instance: int
    status: str
    tags: list[str] = Field(default_factory=list)
    variables: list[ExportVariable] = Field(default_factory=list)
    created_at: datetime


class ExportCompletion(CamelModel):
    id: str
    index: int
    output: str
    provider: Optional[str] = None
    model_name: Optional[str] = None
    tokens_used: Optional[int] = None


class ExportOption(CamelModel):
    id: str
    index: int
    output_preview: str


class ExportWinner(CamelModel):
    id: str
    index: int


class ExportRating(CamelModel):
    user_id: str
    outcome: str
    reasons: list[str] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: datetime


class ExportMatch(CamelModel):
    id: str
    round: int
    option_a: ExportOption
    option_b: ExportOption
    outcome: Optional[str] = None
    winner: Optional[ExportWinner] = None
    is_complete: bool
    responses: list[ExportRating] = Field(default_factory=list)


class ExportFinalWinner(CamelModel):
    completion_id: str
    completion_index: int
    output_preview: str
    determined_at: datetime


class ExportInstance(CamelModel):
    id: str
    data: dict[str, Any]
    status: str
    completions: list[ExportCompletion]
    rating_matches: list[ExportMatch]
    final_winner: Optional[ExportFinalWinner] = None


class ExportDocument(CamelModel):
    configuration: ExportConfiguration
    instances: list[ExportInstance]
    exported_at: datetime
    total_instances: int
    total_completions: int
    total_matches: int
    completed_matches: int
