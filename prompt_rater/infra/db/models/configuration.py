"""
Configuration SQLAlchemy model.

A Configuration is a tenant-owned prompt template plus the generation
parameters used to produce candidate completions for each input row.
"""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from prompt_rater.infra.db.base import Base, generate_id

if TYPE_CHECKING:
    from prompt_rater.infra.db.models.generation_run import GenerationRun
    from prompt_rater.infra.db.models.prompt_instance import PromptInstance


class ConfigurationStatus(str, Enum):
    """Lifecycle state of a configuration."""
    DRAFT = "DRAFT"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"


class Configuration(Base):
    __tablename__ = "configurations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None, onupdate=datetime.utcnow)
    created_by_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    prompt_template: Mapped[str] = mapped_column(Text, nullable=False)
    model_provider: Mapped[str] = mapped_column(String(50), default="OPENAI")
    model_name: Mapped[str] = mapped_column(String(255), default="gpt-4")
    generations_per_instance: Mapped[int] = mapped_column(Integer, default=2)
    rubric: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    # [{"key": ..., "label": ..., "description": ..., "required": bool}]
    variables: Mapped[list] = mapped_column(JSON, default=list)

    status: Mapped[str] = mapped_column(String(20), default=ConfigurationStatus.DRAFT.value)

    instances: Mapped[list["PromptInstance"]] = relationship(
        "PromptInstance", back_populates="configuration", cascade="all, delete-orphan"
    )
    generation_runs: Mapped[list["GenerationRun"]] = relationship(
        "GenerationRun", back_populates="configuration", cascade="all, delete-orphan"
    )

    @property
    def required_variable_keys(self) -> list[str]:
        return [v["key"] for v in (self.variables or []) if v.get("required", True)]

    @property
    def variable_keys(self) -> list[str]:
        return [v["key"] for v in (self.variables or [])]

    def __repr__(self) -> str:
        return f"<Configuration(id={self.id}, name={self.name}, status={self.status})>"
