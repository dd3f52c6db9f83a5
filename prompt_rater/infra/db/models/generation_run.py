"""
GenerationRun SQLAlchemy model.

A GenerationRun is one worker pass over a configuration's pending instances.
"""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from prompt_rater.infra.db.base import Base, generate_id

if TYPE_CHECKING:
    from prompt_rater.infra.db.models.configuration import Configuration
    from prompt_rater.infra.db.models.prompt_instance import Completion


class GenerationRunStatus(str, Enum):
    """Status of a generation run."""
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ACTIVE_RUN_STATUSES = (GenerationRunStatus.QUEUED.value, GenerationRunStatus.RUNNING.value)

_active_clause = "status IN ('QUEUED', 'RUNNING')"


class GenerationRun(Base):
    __tablename__ = "generation_runs"
    __table_args__ = (
        # At most one non-terminal run per configuration
        Index(
            "uq_generation_runs_active_configuration",
            "configuration_id",
            unique=True,
            sqlite_where=text(_active_clause),
            postgresql_where=text(_active_clause),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    configuration_id: Mapped[str] = mapped_column(ForeignKey("configurations.id"), nullable=False, index=True)

    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model_name: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(String(20), default=GenerationRunStatus.QUEUED.value)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timing
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Progress tracking
    total_instances: Mapped[int] = mapped_column(Integer, default=0)
    processed_count: Mapped[int] = mapped_column(Integer, default=0)

    configuration: Mapped["Configuration"] = relationship("Configuration", back_populates="generation_runs")
    completions: Mapped[list["Completion"]] = relationship("Completion", back_populates="generation_run")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RUN_STATUSES

    @property
    def progress(self) -> int:
        """Calculate progress percentage."""
        return calculate_progress(self.processed_count, self.total_instances)

    def __repr__(self) -> str:
        return f"<GenerationRun(id={self.id}, status={self.status}, {self.processed_count}/{self.total_instances})>"


def calculate_progress(processed: Optional[int], total: Optional[int]) -> int:
    """Whole-number percentage in [0, 100]; 0 when there is nothing to process."""
    if not total or total <= 0:
        return 0
    percent = round(((processed or 0) / total) * 100)
    return max(0, min(100, percent))
