"""
PromptInstance and Completion SQLAlchemy models.

A PromptInstance is one row of variable bindings fed through a Configuration.
Each instance collects several Completions, indexed in generation order.
"""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from prompt_rater.infra.db.base import Base, generate_id

if TYPE_CHECKING:
    from prompt_rater.infra.db.models.configuration import Configuration
    from prompt_rater.infra.db.models.generation_run import GenerationRun
    from prompt_rater.infra.db.models.rating import FinalWinner, RatingMatch


class PromptInstanceStatus(str, Enum):
    """Status of a prompt instance."""
    PENDING = "PENDING"
    GENERATING = "GENERATING"
    READY_FOR_RATING = "READY_FOR_RATING"
    RATED = "RATED"
    SKIPPED = "SKIPPED"


class PromptInstance(Base):
    __tablename__ = "prompt_instances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    configuration_id: Mapped[str] = mapped_column(ForeignKey("configurations.id"), nullable=False, index=True)

    data: Mapped[dict] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(20), default=PromptInstanceStatus.PENDING.value, index=True)

    configuration: Mapped["Configuration"] = relationship("Configuration", back_populates="instances")
    completions: Mapped[list["Completion"]] = relationship(
        "Completion",
        back_populates="prompt_instance",
        order_by="Completion.index",
    )
    rating_matches: Mapped[list["RatingMatch"]] = relationship(
        "RatingMatch",
        back_populates="prompt_instance",
        order_by="[RatingMatch.round, RatingMatch.created_at]",
    )
    final_winner: Mapped[Optional["FinalWinner"]] = relationship(
        "FinalWinner", back_populates="prompt_instance", uselist=False
    )

    def __repr__(self) -> str:
        return f"<PromptInstance(id={self.id}, status={self.status})>"


class Completion(Base):
    """One generated candidate output for an instance."""

    __tablename__ = "completions"
    __table_args__ = (
        UniqueConstraint("prompt_instance_id", "index", name="uq_completions_instance_index"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    prompt_instance_id: Mapped[str] = mapped_column(ForeignKey("prompt_instances.id"), nullable=False, index=True)
    generation_run_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("generation_runs.id"), nullable=True, index=True
    )

    index: Mapped[int] = mapped_column(Integer, nullable=False)  # 0-based generation order
    output: Mapped[str] = mapped_column(Text, nullable=False)
    provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    model_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tokens_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    prompt_instance: Mapped["PromptInstance"] = relationship("PromptInstance", back_populates="completions")
    generation_run: Mapped[Optional["GenerationRun"]] = relationship("GenerationRun", back_populates="completions")

    def __repr__(self) -> str:
        return f"<Completion(id={self.id}, index={self.index})>"
