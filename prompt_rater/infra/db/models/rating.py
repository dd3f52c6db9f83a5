"""
Rating SQLAlchemy models: tournament matches, rater responses, final winners.
"""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from prompt_rater.infra.db.base import Base, generate_id

if TYPE_CHECKING:
    from prompt_rater.infra.db.models.configuration import Configuration
    from prompt_rater.infra.db.models.prompt_instance import Completion, PromptInstance


class RatingOutcome(str, Enum):
    """Verdict a rater gives on a match."""
    A_BETTER = "A_BETTER"
    B_BETTER = "B_BETTER"
    BOTH_GOOD = "BOTH_GOOD"
    NEITHER_GOOD = "NEITHER_GOOD"


class RatingMatch(Base):
    """
    A pairwise comparison between two completions of the same instance.

    The (instance, round, option A) triple is unique, so a seeded bracket
    cannot be inserted twice even by concurrent builders. A rater holds a
    match through ``locked_by``/``locked_at`` while judging it.
    """

    __tablename__ = "rating_matches"
    __table_args__ = (
        UniqueConstraint(
            "prompt_instance_id", "round", "option_a_completion_id",
            name="uq_rating_matches_instance_round_option_a",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    prompt_instance_id: Mapped[str] = mapped_column(ForeignKey("prompt_instances.id"), nullable=False, index=True)
    configuration_id: Mapped[str] = mapped_column(ForeignKey("configurations.id"), nullable=False, index=True)

    round: Mapped[int] = mapped_column(Integer, default=1)
    option_a_completion_id: Mapped[str] = mapped_column(ForeignKey("completions.id"), nullable=False)
    option_b_completion_id: Mapped[str] = mapped_column(ForeignKey("completions.id"), nullable=False)
    winner_completion_id: Mapped[Optional[str]] = mapped_column(ForeignKey("completions.id"), nullable=True)
    outcome: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_complete: Mapped[bool] = mapped_column(Boolean, default=False)

    # Rater lock
    locked_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    configuration: Mapped["Configuration"] = relationship("Configuration")
    prompt_instance: Mapped["PromptInstance"] = relationship("PromptInstance", back_populates="rating_matches")
    option_a: Mapped["Completion"] = relationship("Completion", foreign_keys=[option_a_completion_id])
    option_b: Mapped["Completion"] = relationship("Completion", foreign_keys=[option_b_completion_id])
    winner: Mapped[Optional["Completion"]] = relationship("Completion", foreign_keys=[winner_completion_id])
    responses: Mapped[list["RatingResponse"]] = relationship("RatingResponse", back_populates="match")

    def __repr__(self) -> str:
        return (
            f"<RatingMatch(id={self.id}, round={self.round}, "
            f"{self.option_a_completion_id} vs {self.option_b_completion_id})>"
        )


class RatingResponse(Base):
    __tablename__ = "rating_responses"
    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_rating_responses_match_user"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    match_id: Mapped[str] = mapped_column(ForeignKey("rating_matches.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    reasons: Mapped[list] = mapped_column(JSON, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    match: Mapped["RatingMatch"] = relationship("RatingMatch", back_populates="responses")


class FinalWinner(Base):
    """Best completion of an instance once its tournament concludes."""

    __tablename__ = "final_winners"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    prompt_instance_id: Mapped[str] = mapped_column(
        ForeignKey("prompt_instances.id"), nullable=False, unique=True
    )
    winning_completion_id: Mapped[str] = mapped_column(ForeignKey("completions.id"), nullable=False)
    determined_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    prompt_instance: Mapped["PromptInstance"] = relationship("PromptInstance", back_populates="final_winner")
    winning_completion: Mapped["Completion"] = relationship("Completion")
