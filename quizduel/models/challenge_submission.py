"""Challenge submission model."""
from sqlalchemy import Column, ForeignKey, String, Integer, DateTime, JSON, CheckConstraint, Index, UniqueConstraint
import uuid
from datetime import datetime, UTC
from quizduel.database import Base
from quizduel.models.base import get_uuid_column


class ChallengeSubmission(Base):
    """One player's answers and elapsed time for a challenge."""

    __tablename__ = "challenge_submissions"

    submission_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    challenge_id = get_uuid_column(
        ForeignKey("challenges.challenge_id", ondelete="CASCADE"),
        nullable=False,
    )
    player_id = get_uuid_column(
        ForeignKey("players.player_id", ondelete="CASCADE"),
        nullable=False,
    )
    answers = Column(JSON, nullable=False)  # [{question_id, selected_option}, ...]
    total_time_ms = Column(Integer, nullable=False)
    submitted_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    # Request metadata
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(255), nullable=True)

    __table_args__ = (
        # One submission per player per challenge, enforced at write time
        UniqueConstraint("challenge_id", "player_id", name="uq_submission_challenge_player"),
        CheckConstraint("total_time_ms >= 0", name="non_negative_total_time"),
        Index("ix_submissions_challenge_submitted", "challenge_id", "submitted_at"),
        Index("ix_submissions_player_submitted", "player_id", "submitted_at"),
    )

    def __repr__(self):
        return (f"<ChallengeSubmission(challenge_id={self.challenge_id}, "
                f"player_id={self.player_id})>")
