"""Head-to-head quiz challenge model.

Two players answer the same fixed question set against the clock. The
questions are copied onto the challenge when it is created so that later
edits to the shared question bank never change how a challenge is scored.
"""
from sqlalchemy import Column, ForeignKey, String, Integer, DateTime, Text, JSON, CheckConstraint, Index
import uuid
from datetime import datetime, UTC
from quizduel.database import Base
from quizduel.models.base import get_uuid_column, ChallengeStatus


class Challenge(Base):
    """Quiz challenge between two players."""

    __tablename__ = "challenges"

    challenge_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    player_one_id = get_uuid_column(
        ForeignKey("players.player_id", ondelete="CASCADE"),
        nullable=False,
    )
    player_two_id = get_uuid_column(
        ForeignKey("players.player_id", ondelete="CASCADE"),
        nullable=False,
    )
    quiz_id = Column(String(64), nullable=True)
    course_id = Column(String(64), nullable=True, index=True)
    module_id = Column(String(64), nullable=True)

    # [{question_id, text, options: [{option_id, text}], correct_option_id}, ...]
    questions = Column(JSON, nullable=False)

    status = Column(String(20), default=ChallengeStatus.PENDING.value, nullable=False)
    time_limit_seconds = Column(Integer, default=300, nullable=False)

    # Timing
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    # Populated when status == 'error'
    error_message = Column(Text, nullable=True)
    error_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'expired', 'error')",
            name="valid_challenge_status",
        ),
        CheckConstraint("player_one_id <> player_two_id", name="distinct_challenge_players"),
        Index("ix_challenges_player_one", "player_one_id"),
        Index("ix_challenges_player_two", "player_two_id"),
        Index("ix_challenges_status_expires", "status", "expires_at"),
    )

    def is_participant(self, player_id) -> bool:
        return player_id in (self.player_one_id, self.player_two_id)

    def question_ids(self) -> list[str]:
        return [str(question["question_id"]) for question in self.questions or []]

    def __repr__(self):
        return (f"<Challenge(challenge_id={self.challenge_id}, "
                f"status={self.status})>")
