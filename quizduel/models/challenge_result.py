"""Challenge result model.

A result is written exactly once per challenge. After creation only the two
idempotency flags (and their timestamps) change.
"""
from sqlalchemy import Column, ForeignKey, String, Integer, Boolean, DateTime, JSON
import uuid
from datetime import datetime, UTC
from quizduel.database import Base
from quizduel.models.base import get_uuid_column


class ChallengeResult(Base):
    """Audited outcome of an evaluated challenge."""

    __tablename__ = "challenge_results"

    result_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    # The unique constraint is the serialization point for evaluation
    challenge_id = get_uuid_column(
        ForeignKey("challenges.challenge_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    player_one_id = get_uuid_column(nullable=False, index=True)
    player_two_id = get_uuid_column(nullable=False, index=True)

    total_questions = Column(Integer, nullable=False)
    player_one_score = Column(Integer, nullable=False)
    player_two_score = Column(Integer, nullable=False)
    player_one_percentage = Column(Integer, nullable=False)
    player_two_percentage = Column(Integer, nullable=False)
    player_one_time_ms = Column(Integer, nullable=False)
    player_two_time_ms = Column(Integer, nullable=False)

    winner_id = get_uuid_column(nullable=True)  # NULL for a draw
    is_draw = Column(Boolean, default=False, nullable=False)
    winner_reason = Column(String(100), nullable=False)
    detailed_results = Column(JSON, nullable=False)  # {"player_one": [...], "player_two": [...]}

    # Audit
    evaluated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    evaluation_method = Column(String(30), default="automatic", nullable=False)
    integrity_hash = Column(String(64), nullable=False)

    # Idempotency flags for downstream side effects
    rewards_distributed = Column(Boolean, default=False, nullable=False)
    rewards_distributed_at = Column(DateTime(timezone=True), nullable=True)
    notifications_sent = Column(Boolean, default=False, nullable=False)
    notifications_sent_at = Column(DateTime(timezone=True), nullable=True)

    def score_for(self, player_id) -> int:
        return self.player_one_score if player_id == self.player_one_id else self.player_two_score

    def percentage_for(self, player_id) -> int:
        return self.player_one_percentage if player_id == self.player_one_id else self.player_two_percentage

    def time_for(self, player_id) -> int:
        return self.player_one_time_ms if player_id == self.player_one_id else self.player_two_time_ms

    def opponent_of(self, player_id):
        return self.player_two_id if player_id == self.player_one_id else self.player_one_id

    def __repr__(self):
        return (f"<ChallengeResult(challenge_id={self.challenge_id}, "
                f"winner_id={self.winner_id}, is_draw={self.is_draw})>")
