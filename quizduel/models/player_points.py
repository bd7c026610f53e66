"""Player points ledger models."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, UniqueConstraint
import uuid
from datetime import datetime, UTC
from quizduel.database import Base
from quizduel.models.base import get_uuid_column


class PlayerPoints(Base):
    """Running points total and global rank for a player."""
    __tablename__ = "player_points"

    points_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    player_id = get_uuid_column(
        ForeignKey("players.player_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    total_points = Column(Integer, default=0, nullable=False)
    rank = Column(Integer, nullable=True)  # Derived view, recomputed after every evaluation
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        Index("ix_player_points_total", "total_points"),
    )

    def __repr__(self):
        return f"<PlayerPoints(player_id={self.player_id}, total_points={self.total_points}, rank={self.rank})>"


class PointsEvent(Base):
    """Points history entry."""
    __tablename__ = "points_events"

    event_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    player_id = get_uuid_column(
        ForeignKey("players.player_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    activity = Column(String(50), nullable=False)  # challenge_win, challenge_loss, challenge_draw
    points = Column(Integer, nullable=False)  # Signed delta
    description = Column(String(255), nullable=True)
    course_id = Column(String(64), nullable=True, index=True)
    reference_id = get_uuid_column(nullable=True, index=True)  # challenge_id
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        Index("ix_points_events_player_created", "player_id", "created_at"),
        UniqueConstraint("player_id", "reference_id", name="uq_points_event_player_reference"),
    )

    def __repr__(self):
        return f"<PointsEvent(player_id={self.player_id}, points={self.points}, activity={self.activity})>"
