"""Reward allocation audit model."""
from sqlalchemy import Column, String, Integer, DateTime, Text, UniqueConstraint
import uuid
from datetime import datetime, UTC
from quizduel.database import Base
from quizduel.models.base import get_uuid_column


class RewardAllocation(Base):
    """Record of a single token or NFT allocation attempt."""
    __tablename__ = "reward_allocations"

    allocation_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    result_id = get_uuid_column(nullable=False, index=True)
    challenge_id = get_uuid_column(nullable=False, index=True)
    player_id = get_uuid_column(nullable=False, index=True)
    reward_type = Column(String(10), nullable=False)  # token, nft
    amount = Column(Integer, nullable=False)
    reason = Column(String(100), nullable=False)
    payout_address = Column(String(64), nullable=True)
    attempt = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False)  # pending, completed, escrowed, failed
    transaction_ref = Column(String(128), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        # One row per attempt at a leg; inserting the row claims the attempt
        UniqueConstraint("result_id", "player_id", "reward_type", "attempt", name="uq_reward_allocation_attempt"),
    )

    def __repr__(self):
        return (f"<RewardAllocation(player_id={self.player_id}, type={self.reward_type}, "
                f"amount={self.amount}, status={self.status})>")
