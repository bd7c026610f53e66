"""Player model."""
from sqlalchemy import Column, String, Boolean, DateTime
import uuid
from datetime import datetime, UTC
from quizduel.database import Base
from quizduel.models.base import get_uuid_column


class Player(Base):
    """A student who can take part in quiz challenges."""
    __tablename__ = "players"

    player_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    username = Column(String(80), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    payout_address = Column(String(64), nullable=True)  # Wallet for token/NFT payouts; escrow when missing
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    def __repr__(self):
        return f"<Player(player_id={self.player_id}, username={self.username})>"
