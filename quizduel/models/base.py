"""Base utilities for SQLAlchemy models."""
from enum import Enum
import uuid
from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.sql import sqltypes


class ChallengeStatus(str, Enum):
    """Challenge status enumeration for type safety."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"
    ERROR = "error"


# Statuses from which an evaluation may still complete the challenge
EVALUABLE_STATUSES = (
    ChallengeStatus.PENDING.value,
    ChallengeStatus.IN_PROGRESS.value,
    ChallengeStatus.ERROR.value,
)


class RewardType(str, Enum):
    TOKEN = "token"
    NFT = "nft"


class AllocationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ESCROWED = "escrowed"
    FAILED = "failed"


class AdaptiveUUID(sqltypes.TypeDecorator):
    """UUID stored natively on PostgreSQL and as 36-char text elsewhere."""

    impl = sqltypes.String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    @staticmethod
    def _coerce_uuid(value):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))

    def process_bind_param(self, value, dialect):
        value = self._coerce_uuid(value)
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        return self._coerce_uuid(value)


def get_uuid_column(*args, **kwargs):
    """Get a Column configured for UUID storage on any supported dialect.

    Example:
        player_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
        foreign_id = get_uuid_column(ForeignKey("table.id"), nullable=True)
    """
    return Column(AdaptiveUUID(), *args, **kwargs)
