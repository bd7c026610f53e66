"""Result persistence with an integrity checksum.

The checksum is a SHA-256 digest over the result payload serialized with
sorted keys. It makes later edits to a stored result detectable; it is not a
signature.
"""
import hashlib
import json
import logging
import uuid
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quizduel.models.challenge_result import ChallengeResult
from quizduel.services.scoring_service import ScoreBreakdown
from quizduel.services.winner_resolver import WinnerDecision
from quizduel.utils.datetime_helpers import isoformat_utc, utc_now
from quizduel.utils.exceptions import ResultAlreadyExistsError

logger = logging.getLogger(__name__)


def build_result_payload(
    *,
    challenge_id: UUID,
    player_one_id: UUID,
    player_two_id: UUID,
    total_questions: int,
    player_one_score: int,
    player_two_score: int,
    player_one_percentage: int,
    player_two_percentage: int,
    player_one_time_ms: int,
    player_two_time_ms: int,
    winner_id: UUID | None,
    is_draw: bool,
    winner_reason: str,
    detailed_results: dict[str, Any],
    evaluated_at: datetime,
    evaluation_method: str,
) -> dict[str, Any]:
    """Canonical, JSON-ready view of everything the checksum covers."""
    return {
        "challenge_id": str(challenge_id),
        "player_one_id": str(player_one_id),
        "player_two_id": str(player_two_id),
        "total_questions": total_questions,
        "player_one_score": player_one_score,
        "player_two_score": player_two_score,
        "player_one_percentage": player_one_percentage,
        "player_two_percentage": player_two_percentage,
        "player_one_time_ms": player_one_time_ms,
        "player_two_time_ms": player_two_time_ms,
        "winner_id": str(winner_id) if winner_id else None,
        "is_draw": is_draw,
        "winner_reason": winner_reason,
        "detailed_results": detailed_results,
        "evaluated_at": isoformat_utc(evaluated_at),
        "evaluation_method": evaluation_method,
    }


def compute_integrity_hash(payload: dict[str, Any]) -> str:
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def payload_from_result(result: ChallengeResult) -> dict[str, Any]:
    return build_result_payload(
        challenge_id=result.challenge_id,
        player_one_id=result.player_one_id,
        player_two_id=result.player_two_id,
        total_questions=result.total_questions,
        player_one_score=result.player_one_score,
        player_two_score=result.player_two_score,
        player_one_percentage=result.player_one_percentage,
        player_two_percentage=result.player_two_percentage,
        player_one_time_ms=result.player_one_time_ms,
        player_two_time_ms=result.player_two_time_ms,
        winner_id=result.winner_id,
        is_draw=result.is_draw,
        winner_reason=result.winner_reason,
        detailed_results=result.detailed_results,
        evaluated_at=result.evaluated_at,
        evaluation_method=result.evaluation_method,
    )


def verify_integrity(result: ChallengeResult) -> bool:
    """Recompute the checksum of a stored result and compare."""
    return compute_integrity_hash(payload_from_result(result)) == result.integrity_hash


class ResultService:
    """Service for writing and reading challenge results."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def persist_result(
        self,
        challenge_id: UUID,
        player_one_id: UUID,
        player_two_id: UUID,
        player_one: ScoreBreakdown,
        player_two: ScoreBreakdown,
        decision: WinnerDecision,
        evaluation_method: str = "automatic",
    ) -> ChallengeResult:
        """
        Insert the result row inside the caller's transaction.

        The caller commits. Both idempotency flags start out false.

        Raises:
            ResultAlreadyExistsError: If a result for the challenge already exists
        """
        evaluated_at = utc_now()
        detailed_results = {
            "player_one": player_one.detail_dicts(),
            "player_two": player_two.detail_dicts(),
        }
        payload = build_result_payload(
            challenge_id=challenge_id,
            player_one_id=player_one_id,
            player_two_id=player_two_id,
            total_questions=player_one.total_questions,
            player_one_score=player_one.score,
            player_two_score=player_two.score,
            player_one_percentage=player_one.percentage,
            player_two_percentage=player_two.percentage,
            player_one_time_ms=decision.player_one_time_ms,
            player_two_time_ms=decision.player_two_time_ms,
            winner_id=decision.winner_id,
            is_draw=decision.is_draw,
            winner_reason=decision.winner_reason,
            detailed_results=detailed_results,
            evaluated_at=evaluated_at,
            evaluation_method=evaluation_method,
        )

        result = ChallengeResult(
            result_id=uuid.uuid4(),
            challenge_id=challenge_id,
            player_one_id=player_one_id,
            player_two_id=player_two_id,
            total_questions=player_one.total_questions,
            player_one_score=player_one.score,
            player_two_score=player_two.score,
            player_one_percentage=player_one.percentage,
            player_two_percentage=player_two.percentage,
            player_one_time_ms=decision.player_one_time_ms,
            player_two_time_ms=decision.player_two_time_ms,
            winner_id=decision.winner_id,
            is_draw=decision.is_draw,
            winner_reason=decision.winner_reason,
            detailed_results=detailed_results,
            evaluated_at=evaluated_at,
            evaluation_method=evaluation_method,
            integrity_hash=compute_integrity_hash(payload),
            rewards_distributed=False,
            notifications_sent=False,
        )
        self.db.add(result)

        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise ResultAlreadyExistsError(
                f"Result already exists for challenge {challenge_id}"
            ) from exc

        logger.info(
            f"Result persisted for challenge {challenge_id}: "
            f"{player_one.score}-{player_two.score}, winner={decision.winner_id}, "
            f"reason={decision.winner_reason!r}"
        )
        return result

    async def get_result_for_challenge(self, challenge_id: UUID) -> ChallengeResult | None:
        result = await self.db.execute(
            select(ChallengeResult).where(ChallengeResult.challenge_id == challenge_id)
        )
        return result.scalar_one_or_none()

    async def mark_rewards_distributed(self, result_id: UUID) -> bool:
        """Set the rewards flag once. Returns False if it was already set."""
        return await self._set_flag(result_id, "rewards_distributed", "rewards_distributed_at")

    async def mark_notifications_sent(self, result_id: UUID) -> bool:
        """Set the notifications flag once. Returns False if it was already set."""
        return await self._set_flag(result_id, "notifications_sent", "notifications_sent_at")

    async def _set_flag(self, result_id: UUID, flag: str, stamp: str) -> bool:
        flag_column = getattr(ChallengeResult, flag)
        outcome = await self.db.execute(
            update(ChallengeResult)
            .where(ChallengeResult.result_id == result_id, flag_column.is_(False))
            .values({flag: True, stamp: utc_now()})
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return outcome.rowcount == 1
