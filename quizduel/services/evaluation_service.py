"""Challenge evaluation orchestration.

Evaluation completes a challenge exactly once. The result insert (unique on
challenge_id) and the conditional status transition share one transaction;
whichever evaluation commits first wins and every other concurrent attempt
returns the winner's result. Leaderboard, reward and notification side
effects run afterwards, concurrently and independently of each other.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quizduel.database import AsyncSessionLocal
from quizduel.models.base import EVALUABLE_STATUSES, ChallengeStatus
from quizduel.models.challenge import Challenge
from quizduel.models.challenge_result import ChallengeResult
from quizduel.models.challenge_submission import ChallengeSubmission
from quizduel.services.email_client import EmailDispatcher
from quizduel.services.leaderboard_service import LeaderboardService
from quizduel.services.notification_service import NotificationService
from quizduel.services.result_service import ResultService
from quizduel.services.reward_service import RewardService
from quizduel.services.scoring_service import score_submission
from quizduel.services.token_client import TokenAllocator
from quizduel.services.winner_resolver import resolve_winner
from quizduel.utils.datetime_helpers import utc_now
from quizduel.utils.exceptions import (
    ChallengeNotEvaluableError,
    ChallengeNotFoundError,
    EvaluationNotReadyError,
    ResultAlreadyExistsError,
    ResultNotReadyError,
)

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX_LENGTH = 1000

# Raised before any state could change; the challenge keeps its status
_PASSTHROUGH_ERRORS = (
    ChallengeNotFoundError,
    ChallengeNotEvaluableError,
    EvaluationNotReadyError,
)


class EvaluationService:
    """Evaluate completed challenges and fan out their side effects."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        token_allocator: Optional[TokenAllocator] = None,
        email_dispatcher: Optional[EmailDispatcher] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.token_allocator = token_allocator
        self.email_dispatcher = email_dispatcher

    async def evaluate_challenge(self, challenge_id: UUID, method: str = "automatic") -> ChallengeResult:
        """
        Evaluate a challenge once both players have submitted.

        Args:
            challenge_id: Challenge to evaluate
            method: Recorded on the result ("automatic" from the worker, "manual" from admins)

        Returns:
            The challenge's result, whether created by this call or an earlier one

        Raises:
            ChallengeNotFoundError: Unknown challenge
            ChallengeNotEvaluableError: Challenge expired before both submissions arrived
            EvaluationNotReadyError: A submission is still missing (retryable)
        """
        async with self.session_factory() as db:
            try:
                result, course_id, created = await self._evaluate(db, challenge_id, method)
            except _PASSTHROUGH_ERRORS:
                await db.rollback()
                raise
            except Exception as e:
                await db.rollback()
                logger.error(f"Challenge evaluation failed for {challenge_id}: {e}", exc_info=True)
                await self._record_error(challenge_id, e)
                raise

        if not created:
            return result

        logger.info(
            f"Challenge {challenge_id} evaluated ({method}): "
            f"{result.player_one_score}-{result.player_two_score}, "
            f"winner={result.winner_id}, reason={result.winner_reason!r}"
        )
        await self._run_side_effects(
            result,
            course_id,
            leaderboard=True,
            rewards=True,
            notifications=True,
        )
        return await self.get_result(challenge_id) or result

    async def _evaluate(
        self,
        db: AsyncSession,
        challenge_id: UUID,
        method: str,
    ) -> tuple[ChallengeResult, Optional[str], bool]:
        results = ResultService(db)

        challenge = await db.get(Challenge, challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(f"Challenge {challenge_id} not found")
        course_id = challenge.course_id

        existing = await results.get_result_for_challenge(challenge_id)
        if existing is not None:
            logger.info(f"Challenge {challenge_id} already evaluated, returning existing result")
            return existing, course_id, False

        if challenge.status == ChallengeStatus.EXPIRED.value:
            raise ChallengeNotEvaluableError(f"Challenge {challenge_id} has expired")
        if challenge.status == ChallengeStatus.COMPLETED.value:
            raise ChallengeNotEvaluableError(f"Challenge {challenge_id} is completed without a result")

        submission_rows = await db.execute(
            select(ChallengeSubmission).where(ChallengeSubmission.challenge_id == challenge_id)
        )
        submissions = {s.player_id: s for s in submission_rows.scalars().all()}
        player_one_submission = submissions.get(challenge.player_one_id)
        player_two_submission = submissions.get(challenge.player_two_id)
        if player_one_submission is None or player_two_submission is None:
            raise EvaluationNotReadyError("Both players must submit before evaluation")

        player_one = score_submission(player_one_submission.answers, challenge.questions)
        player_two = score_submission(player_two_submission.answers, challenge.questions)
        decision = resolve_winner(
            challenge.player_one_id,
            challenge.player_two_id,
            player_one,
            player_two,
            player_one_submission.total_time_ms,
            player_two_submission.total_time_ms,
        )

        # The result insert opens the write transaction; the status update must follow it
        try:
            result = await results.persist_result(
                challenge_id=challenge_id,
                player_one_id=challenge.player_one_id,
                player_two_id=challenge.player_two_id,
                player_one=player_one,
                player_two=player_two,
                decision=decision,
                evaluation_method=method,
            )
        except ResultAlreadyExistsError:
            await db.rollback()
            return await self._race_lost(db, challenge_id, "result insert"), course_id, False

        now = utc_now()
        transition = await db.execute(
            update(Challenge)
            .where(
                Challenge.challenge_id == challenge_id,
                Challenge.status.in_(EVALUABLE_STATUSES),
            )
            .values(
                status=ChallengeStatus.COMPLETED.value,
                completed_at=now,
                error_message=None,
                error_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        if transition.rowcount != 1:
            await db.rollback()
            return await self._race_lost(db, challenge_id, "status transition"), course_id, False

        await db.commit()
        return result, course_id, True

    async def _race_lost(self, db: AsyncSession, challenge_id: UUID, stage: str) -> ChallengeResult:
        existing = await ResultService(db).get_result_for_challenge(challenge_id)
        if existing is None:
            # The challenge left the evaluable states without a result, e.g. it expired
            raise ChallengeNotEvaluableError(f"Challenge {challenge_id} can no longer be evaluated")
        logger.info(f"Challenge {challenge_id} evaluated concurrently ({stage}), returning existing result")
        return existing

    async def _record_error(self, challenge_id: UUID, error: Exception) -> None:
        message = f"{type(error).__name__}: {error}"[:ERROR_MESSAGE_MAX_LENGTH]
        try:
            async with self.session_factory() as db:
                await db.execute(
                    update(Challenge)
                    .where(
                        Challenge.challenge_id == challenge_id,
                        Challenge.status != ChallengeStatus.COMPLETED.value,
                    )
                    .values(
                        status=ChallengeStatus.ERROR.value,
                        error_message=message,
                        error_at=utc_now(),
                    )
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
        except Exception as update_error:
            logger.error(
                f"Failed to record error status for challenge {challenge_id}: {update_error}",
                exc_info=True,
            )

    async def _guarded(self, name: str, challenge_id: UUID, effect: Callable[[], Awaitable[object]]):
        try:
            return await effect()
        except Exception as e:
            logger.error(f"{name} failed for challenge {challenge_id}: {e}", exc_info=True)
            return None

    async def _update_leaderboard(self, result: ChallengeResult, course_id: Optional[str]):
        async with self.session_factory() as db:
            return await LeaderboardService(db).apply_challenge_awards(result, course_id)

    async def _distribute_rewards(self, result: ChallengeResult):
        async with self.session_factory() as db:
            return await RewardService(db, self.token_allocator).distribute_rewards(result.result_id)

    async def _send_notifications(self, result: ChallengeResult):
        async with self.session_factory() as db:
            return await NotificationService(db, self.email_dispatcher).notify_result(result.result_id)

    async def _run_side_effects(
        self,
        result: ChallengeResult,
        course_id: Optional[str],
        *,
        leaderboard: bool,
        rewards: bool,
        notifications: bool,
    ) -> dict[str, object]:
        effects: dict[str, Callable[[], Awaitable[object]]] = {}
        if leaderboard:
            effects["leaderboard"] = lambda: self._update_leaderboard(result, course_id)
        if rewards:
            effects["rewards"] = lambda: self._distribute_rewards(result)
        if notifications:
            effects["notifications"] = lambda: self._send_notifications(result)

        outcomes = await asyncio.gather(*(
            self._guarded(name, result.challenge_id, effect) for name, effect in effects.items()
        ))
        return dict(zip(effects.keys(), outcomes))

    async def retry_side_effects(self, challenge_id: UUID) -> tuple[ChallengeResult, dict[str, object]]:
        """
        Re-run side effects that have not completed for an evaluated challenge.

        Leaderboard awards are always re-run; the points ledger skips players
        already credited for the challenge. Rewards and notifications only run
        while their flags are unset.

        Returns:
            (refreshed result, outcome per side effect that ran)
        """
        async with self.session_factory() as db:
            challenge = await db.get(Challenge, challenge_id)
            if challenge is None:
                raise ChallengeNotFoundError(f"Challenge {challenge_id} not found")
            result = await ResultService(db).get_result_for_challenge(challenge_id)
            if result is None:
                raise ResultNotReadyError(f"Challenge {challenge_id} has not been evaluated")
            course_id = challenge.course_id

        outcomes = await self._run_side_effects(
            result,
            course_id,
            leaderboard=True,
            rewards=not result.rewards_distributed,
            notifications=not result.notifications_sent,
        )
        logger.info(f"Side effects retried for challenge {challenge_id}: {sorted(outcomes)}")
        return await self.get_result(challenge_id) or result, outcomes

    async def get_result(self, challenge_id: UUID) -> Optional[ChallengeResult]:
        async with self.session_factory() as db:
            return await ResultService(db).get_result_for_challenge(challenge_id)
