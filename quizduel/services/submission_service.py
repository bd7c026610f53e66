"""Submission intake for quiz challenges."""
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quizduel.config import get_settings
from quizduel.models.base import ChallengeStatus
from quizduel.models.challenge import Challenge
from quizduel.models.challenge_submission import ChallengeSubmission
from quizduel.services.challenge_service import ChallengeService
from quizduel.tasks.evaluation_worker import enqueue_evaluation
from quizduel.utils.datetime_helpers import ensure_utc, utc_now
from quizduel.utils.exceptions import (
    AlreadySubmittedError,
    ChallengeCompletedError,
    ChallengeExpiredError,
    SubmissionValidationError,
    TimeLimitExceededError,
)

logger = logging.getLogger(__name__)

MESSAGE_WAITING = "Answers submitted successfully. Waiting for opponent..."
MESSAGE_EVALUATING = "Answers submitted successfully. Evaluation in progress..."


@dataclass(frozen=True)
class SubmissionReceipt:
    submission_id: UUID
    both_players_submitted: bool
    message: str


def validate_answers(answers: list[dict[str, Any]], question_ids: list[str]) -> None:
    """Check a submission's answers against the challenge's questions.

    Raises:
        SubmissionValidationError: With code ``duplicate_question_answers``,
            ``answer_count_mismatch`` or ``invalid_question_id``
    """
    answered = [str(answer["question_id"]) for answer in answers]

    if len(answered) != len(set(answered)):
        raise SubmissionValidationError(
            "Duplicate answers for the same question are not allowed",
            code="duplicate_question_answers",
        )

    if len(answered) != len(question_ids):
        raise SubmissionValidationError(
            f"Expected {len(question_ids)} answers, received {len(answered)}",
            code="answer_count_mismatch",
        )

    known = set(question_ids)
    for question_id in answered:
        if question_id not in known:
            raise SubmissionValidationError(
                f"Question {question_id} not found in challenge",
                code="invalid_question_id",
            )


class SubmissionService:
    """Service for accepting challenge submissions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    async def submit_answers(
        self,
        challenge_id: UUID,
        player_id: UUID,
        answers: list[dict[str, Any]],
        total_time_ms: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SubmissionReceipt:
        """
        Record a player's answers for a challenge.

        The second submission queues the challenge for evaluation.

        Raises:
            ChallengeNotFoundError: Unknown challenge
            NotParticipantError: Caller is not one of the two players
            ChallengeCompletedError: Challenge already evaluated
            ChallengeExpiredError: Challenge already expired
            TimeLimitExceededError: Deadline passed or elapsed time over the limit
            SubmissionValidationError: Answers do not match the challenge questions
            AlreadySubmittedError: The player already submitted
        """
        challenge = await ChallengeService(self.db).get_challenge_for_participant(challenge_id, player_id)

        if challenge.status == ChallengeStatus.COMPLETED.value:
            raise ChallengeCompletedError("Challenge has already been completed. No more submissions accepted.")
        if challenge.status == ChallengeStatus.EXPIRED.value:
            raise ChallengeExpiredError("Challenge has expired. No more submissions accepted.")

        already_submitted = await self.db.scalar(
            select(ChallengeSubmission.submission_id)
            .where(
                ChallengeSubmission.challenge_id == challenge_id,
                ChallengeSubmission.player_id == player_id,
            )
            .limit(1)
        )
        if already_submitted is not None:
            raise AlreadySubmittedError("You have already submitted answers for this challenge.")

        expires_at = ensure_utc(challenge.expires_at)
        if expires_at is not None and utc_now() > expires_at:
            if await ChallengeService(self.db).expire_challenge(challenge_id):
                logger.info(f"Challenge {challenge_id} expired on late submission")
            raise TimeLimitExceededError("Challenge time limit has been exceeded.")

        allowed_ms = (challenge.time_limit_seconds + self.settings.submission_grace_seconds) * 1000
        if total_time_ms > allowed_ms:
            raise TimeLimitExceededError(
                f"Completion time {total_time_ms}ms exceeds the {challenge.time_limit_seconds}s limit"
            )

        validate_answers(answers, challenge.question_ids())

        submission = ChallengeSubmission(
            submission_id=uuid.uuid4(),
            challenge_id=challenge_id,
            player_id=player_id,
            answers=[
                {"question_id": str(answer["question_id"]), "selected_option": str(answer["selected_option"])}
                for answer in answers
            ],
            total_time_ms=total_time_ms,
            submitted_at=utc_now(),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
        )
        self.db.add(submission)

        # The unique (challenge_id, player_id) constraint decides duplicate submissions
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            raise AlreadySubmittedError("You have already submitted answers for this challenge.") from exc

        await self.db.execute(
            update(Challenge)
            .where(
                Challenge.challenge_id == challenge_id,
                Challenge.status == ChallengeStatus.PENDING.value,
            )
            .values(status=ChallengeStatus.IN_PROGRESS.value, started_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        submission_count = await self.db.scalar(
            select(func.count(ChallengeSubmission.submission_id))
            .where(ChallengeSubmission.challenge_id == challenge_id)
        )
        both_submitted = submission_count >= 2

        logger.info(
            f"Submission recorded for challenge {challenge_id} by {player_id} "
            f"({submission_count}/2, {total_time_ms}ms)"
        )

        if both_submitted:
            enqueue_evaluation(challenge_id)

        return SubmissionReceipt(
            submission_id=submission.submission_id,
            both_players_submitted=both_submitted,
            message=MESSAGE_EVALUATING if both_submitted else MESSAGE_WAITING,
        )
