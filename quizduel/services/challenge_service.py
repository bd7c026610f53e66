"""Challenge record service: creation, participant lookups, history and expiry."""
import logging
import math
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quizduel.config import get_settings
from quizduel.models.base import ChallengeStatus
from quizduel.models.challenge import Challenge
from quizduel.models.challenge_result import ChallengeResult
from quizduel.models.challenge_submission import ChallengeSubmission
from quizduel.models.player import Player
from quizduel.utils.datetime_helpers import utc_now
from quizduel.utils.exceptions import (
    ChallengeCreationError,
    ChallengeNotFoundError,
    NotParticipantError,
    ResultNotReadyError,
)

logger = logging.getLogger(__name__)

MIN_OPTIONS_PER_QUESTION = 2
MAX_HISTORY_PAGE_SIZE = 50

# Statuses the expiry sweep may move to expired
_EXPIRABLE_STATUSES = (ChallengeStatus.PENDING.value, ChallengeStatus.IN_PROGRESS.value)


def _submission_count():
    return (
        select(func.count(ChallengeSubmission.submission_id))
        .where(ChallengeSubmission.challenge_id == Challenge.challenge_id)
        .correlate(Challenge)
        .scalar_subquery()
    )


def normalize_questions(questions: list[dict[str, Any]], min_questions: int) -> list[dict[str, Any]]:
    """Validate question copies and return them with string ids.

    Raises:
        ChallengeCreationError: On too few questions, duplicate ids, too few
            options, or a correct option missing from the options
    """
    if len(questions) < min_questions:
        raise ChallengeCreationError(
            f"A challenge needs at least {min_questions} questions, got {len(questions)}",
            code="not_enough_questions",
        )

    normalized = []
    seen: set[str] = set()
    for question in questions:
        question_id = str(question["question_id"])
        if question_id in seen:
            raise ChallengeCreationError(f"Duplicate question {question_id}", code="duplicate_question")
        seen.add(question_id)

        options = [
            {"option_id": str(option["option_id"]), "text": option["text"]}
            for option in question["options"]
        ]
        if len(options) < MIN_OPTIONS_PER_QUESTION:
            raise ChallengeCreationError(
                f"Question {question_id} needs at least {MIN_OPTIONS_PER_QUESTION} options",
                code="not_enough_options",
            )

        correct_option_id = str(question["correct_option_id"])
        if correct_option_id not in {option["option_id"] for option in options}:
            raise ChallengeCreationError(
                f"Question {question_id} correct option {correct_option_id} is not one of its options",
                code="invalid_correct_option",
            )

        normalized.append({
            "question_id": question_id,
            "text": question["text"],
            "options": options,
            "correct_option_id": correct_option_id,
        })
    return normalized


class ChallengeService:
    """Service for challenge records."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    async def create_challenge(
        self,
        player_one_id: UUID,
        player_two_id: UUID,
        questions: list[dict[str, Any]],
        quiz_id: Optional[str] = None,
        course_id: Optional[str] = None,
        module_id: Optional[str] = None,
        time_limit_seconds: Optional[int] = None,
    ) -> Challenge:
        """
        Create a pending challenge holding its own copy of the questions.

        Raises:
            ChallengeCreationError: If the players or questions are invalid
        """
        if player_one_id == player_two_id:
            raise ChallengeCreationError("A player cannot challenge themselves", code="same_player")

        found = await self.db.execute(
            select(Player.player_id).where(Player.player_id.in_([player_one_id, player_two_id]))
        )
        if len(found.scalars().all()) != 2:
            raise ChallengeCreationError("Both players must exist", code="player_not_found")

        question_copies = normalize_questions(questions, self.settings.challenge_min_questions)
        now = utc_now()
        challenge = Challenge(
            challenge_id=uuid.uuid4(),
            player_one_id=player_one_id,
            player_two_id=player_two_id,
            quiz_id=quiz_id,
            course_id=course_id,
            module_id=module_id,
            questions=question_copies,
            status=ChallengeStatus.PENDING.value,
            time_limit_seconds=time_limit_seconds or self.settings.challenge_default_time_limit_seconds,
            created_at=now,
            expires_at=now + timedelta(minutes=self.settings.challenge_expiry_minutes),
        )
        self.db.add(challenge)
        await self.db.commit()

        logger.info(
            f"Challenge {challenge.challenge_id} created: {player_one_id} vs {player_two_id}, "
            f"{len(question_copies)} questions"
        )
        return challenge

    async def get_challenge(self, challenge_id: UUID) -> Challenge:
        challenge = await self.db.get(Challenge, challenge_id, populate_existing=True)
        if challenge is None:
            raise ChallengeNotFoundError(f"Challenge {challenge_id} not found")
        return challenge

    async def get_challenge_for_participant(self, challenge_id: UUID, player_id: UUID) -> Challenge:
        """Load a challenge, requiring the caller to be one of its players."""
        challenge = await self.get_challenge(challenge_id)
        if not challenge.is_participant(player_id):
            raise NotParticipantError("Not authorized for this challenge")
        return challenge

    async def get_result_for_player(
        self,
        challenge_id: UUID,
        player_id: UUID,
    ) -> tuple[Challenge, ChallengeResult, dict[UUID, str]]:
        """
        Load a participant's view of a challenge result.

        Returns:
            (challenge, result, usernames keyed by player_id)

        Raises:
            ChallengeNotFoundError, NotParticipantError, ResultNotReadyError
        """
        challenge = await self.get_challenge_for_participant(challenge_id, player_id)

        rows = await self.db.execute(
            select(ChallengeResult).where(ChallengeResult.challenge_id == challenge_id)
        )
        result = rows.scalar_one_or_none()
        if result is None:
            raise ResultNotReadyError("Challenge not yet completed")

        return challenge, result, await self._usernames([challenge.player_one_id, challenge.player_two_id])

    async def _usernames(self, player_ids: list[UUID]) -> dict[UUID, str]:
        if not player_ids:
            return {}
        rows = await self.db.execute(
            select(Player.player_id, Player.username).where(Player.player_id.in_(list(set(player_ids))))
        )
        return {row.player_id: row.username for row in rows.all()}

    async def get_history(
        self,
        player_id: UUID,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[dict[str, Any]], dict[str, int]]:
        """
        Completed challenges for a player, most recent first.

        Returns:
            (entries, pagination)
        """
        page = max(page, 1)
        limit = max(1, min(limit, MAX_HISTORY_PAGE_SIZE))
        participant = or_(Challenge.player_one_id == player_id, Challenge.player_two_id == player_id)
        completed = Challenge.status == ChallengeStatus.COMPLETED.value

        total = await self.db.scalar(
            select(func.count(Challenge.challenge_id)).where(participant, completed)
        ) or 0

        rows = await self.db.execute(
            select(Challenge, ChallengeResult)
            .join(ChallengeResult, ChallengeResult.challenge_id == Challenge.challenge_id)
            .where(participant, completed)
            .order_by(Challenge.completed_at.desc(), Challenge.challenge_id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        pairs = rows.all()

        opponents = {
            challenge.challenge_id: (
                challenge.player_two_id if challenge.player_one_id == player_id else challenge.player_one_id
            )
            for challenge, _ in pairs
        }
        usernames = await self._usernames(list(opponents.values()))

        entries = []
        for challenge, result in pairs:
            opponent_id = opponents[challenge.challenge_id]
            if result.is_draw:
                outcome = "draw"
            else:
                outcome = "won" if result.winner_id == player_id else "lost"
            entries.append({
                "challenge_id": challenge.challenge_id,
                "opponent_id": opponent_id,
                "opponent": usernames.get(opponent_id),
                "player_score": result.score_for(player_id),
                "opponent_score": result.score_for(opponent_id),
                "total_questions": result.total_questions,
                "outcome": outcome,
                "course_id": challenge.course_id,
                "completed_at": challenge.completed_at,
            })

        pagination = {
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if total else 0,
            "total_challenges": total,
        }
        return entries, pagination

    async def expire_challenge(self, challenge_id: UUID, now: Optional[datetime] = None) -> bool:
        """Move one challenge past its deadline to expired. Returns True if it changed.

        A challenge already holding both submissions is left for the evaluator.
        """
        outcome = await self.db.execute(
            update(Challenge)
            .where(
                Challenge.challenge_id == challenge_id,
                Challenge.status.in_(_EXPIRABLE_STATUSES),
                _submission_count() < 2,
            )
            .values(status=ChallengeStatus.EXPIRED.value, completed_at=now or utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return outcome.rowcount == 1

    async def expire_stale_challenges(self, now: Optional[datetime] = None) -> int:
        """Expire pending or in-progress challenges past their deadline.

        Challenges holding both submissions are left for the evaluator.
        """
        now = now or utc_now()
        outcome = await self.db.execute(
            update(Challenge)
            .where(
                Challenge.status.in_(_EXPIRABLE_STATUSES),
                Challenge.expires_at.is_not(None),
                Challenge.expires_at < now,
                _submission_count() < 2,
            )
            .values(status=ChallengeStatus.EXPIRED.value, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        expired = outcome.rowcount or 0
        if expired:
            logger.info(f"Expired {expired} stale challenges")
        return expired
