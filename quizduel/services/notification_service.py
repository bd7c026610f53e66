"""
Service for challenge result notifications.

Handles:
- Building one result message per player (own score, opponent score, outcome)
- Dispatching through the configured EmailDispatcher
- Marking the result's notifications flag once both sends were attempted
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quizduel.models.challenge_result import ChallengeResult
from quizduel.models.player import Player
from quizduel.services.email_client import EmailDispatcher, get_email_dispatcher
from quizduel.services.result_service import ResultService

logger = logging.getLogger(__name__)

RESULT_SUBJECT = "Quiz Challenge Results"

OUTCOME_HEADLINES = {
    "won": "You won the challenge!",
    "lost": "Your opponent won this one.",
    "draw": "The match ended in a draw!",
}


def build_result_message(
    username: str,
    outcome: str,
    score: int,
    opponent_score: int,
    total_questions: int,
    percentage: int,
    winner_reason: str,
) -> str:
    """Plain-text body for a player's challenge result email."""
    return (
        f"Hi {username},\n\n"
        f"Your quiz challenge has been completed!\n\n"
        f"Your Score: {score}/{total_questions} ({percentage}%)\n"
        f"Opponent's Score: {opponent_score}/{total_questions}\n\n"
        f"Result: {OUTCOME_HEADLINES[outcome]} ({winner_reason})\n\n"
        f"Check your leaderboard position for updated rankings!"
    )


def _outcome_for(result: ChallengeResult, player_id: UUID) -> str:
    if result.is_draw:
        return "draw"
    return "won" if player_id == result.winner_id else "lost"


class NotificationService:
    """Service for sending challenge result notifications."""

    def __init__(self, db: AsyncSession, dispatcher: Optional[EmailDispatcher] = None):
        self.db = db
        self.dispatcher = dispatcher or get_email_dispatcher()

    async def _send_to_player(self, result: ChallengeResult, player: Optional[Player]) -> bool:
        if player is None or not player.email:
            logger.warning(f"No email on file for a player of challenge {result.challenge_id}")
            return False

        opponent_id = result.opponent_of(player.player_id)
        body = build_result_message(
            username=player.username,
            outcome=_outcome_for(result, player.player_id),
            score=result.score_for(player.player_id),
            opponent_score=result.score_for(opponent_id),
            total_questions=result.total_questions,
            percentage=result.percentage_for(player.player_id),
            winner_reason=result.winner_reason,
        )

        try:
            sent = await self.dispatcher.send(player.email, RESULT_SUBJECT, body)
        except Exception as e:
            logger.error(
                f"Failed to send challenge result to {player.player_id}: {e}",
                exc_info=True,
            )
            return False

        if not sent:
            logger.warning(f"Email provider rejected challenge result for {player.player_id}")
        return sent

    async def notify_result(self, result_id: UUID) -> bool:
        """
        Send result emails to both players.

        Both sends are always attempted. The notifications flag is set
        afterwards regardless of individual send failures.

        Returns:
            True if both emails were accepted
        """
        result = await self.db.get(ChallengeResult, result_id, populate_existing=True)
        if result is None:
            raise ValueError(f"Result {result_id} not found")
        if result.notifications_sent:
            logger.info(f"Notifications already sent for challenge {result.challenge_id}, skipping")
            return True

        rows = await self.db.execute(
            select(Player).where(Player.player_id.in_([result.player_one_id, result.player_two_id]))
        )
        players = {player.player_id: player for player in rows.scalars().all()}

        delivered = [
            await self._send_to_player(result, players.get(player_id))
            for player_id in (result.player_one_id, result.player_two_id)
        ]

        await ResultService(self.db).mark_notifications_sent(result.result_id)
        logger.info(
            f"Challenge {result.challenge_id} notifications attempted: "
            f"{sum(delivered)}/{len(delivered)} delivered"
        )
        return all(delivered)
