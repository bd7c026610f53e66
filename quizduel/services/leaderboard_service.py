"""Leaderboard service for challenge points and player ranks."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quizduel.config import get_settings
from quizduel.database import insert_for_dialect
from quizduel.models.challenge_result import ChallengeResult
from quizduel.models.player import Player
from quizduel.models.player_points import PlayerPoints, PointsEvent
from quizduel.utils.datetime_helpers import utc_now

logger = logging.getLogger(__name__)

ACTIVITY_WIN = "challenge_win"
ACTIVITY_LOSS = "challenge_loss"
ACTIVITY_DRAW = "challenge_draw"

DEFAULT_LEADERBOARD_LIMIT = 10
MAX_LEADERBOARD_LIMIT = 100

# (minimum percentage, bonus), highest first
PERFORMANCE_BONUS_TIERS = ((100, 20), (90, 15), (80, 10), (70, 5))


def calculate_performance_bonus(percentage: int) -> int:
    for threshold, bonus in PERFORMANCE_BONUS_TIERS:
        if percentage >= threshold:
            return bonus
    return 0


def calculate_award(outcome: str, percentage: int) -> tuple[int, str]:
    """Points and ledger activity for a player's challenge outcome.

    Args:
        outcome: "won", "lost" or "draw"
        percentage: The player's own percentage in the challenge

    Returns:
        (points, activity)
    """
    settings = get_settings()
    if outcome == "won":
        base, activity = settings.points_win, ACTIVITY_WIN
    elif outcome == "draw":
        base, activity = settings.points_draw, ACTIVITY_DRAW
    else:
        base, activity = settings.points_lose, ACTIVITY_LOSS
    return base + calculate_performance_bonus(percentage), activity


class LeaderboardService:
    """Award challenge points and maintain derived ranks."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _ensure_points_row(self, player_id: UUID) -> None:
        insert = insert_for_dialect(self.db)
        now = utc_now()
        stmt = insert(PlayerPoints).values(
            points_id=uuid.uuid4(),
            player_id=player_id,
            total_points=0,
            created_at=now,
            updated_at=now,
        ).on_conflict_do_nothing(index_elements=[PlayerPoints.player_id])
        await self.db.execute(stmt)

    async def award_points(
        self,
        player_id: UUID,
        points: int,
        activity: str,
        description: str,
        course_id: Optional[str],
        reference_id: UUID,
    ) -> bool:
        """Add points to a player's running total and append a history row.

        The history row is written first; (player_id, reference_id) is unique,
        so a player already credited for the reference gets nothing. Runs inside
        the caller's transaction; nothing is committed here.

        Returns:
            True if the points were credited by this call
        """
        insert = insert_for_dialect(self.db)
        now = utc_now()
        recorded = await self.db.execute(
            insert(PointsEvent).values(
                event_id=uuid.uuid4(),
                player_id=player_id,
                activity=activity,
                points=points,
                description=description,
                course_id=course_id,
                reference_id=reference_id,
                created_at=now,
            ).on_conflict_do_nothing(index_elements=[PointsEvent.player_id, PointsEvent.reference_id])
        )
        if recorded.rowcount != 1:
            return False

        await self._ensure_points_row(player_id)
        await self.db.execute(
            update(PlayerPoints)
            .where(PlayerPoints.player_id == player_id)
            .values(
                total_points=PlayerPoints.total_points + points,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return True

    async def apply_challenge_awards(
        self,
        result: ChallengeResult,
        course_id: Optional[str] = None,
    ) -> dict[UUID, int]:
        """
        Award points for both players of an evaluated challenge.

        Both awards are committed together. A player who already holds a
        history row for this challenge is skipped, so reruns, including ones
        overlapping the first run, award nothing new.

        Returns:
            Mapping of player_id to points awarded in this call
        """
        awarded: dict[UUID, int] = {}
        try:
            for player_id in (result.player_one_id, result.player_two_id):
                outcome = (
                    "draw" if result.is_draw
                    else "won" if player_id == result.winner_id
                    else "lost"
                )
                points, activity = calculate_award(outcome, result.percentage_for(player_id))
                credited = await self.award_points(
                    player_id=player_id,
                    points=points,
                    activity=activity,
                    description=f"Quiz challenge {outcome} ({result.percentage_for(player_id)}%)",
                    course_id=course_id,
                    reference_id=result.challenge_id,
                )
                if not credited:
                    logger.info(
                        f"Points already awarded to {player_id} for challenge {result.challenge_id}, skipping"
                    )
                    continue
                awarded[player_id] = points

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if awarded:
            logger.info(f"Challenge {result.challenge_id} points awarded: {awarded}")
            await self.recompute_ranks()
        return awarded

    async def recompute_ranks(self) -> int:
        """Assign ranks 1..N by total points. Returns the number of ranked players."""
        rows = await self.db.execute(
            select(PlayerPoints.points_id, PlayerPoints.rank)
            .order_by(
                PlayerPoints.total_points.desc(),
                PlayerPoints.created_at.asc(),
                PlayerPoints.player_id.asc(),
            )
        )
        ranked = 0
        for rank, row in enumerate(rows.all(), start=1):
            ranked = rank
            if row.rank == rank:
                continue
            await self.db.execute(
                update(PlayerPoints)
                .where(PlayerPoints.points_id == row.points_id)
                .values(rank=rank)
                .execution_options(synchronize_session=False)
            )
        await self.db.commit()
        logger.debug(f"Recomputed ranks for {ranked} players")
        return ranked

    async def get_global_leaderboard(self, limit: int = DEFAULT_LEADERBOARD_LIMIT) -> list[dict[str, Any]]:
        limit = max(1, min(limit, MAX_LEADERBOARD_LIMIT))
        result = await self.db.execute(
            select(
                PlayerPoints.player_id,
                Player.username,
                PlayerPoints.total_points,
                PlayerPoints.rank,
            )
            .join(Player, Player.player_id == PlayerPoints.player_id)
            .order_by(
                PlayerPoints.total_points.desc(),
                PlayerPoints.created_at.asc(),
                PlayerPoints.player_id.asc(),
            )
            .limit(limit)
        )

        entries = []
        for position, row in enumerate(result.all(), start=1):
            entries.append({
                "player_id": row.player_id,
                "username": row.username,
                "total_points": int(row.total_points or 0),
                "rank": row.rank or position,
            })
        return entries

    async def get_course_leaderboard(
        self,
        course_id: str,
        limit: int = DEFAULT_LEADERBOARD_LIMIT,
    ) -> list[dict[str, Any]]:
        """Rank players by points earned in challenges of a single course."""
        limit = max(1, min(limit, MAX_LEADERBOARD_LIMIT))
        course_points = func.sum(PointsEvent.points).label("total_points")
        result = await self.db.execute(
            select(PointsEvent.player_id, Player.username, course_points)
            .join(Player, Player.player_id == PointsEvent.player_id)
            .where(PointsEvent.course_id == course_id)
            .group_by(PointsEvent.player_id, Player.username)
            .order_by(course_points.desc(), Player.username.asc())
            .limit(limit)
        )

        return [
            {
                "player_id": row.player_id,
                "username": row.username,
                "total_points": int(row.total_points or 0),
                "rank": rank,
            }
            for rank, row in enumerate(result.all(), start=1)
        ]
