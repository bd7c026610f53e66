"""Token and NFT reward distribution for evaluated challenges."""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quizduel.config import get_settings
from quizduel.database import insert_for_dialect
from quizduel.models.base import AllocationStatus, RewardType
from quizduel.models.challenge import Challenge
from quizduel.models.challenge_result import ChallengeResult
from quizduel.models.player import Player
from quizduel.models.reward_allocation import RewardAllocation
from quizduel.services.result_service import ResultService
from quizduel.services.token_client import AllocationOutcome, TokenAllocator, get_token_allocator
from quizduel.utils.datetime_helpers import utc_now

logger = logging.getLogger(__name__)

REASON_VICTORY = "challenge_victory"
REASON_PARTICIPATION = "challenge_participation"
REASON_DRAW = "challenge_draw"
REASON_VICTORY_NFT = "challenge_victory_nft"

# (fraction of the time limit used, bonus), fastest first
SPEED_BONUS_TIERS = ((0.5, 30), (0.7, 15))
# (minimum percentage, bonus), highest first
PERCENTAGE_BONUS_TIERS = ((90, 20), (80, 10), (70, 5))


def calculate_token_reward(
    score: int,
    total_questions: int,
    percentage: int,
    time_ms: int,
    time_limit_seconds: int,
    is_winner: bool,
) -> int:
    """Token amount for a player's performance in a challenge."""
    settings = get_settings()
    reward = settings.reward_base_tokens

    if is_winner:
        reward += settings.reward_victory_bonus

    if total_questions > 0 and score == total_questions:
        reward += settings.reward_perfect_score_bonus

    limit_ms = (time_limit_seconds or settings.challenge_default_time_limit_seconds) * 1000
    time_fraction = time_ms / limit_ms
    for threshold, bonus in SPEED_BONUS_TIERS:
        if time_fraction < threshold:
            reward += bonus
            break

    for threshold, bonus in PERCENTAGE_BONUS_TIERS:
        if percentage >= threshold:
            reward += bonus
            break

    return reward


@dataclass
class RewardLeg:
    """One allocation the distributor owes a player."""
    player_id: UUID
    reward_type: RewardType
    amount: int
    reason: str
    metadata: dict[str, Any] = field(default_factory=dict)


def _victory_nft_metadata(challenge: Challenge, percentage: int) -> dict[str, Any]:
    now = utc_now()
    return {
        "name": "Challenge Victory NFT",
        "description": f"Victory in quiz challenge on {now.strftime('%a %b %d %Y')}",
        "attributes": [
            {"trait_type": "Achievement", "value": "Challenge Winner"},
            {"trait_type": "Score", "value": f"{percentage}%"},
            {"trait_type": "Course", "value": challenge.course_id or "general"},
            {"trait_type": "Date", "value": now.isoformat()},
        ],
    }


class RewardService:
    """Distribute token and NFT rewards for a challenge result at most once."""

    def __init__(self, db: AsyncSession, token_allocator: Optional[TokenAllocator] = None):
        self.db = db
        self.token_allocator = token_allocator or get_token_allocator()
        self.settings = get_settings()

    def plan_rewards(
        self,
        result: ChallengeResult,
        challenge: Challenge,
        payout_addresses: dict[UUID, Optional[str]],
    ) -> list[RewardLeg]:
        """Work out every allocation owed for a result."""
        participation = self.settings.reward_participation_tokens

        if result.is_draw:
            return [
                RewardLeg(player_id, RewardType.TOKEN, participation, REASON_DRAW)
                for player_id in (result.player_one_id, result.player_two_id)
            ]

        winner_id = result.winner_id
        loser_id = result.opponent_of(winner_id)
        winner_percentage = result.percentage_for(winner_id)

        legs = [
            RewardLeg(
                winner_id,
                RewardType.TOKEN,
                calculate_token_reward(
                    score=result.score_for(winner_id),
                    total_questions=result.total_questions,
                    percentage=winner_percentage,
                    time_ms=result.time_for(winner_id),
                    time_limit_seconds=challenge.time_limit_seconds,
                    is_winner=True,
                ),
                REASON_VICTORY,
            ),
        ]
        if (
            winner_percentage >= self.settings.reward_nft_threshold_percent
            and payout_addresses.get(winner_id)
        ):
            legs.append(RewardLeg(
                winner_id,
                RewardType.NFT,
                1,
                REASON_VICTORY_NFT,
                metadata=_victory_nft_metadata(challenge, winner_percentage),
            ))
        legs.append(RewardLeg(loser_id, RewardType.TOKEN, participation, REASON_PARTICIPATION))
        return legs

    async def _settled_legs(self, result_id: UUID) -> set[tuple[UUID, str]]:
        rows = await self.db.execute(
            select(RewardAllocation.player_id, RewardAllocation.reward_type)
            .where(
                RewardAllocation.result_id == result_id,
                RewardAllocation.status.in_([
                    AllocationStatus.COMPLETED.value,
                    AllocationStatus.ESCROWED.value,
                ]),
            )
        )
        return {(row.player_id, row.reward_type) for row in rows.all()}

    async def _claim_leg(
        self,
        result: ChallengeResult,
        leg: RewardLeg,
        payout_address: Optional[str],
    ) -> Optional[UUID]:
        """Claim the next attempt at a leg by inserting its pending audit row.

        A leg whose latest attempt is pending, completed or escrowed is not
        claimed again. Concurrent claims of the same attempt collide on
        ``uq_reward_allocation_attempt`` and only one of them gets a row.

        Returns:
            The claimed allocation_id, or None if the leg is not ours to run
        """
        latest = (await self.db.execute(
            select(RewardAllocation.attempt, RewardAllocation.status)
            .where(
                RewardAllocation.result_id == result.result_id,
                RewardAllocation.player_id == leg.player_id,
                RewardAllocation.reward_type == leg.reward_type.value,
            )
            .order_by(RewardAllocation.attempt.desc())
            .limit(1)
        )).first()
        if latest is not None and latest.status != AllocationStatus.FAILED.value:
            return None

        allocation_id = uuid.uuid4()
        insert = insert_for_dialect(self.db)
        claimed = await self.db.execute(
            insert(RewardAllocation).values(
                allocation_id=allocation_id,
                result_id=result.result_id,
                challenge_id=result.challenge_id,
                player_id=leg.player_id,
                reward_type=leg.reward_type.value,
                amount=leg.amount,
                reason=leg.reason,
                payout_address=payout_address,
                attempt=latest.attempt + 1 if latest is not None else 1,
                status=AllocationStatus.PENDING.value,
                created_at=utc_now(),
            ).on_conflict_do_nothing(index_elements=[
                RewardAllocation.result_id,
                RewardAllocation.player_id,
                RewardAllocation.reward_type,
                RewardAllocation.attempt,
            ])
        )
        await self.db.commit()
        return allocation_id if claimed.rowcount == 1 else None

    async def _execute_leg(self, leg: RewardLeg, payout_address: Optional[str]) -> tuple[str, AllocationOutcome]:
        if not payout_address:
            logger.info(
                f"No payout address for {leg.player_id}, escrowing {leg.amount} {leg.reward_type.value}"
            )
            return AllocationStatus.ESCROWED.value, AllocationOutcome(success=True)

        try:
            if leg.reward_type == RewardType.NFT:
                outcome = await self.token_allocator.mint_nft(leg.player_id, payout_address, leg.metadata)
            else:
                outcome = await self.token_allocator.allocate(
                    leg.player_id, payout_address, leg.amount, leg.reason
                )
        except Exception as e:
            logger.error(f"{leg.reward_type.value} allocation raised for {leg.player_id}: {e}", exc_info=True)
            outcome = AllocationOutcome(success=False, error=f"{type(e).__name__}: {e}"[:1000])

        status = AllocationStatus.COMPLETED.value if outcome.success else AllocationStatus.FAILED.value
        return status, outcome

    async def distribute_rewards(self, result_id: UUID) -> bool:
        """
        Allocate every outstanding reward for a result.

        Each leg is claimed before the allocator is called, so overlapping
        runs never pay the same leg twice. Legs already completed or escrowed
        are skipped and failed legs are retried as a new attempt. The result's
        rewards flag is set only once every leg has settled.

        Returns:
            True if all rewards are settled after this call
        """
        result = await self.db.get(ChallengeResult, result_id, populate_existing=True)
        if result is None:
            raise ValueError(f"Result {result_id} not found")
        if result.rewards_distributed:
            logger.info(f"Rewards already distributed for challenge {result.challenge_id}, skipping")
            return True

        challenge = await self.db.get(Challenge, result.challenge_id)
        players = await self.db.execute(
            select(Player.player_id, Player.payout_address)
            .where(Player.player_id.in_([result.player_one_id, result.player_two_id]))
        )
        payout_addresses = {row.player_id: row.payout_address for row in players.all()}

        legs = self.plan_rewards(result, challenge, payout_addresses)
        for leg in legs:
            payout_address = payout_addresses.get(leg.player_id)
            allocation_id = await self._claim_leg(result, leg, payout_address)
            if allocation_id is None:
                continue

            status, outcome = await self._execute_leg(leg, payout_address)
            await self.db.execute(
                update(RewardAllocation)
                .where(RewardAllocation.allocation_id == allocation_id)
                .values(status=status, transaction_ref=outcome.transaction_ref, error=outcome.error)
                .execution_options(synchronize_session=False)
            )
            # Each attempt is durable before the next leg runs
            await self.db.commit()

            if status == AllocationStatus.FAILED.value:
                logger.warning(
                    f"{leg.reward_type.value} allocation failed for {leg.player_id} "
                    f"(challenge {result.challenge_id}): {outcome.error}"
                )

        settled = await self._settled_legs(result.result_id)
        if any((leg.player_id, leg.reward_type.value) not in settled for leg in legs):
            return False

        await ResultService(self.db).mark_rewards_distributed(result.result_id)
        logger.info(f"Rewards distributed for challenge {result.challenge_id}")
        return True
