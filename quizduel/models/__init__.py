"""Database models."""
from quizduel.models.player import Player
from quizduel.models.challenge import Challenge
from quizduel.models.challenge_submission import ChallengeSubmission
from quizduel.models.challenge_result import ChallengeResult
from quizduel.models.player_points import PlayerPoints, PointsEvent
from quizduel.models.reward_allocation import RewardAllocation
from quizduel.models.base import ChallengeStatus, RewardType, AllocationStatus

__all__ = [
    "Player",
    "Challenge",
    "ChallengeSubmission",
    "ChallengeResult",
    "PlayerPoints",
    "PointsEvent",
    "RewardAllocation",
    "ChallengeStatus",
    "RewardType",
    "AllocationStatus",
]
