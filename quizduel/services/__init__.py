from quizduel.services.scoring_service import ScoreBreakdown, score_submission, calculate_percentage
from quizduel.services.winner_resolver import WinnerDecision, resolve_winner
from quizduel.services.result_service import ResultService, compute_integrity_hash, verify_integrity
from quizduel.services.challenge_service import ChallengeService
from quizduel.services.leaderboard_service import LeaderboardService
from quizduel.services.reward_service import RewardService, calculate_token_reward
from quizduel.services.notification_service import NotificationService
from quizduel.services.evaluation_service import EvaluationService
from quizduel.services.submission_service import SubmissionService, SubmissionReceipt

__all__ = [
    "ScoreBreakdown",
    "score_submission",
    "calculate_percentage",
    "WinnerDecision",
    "resolve_winner",
    "ResultService",
    "compute_integrity_hash",
    "verify_integrity",
    "ChallengeService",
    "LeaderboardService",
    "RewardService",
    "calculate_token_reward",
    "NotificationService",
    "EvaluationService",
    "SubmissionService",
    "SubmissionReceipt",
]
