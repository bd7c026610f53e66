"""Winner resolution for head-to-head challenges."""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from quizduel.services.scoring_service import ScoreBreakdown

REASON_HIGHER_SCORE = "Higher score"
REASON_FASTER_TIME = "Faster completion time (tiebreaker)"
REASON_PERFECT_TIE = "Perfect tie - same score and completion time"


@dataclass(frozen=True)
class WinnerDecision:
    """Outcome of comparing two (score, time) pairs."""
    winner_id: Optional[UUID]
    loser_id: Optional[UUID]
    is_draw: bool
    winner_reason: str
    player_one_score: int
    player_two_score: int
    player_one_time_ms: int
    player_two_time_ms: int

    @property
    def score_difference(self) -> int:
        """Player one's score minus player two's."""
        return self.player_one_score - self.player_two_score

    @property
    def time_difference_ms(self) -> int:
        """Player one's time minus player two's (negative when player one was faster)."""
        return self.player_one_time_ms - self.player_two_time_ms

    def outcome_for(self, player_id: UUID) -> str:
        if self.is_draw:
            return "draw"
        return "won" if player_id == self.winner_id else "lost"


def resolve_winner(
    player_one_id: UUID,
    player_two_id: UUID,
    player_one: ScoreBreakdown,
    player_two: ScoreBreakdown,
    player_one_time_ms: int,
    player_two_time_ms: int,
) -> WinnerDecision:
    """Decide the winner: higher score, then lower time, otherwise a draw."""
    score_one = player_one.score
    score_two = player_two.score

    winner_id: Optional[UUID] = None
    loser_id: Optional[UUID] = None

    if score_one != score_two:
        reason = REASON_HIGHER_SCORE
        if score_one > score_two:
            winner_id, loser_id = player_one_id, player_two_id
        else:
            winner_id, loser_id = player_two_id, player_one_id
    elif player_one_time_ms != player_two_time_ms:
        reason = REASON_FASTER_TIME
        if player_one_time_ms < player_two_time_ms:
            winner_id, loser_id = player_one_id, player_two_id
        else:
            winner_id, loser_id = player_two_id, player_one_id
    else:
        reason = REASON_PERFECT_TIE

    return WinnerDecision(
        winner_id=winner_id,
        loser_id=loser_id,
        is_draw=winner_id is None,
        winner_reason=reason,
        player_one_score=score_one,
        player_two_score=score_two,
        player_one_time_ms=int(player_one_time_ms),
        player_two_time_ms=int(player_two_time_ms),
    )
