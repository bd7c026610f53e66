"""Tests for head-to-head winner resolution."""
import uuid

from quizduel.services.scoring_service import ScoreBreakdown, calculate_percentage
from quizduel.services.winner_resolver import (
    REASON_FASTER_TIME,
    REASON_HIGHER_SCORE,
    REASON_PERFECT_TIE,
    resolve_winner,
)

P1 = uuid.uuid4()
P2 = uuid.uuid4()


def _score(correct: int, total: int = 10) -> ScoreBreakdown:
    return ScoreBreakdown(score=correct, total_questions=total, percentage=calculate_percentage(correct, total))


def test_higher_score_wins_even_when_slower():
    decision = resolve_winner(P1, P2, _score(8), _score(7), 90_000, 30_000)

    assert decision.winner_id == P1
    assert decision.loser_id == P2
    assert decision.is_draw is False
    assert decision.winner_reason == REASON_HIGHER_SCORE
    assert decision.score_difference == 1


def test_player_two_can_win_on_score():
    decision = resolve_winner(P1, P2, _score(3), _score(4), 10_000, 50_000)

    assert decision.winner_id == P2
    assert decision.outcome_for(P2) == "won"
    assert decision.outcome_for(P1) == "lost"


def test_equal_scores_fall_back_to_time():
    decision = resolve_winner(P1, P2, _score(5), _score(5), 120_000, 95_000)

    assert decision.winner_id == P2
    assert decision.winner_reason == REASON_FASTER_TIME
    assert decision.time_difference_ms == 25_000


def test_same_score_and_time_is_a_draw():
    decision = resolve_winner(P1, P2, _score(5), _score(5), 60_000, 60_000)

    assert decision.is_draw is True
    assert decision.winner_id is None
    assert decision.loser_id is None
    assert decision.winner_reason == REASON_PERFECT_TIE
    assert decision.outcome_for(P1) == "draw"


def test_decision_carries_raw_scores_not_percentages():
    decision = resolve_winner(P1, P2, _score(2, total=5), _score(5, total=5), 1_000, 2_000)

    assert decision.winner_id == P2
    assert decision.player_one_score == 2
    assert decision.player_two_score == 5
