"""Tests for challenge scoring and percentage rounding."""
import pytest

from quizduel.services.scoring_service import (
    QUESTION_NOT_FOUND,
    calculate_percentage,
    score_submission,
)

from conftest import make_questions


@pytest.mark.parametrize(
    "score,total,expected",
    [
        (0, 5, 0),
        (5, 5, 100),
        (1, 8, 13),  # 12.5 rounds up
        (2, 3, 67),
        (1, 3, 33),
        (3, 0, 0),
    ],
)
def test_calculate_percentage(score, total, expected):
    assert calculate_percentage(score, total) == expected


def test_score_submission_counts_correct_answers():
    questions = make_questions(4)
    answers = [
        {"question_id": "q1", "selected_option": "a"},
        {"question_id": "q2", "selected_option": "b"},
        {"question_id": "q3", "selected_option": "a"},
        {"question_id": "q4", "selected_option": "c"},
    ]

    breakdown = score_submission(answers, questions)

    assert breakdown.score == 2
    assert breakdown.total_questions == 4
    assert breakdown.percentage == 50
    assert [d.is_correct for d in breakdown.detailed_results] == [True, False, True, False]
    assert all(d.correct_option == "a" for d in breakdown.detailed_results)
    assert not breakdown.is_perfect


def test_score_submission_preserves_answer_order():
    questions = make_questions(3)
    answers = [
        {"question_id": "q3", "selected_option": "a"},
        {"question_id": "q1", "selected_option": "a"},
        {"question_id": "q2", "selected_option": "a"},
    ]

    breakdown = score_submission(answers, questions)

    assert [d.question_id for d in breakdown.detailed_results] == ["q3", "q1", "q2"]
    assert breakdown.is_perfect


def test_unknown_question_is_wrong_and_annotated():
    questions = make_questions(2)
    answers = [
        {"question_id": "q1", "selected_option": "a"},
        {"question_id": "ghost", "selected_option": "a"},
    ]

    breakdown = score_submission(answers, questions)

    assert breakdown.score == 1
    missing = breakdown.detailed_results[1]
    assert missing.is_correct is False
    assert missing.correct_option is None
    assert missing.note == QUESTION_NOT_FOUND


def test_total_questions_comes_from_the_challenge_not_the_answers():
    questions = make_questions(10)
    answers = [{"question_id": "q1", "selected_option": "a"}]

    breakdown = score_submission(answers, questions)

    assert breakdown.total_questions == 10
    assert breakdown.percentage == 10


def test_detail_dicts_are_plain_mappings():
    breakdown = score_submission([{"question_id": "q1", "selected_option": "b"}], make_questions(1))

    assert breakdown.detail_dicts() == [{
        "question_id": "q1",
        "selected_option": "b",
        "correct_option": "a",
        "is_correct": False,
        "note": None,
    }]
