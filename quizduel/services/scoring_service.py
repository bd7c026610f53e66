"""Challenge scoring.

Scores a submission against the question set stored on the challenge. The
result only depends on the persisted answers and the persisted questions.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Iterable, Mapping

QUESTION_NOT_FOUND = "Question not found"


@dataclass(frozen=True)
class AnswerDetail:
    """Per-answer scoring record."""
    question_id: str
    selected_option: str
    correct_option: str | None
    is_correct: bool
    note: str | None = None


@dataclass(frozen=True)
class ScoreBreakdown:
    """Normalized score for one submission."""
    score: int
    total_questions: int
    percentage: int
    detailed_results: list[AnswerDetail] = field(default_factory=list)

    @property
    def is_perfect(self) -> bool:
        return self.total_questions > 0 and self.score == self.total_questions

    def detail_dicts(self) -> list[dict[str, Any]]:
        return [asdict(detail) for detail in self.detailed_results]


def calculate_percentage(score: int, total_questions: int) -> int:
    """Whole-number percentage with halves rounded up (12.5 -> 13)."""
    if total_questions <= 0:
        return 0
    return int(score * 100 / total_questions + 0.5)


def score_submission(
    answers: Iterable[Mapping[str, Any]],
    questions: Iterable[Mapping[str, Any]],
) -> ScoreBreakdown:
    """Score a list of answers against the challenge questions.

    Args:
        answers: Ordered ``{question_id, selected_option}`` mappings from the submission
        questions: The challenge's question copies, each carrying ``correct_option_id``

    Returns:
        ScoreBreakdown. ``total_questions`` is the challenge's question count, not the
        number of answers, so a short submission cannot inflate its percentage.
    """
    question_list = list(questions)
    by_id = {str(question["question_id"]): question for question in question_list}

    score = 0
    details: list[AnswerDetail] = []
    for answer in answers:
        question_id = str(answer["question_id"])
        selected = str(answer["selected_option"])
        question = by_id.get(question_id)

        if question is None:
            # Unknown ids are tolerated here; rejecting them is the submission validator's job
            details.append(AnswerDetail(
                question_id=question_id,
                selected_option=selected,
                correct_option=None,
                is_correct=False,
                note=QUESTION_NOT_FOUND,
            ))
            continue

        correct_option = str(question["correct_option_id"])
        is_correct = selected == correct_option
        if is_correct:
            score += 1
        details.append(AnswerDetail(
            question_id=question_id,
            selected_option=selected,
            correct_option=correct_option,
            is_correct=is_correct,
        ))

    total_questions = len(question_list)
    return ScoreBreakdown(
        score=score,
        total_questions=total_questions,
        percentage=calculate_percentage(score, total_questions),
        detailed_results=details,
    )
