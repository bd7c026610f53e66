"""Challenge-related Pydantic schemas."""
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from quizduel.schemas.base import BaseSchema


class QuestionOption(BaseModel):
    option_id: str = Field(..., min_length=1, max_length=64)
    text: str = Field(..., min_length=1)


class ChallengeQuestion(BaseModel):
    """Question copied onto a challenge at creation."""
    question_id: str = Field(..., min_length=1, max_length=64)
    text: str = Field(..., min_length=1)
    options: list[QuestionOption] = Field(..., min_length=2)
    correct_option_id: str = Field(..., min_length=1, max_length=64)


class CreateChallengeRequest(BaseModel):
    """Create challenge request (admin)."""
    player_one_id: UUID
    player_two_id: UUID
    questions: list[ChallengeQuestion] = Field(..., min_length=1)
    quiz_id: Optional[str] = Field(None, max_length=64)
    course_id: Optional[str] = Field(None, max_length=64)
    module_id: Optional[str] = Field(None, max_length=64)
    time_limit_seconds: Optional[int] = Field(None, ge=10, le=3600)


class ChallengeResponse(BaseSchema):
    """Challenge summary without answer keys."""
    challenge_id: UUID
    player_one_id: UUID
    player_two_id: UUID
    quiz_id: Optional[str]
    course_id: Optional[str]
    module_id: Optional[str]
    status: str
    time_limit_seconds: int
    question_count: int
    created_at: datetime
    expires_at: Optional[datetime]


class SubmittedAnswer(BaseModel):
    question_id: str = Field(..., min_length=1, max_length=64)
    selected_option: str = Field(..., min_length=1, max_length=64)


class SubmitAnswersRequest(BaseModel):
    """Submit answers request. total_time is the elapsed time in milliseconds."""
    answers: list[SubmittedAnswer] = Field(..., min_length=1)
    total_time: int = Field(..., ge=0)


class SubmitAnswersResponse(BaseModel):
    message: str
    both_players_submitted: bool
    submission_id: UUID


class PlayerResultSummary(BaseModel):
    player_id: UUID
    username: Optional[str]
    score: int
    percentage: int
    time_ms: int


class AnswerDetailResponse(BaseModel):
    question_id: str
    selected_option: str
    correct_option: Optional[str]
    is_correct: bool
    note: Optional[str] = None


class ChallengeResultResponse(BaseSchema):
    """A participant's view of a challenge result."""
    challenge_id: UUID
    player_one: PlayerResultSummary
    player_two: PlayerResultSummary
    total_questions: int
    winner_id: Optional[UUID]
    is_winner: bool
    is_draw: bool
    winner_reason: str
    your_answers: list[AnswerDetailResponse]
    evaluated_at: datetime
    completed_at: Optional[datetime]
    integrity_verified: bool


class ChallengeHistoryEntry(BaseSchema):
    challenge_id: UUID
    opponent_id: UUID
    opponent: Optional[str]
    player_score: int
    opponent_score: int
    total_questions: int
    outcome: Literal["won", "lost", "draw"]
    course_id: Optional[str]
    completed_at: Optional[datetime]


class Pagination(BaseModel):
    page: int
    limit: int
    total_pages: int
    total_challenges: int


class ChallengeHistoryResponse(BaseSchema):
    history: list[ChallengeHistoryEntry]
    pagination: Pagination


class LeaderboardEntry(BaseModel):
    player_id: UUID
    username: str
    total_points: int
    rank: int


class LeaderboardResponse(BaseModel):
    leaderboard: list[LeaderboardEntry]
    type: Literal["global", "course"]
    course_id: Optional[str] = None


class ChallengeResultRecord(BaseSchema):
    """Full stored result (admin)."""
    result_id: UUID
    challenge_id: UUID
    player_one_id: UUID
    player_two_id: UUID
    total_questions: int
    player_one_score: int
    player_two_score: int
    player_one_percentage: int
    player_two_percentage: int
    player_one_time_ms: int
    player_two_time_ms: int
    winner_id: Optional[UUID]
    is_draw: bool
    winner_reason: str
    evaluation_method: str
    evaluated_at: datetime
    integrity_hash: str
    rewards_distributed: bool
    notifications_sent: bool


class EvaluateChallengeResponse(BaseSchema):
    message: str
    result: ChallengeResultRecord


class RetrySideEffectsResponse(BaseSchema):
    message: str
    side_effects_run: list[str]
    result: ChallengeResultRecord
