"""Challenges API router."""
import logging
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quizduel.database import get_db, get_session_factory
from quizduel.dependencies import (
    audit_challenge_access,
    client_ip,
    get_admin_player,
    get_current_player,
    parse_challenge_id,
)
from quizduel.models.challenge_result import ChallengeResult
from quizduel.models.player import Player
from quizduel.schemas.challenge import (
    AnswerDetailResponse,
    ChallengeHistoryEntry,
    ChallengeHistoryResponse,
    ChallengeResponse,
    ChallengeResultRecord,
    ChallengeResultResponse,
    CreateChallengeRequest,
    EvaluateChallengeResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    Pagination,
    PlayerResultSummary,
    RetrySideEffectsResponse,
    SubmitAnswersRequest,
    SubmitAnswersResponse,
)
from quizduel.services.challenge_service import ChallengeService
from quizduel.services.evaluation_service import EvaluationService
from quizduel.services.leaderboard_service import DEFAULT_LEADERBOARD_LIMIT, LeaderboardService
from quizduel.services.result_service import verify_integrity
from quizduel.services.submission_service import SubmissionService
from quizduel.utils.exceptions import (
    AlreadySubmittedError,
    ChallengeCompletedError,
    ChallengeCreationError,
    ChallengeError,
    ChallengeExpiredError,
    ChallengeNotEvaluableError,
    ChallengeNotFoundError,
    EvaluationNotReadyError,
    InvalidChallengeIdError,
    NotParticipantError,
    ResultNotReadyError,
    SubmissionValidationError,
    TimeLimitExceededError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS_CODES: dict[type[ChallengeError], int] = {
    InvalidChallengeIdError: 400,
    ChallengeCompletedError: 400,
    ChallengeExpiredError: 400,
    TimeLimitExceededError: 400,
    AlreadySubmittedError: 400,
    SubmissionValidationError: 400,
    ChallengeCreationError: 400,
    NotParticipantError: 403,
    ChallengeNotFoundError: 404,
    ResultNotReadyError: 404,
    EvaluationNotReadyError: 409,
    ChallengeNotEvaluableError: 409,
}


def _http_error(exc: ChallengeError) -> HTTPException:
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    return HTTPException(status_code=status_code, detail=exc.code)


def _result_record(result: ChallengeResult) -> ChallengeResultRecord:
    return ChallengeResultRecord.model_validate(result)


@router.post("", response_model=ChallengeResponse, status_code=201)
async def create_challenge(
    request: CreateChallengeRequest,
    admin: Player = Depends(get_admin_player),
    db: AsyncSession = Depends(get_db),
):
    """Create a challenge between two players (admin only)."""
    try:
        challenge = await ChallengeService(db).create_challenge(
            player_one_id=request.player_one_id,
            player_two_id=request.player_two_id,
            questions=[question.model_dump() for question in request.questions],
            quiz_id=request.quiz_id,
            course_id=request.course_id,
            module_id=request.module_id,
            time_limit_seconds=request.time_limit_seconds,
        )
    except ChallengeError as e:
        raise _http_error(e)

    logger.info(f"[API /challenges] Challenge {challenge.challenge_id} created by admin {admin.player_id}")
    return ChallengeResponse(
        challenge_id=challenge.challenge_id,
        player_one_id=challenge.player_one_id,
        player_two_id=challenge.player_two_id,
        quiz_id=challenge.quiz_id,
        course_id=challenge.course_id,
        module_id=challenge.module_id,
        status=challenge.status,
        time_limit_seconds=challenge.time_limit_seconds,
        question_count=len(challenge.questions),
        created_at=challenge.created_at,
        expires_at=challenge.expires_at,
    )


@router.get("/history", response_model=ChallengeHistoryResponse)
async def get_challenge_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Completed challenges for the current player, most recent first."""
    entries, pagination = await ChallengeService(db).get_history(player.player_id, page, limit)
    return ChallengeHistoryResponse(
        history=[ChallengeHistoryEntry(**entry) for entry in entries],
        pagination=Pagination(**pagination),
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    type: Literal["global", "course"] = Query("global"),
    course_id: Optional[str] = Query(None, max_length=64),
    limit: int = Query(DEFAULT_LEADERBOARD_LIMIT, ge=1, le=100),
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Global points leaderboard, or a single course's when type=course."""
    leaderboard_service = LeaderboardService(db)
    if type == "course":
        if not course_id:
            raise HTTPException(status_code=400, detail="course_id_required")
        entries = await leaderboard_service.get_course_leaderboard(course_id, limit)
    else:
        entries = await leaderboard_service.get_global_leaderboard(limit)

    return LeaderboardResponse(
        leaderboard=[LeaderboardEntry(**entry) for entry in entries],
        type=type,
        course_id=course_id if type == "course" else None,
    )


@router.post("/{challenge_id}/submit", response_model=SubmitAnswersResponse)
async def submit_answers(
    request: Request,
    submission: SubmitAnswersRequest,
    challenge_id: UUID = Depends(parse_challenge_id),
    player: Player = Depends(audit_challenge_access),
    db: AsyncSession = Depends(get_db),
):
    """Submit a player's answers and elapsed time (milliseconds)."""
    try:
        receipt = await SubmissionService(db).submit_answers(
            challenge_id=challenge_id,
            player_id=player.player_id,
            answers=[answer.model_dump() for answer in submission.answers],
            total_time_ms=submission.total_time,
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
    except ChallengeError as e:
        logger.info(f"[API /challenges/submit] Rejected for {player.player_id} on {challenge_id}: {e.code}")
        raise _http_error(e)

    return SubmitAnswersResponse(
        message=receipt.message,
        both_players_submitted=receipt.both_players_submitted,
        submission_id=receipt.submission_id,
    )


@router.get("/{challenge_id}/result", response_model=ChallengeResultResponse)
async def get_challenge_result(
    challenge_id: UUID = Depends(parse_challenge_id),
    player: Player = Depends(audit_challenge_access),
    db: AsyncSession = Depends(get_db),
):
    """Result of a challenge, visible to its two players."""
    try:
        challenge, result, usernames = await ChallengeService(db).get_result_for_player(
            challenge_id, player.player_id
        )
    except ChallengeError as e:
        raise _http_error(e)

    is_player_one = player.player_id == result.player_one_id
    details = result.detailed_results.get("player_one" if is_player_one else "player_two", [])

    def _summary(player_id: UUID) -> PlayerResultSummary:
        return PlayerResultSummary(
            player_id=player_id,
            username=usernames.get(player_id),
            score=result.score_for(player_id),
            percentage=result.percentage_for(player_id),
            time_ms=result.time_for(player_id),
        )

    return ChallengeResultResponse(
        challenge_id=challenge_id,
        player_one=_summary(result.player_one_id),
        player_two=_summary(result.player_two_id),
        total_questions=result.total_questions,
        winner_id=result.winner_id,
        is_winner=result.winner_id == player.player_id,
        is_draw=result.is_draw,
        winner_reason=result.winner_reason,
        your_answers=[AnswerDetailResponse(**detail) for detail in details],
        evaluated_at=result.evaluated_at,
        completed_at=challenge.completed_at,
        integrity_verified=verify_integrity(result),
    )


@router.post("/{challenge_id}/evaluate", response_model=EvaluateChallengeResponse)
async def evaluate_challenge(
    challenge_id: UUID = Depends(parse_challenge_id),
    admin: Player = Depends(get_admin_player),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Run evaluation synchronously (admin only)."""
    logger.info(f"[API /challenges/evaluate] Manual evaluation of {challenge_id} by admin {admin.player_id}")
    try:
        result = await EvaluationService(session_factory=session_factory).evaluate_challenge(
            challenge_id, method="manual"
        )
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"[API /challenges/evaluate] Evaluation of {challenge_id} failed: {e}")
        raise HTTPException(status_code=500, detail="evaluation_failed")

    return EvaluateChallengeResponse(
        message="Challenge evaluation completed",
        result=_result_record(result),
    )


@router.post("/{challenge_id}/retry-side-effects", response_model=RetrySideEffectsResponse)
async def retry_side_effects(
    challenge_id: UUID = Depends(parse_challenge_id),
    admin: Player = Depends(get_admin_player),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Re-run leaderboard, reward and notification side effects that did not finish (admin only)."""
    try:
        result, outcomes = await EvaluationService(session_factory=session_factory).retry_side_effects(
            challenge_id
        )
    except ChallengeError as e:
        raise _http_error(e)

    logger.info(f"[API /challenges/retry-side-effects] {challenge_id} by admin {admin.player_id}: {sorted(outcomes)}")
    return RetrySideEffectsResponse(
        message="Side effects retried",
        side_effects_run=sorted(outcomes),
        result=_result_record(result),
    )
