"""Tests for the evaluation queue worker."""
import uuid
from datetime import datetime, timedelta

import pytest

from quizduel.config import get_settings
from quizduel.services.evaluation_service import EvaluationService
from quizduel.services.submission_service import SubmissionService
from quizduel.tasks.challenge_maintenance import run_challenge_maintenance
from quizduel.tasks.evaluation_worker import enqueue_evaluation, process_next_evaluation
from quizduel.utils.datetime_helpers import isoformat_utc, utc_now
from quizduel.utils.exceptions import ChallengeNotEvaluableError, EvaluationNotReadyError
from quizduel.utils.queue_client import QueueClient

from conftest import make_answers

settings = get_settings()
QUEUE = settings.evaluation_queue_name


class ScriptedEvaluationService:
    """Evaluation double that raises a prepared error or records the call."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.evaluated = []

    async def evaluate_challenge(self, challenge_id, method="automatic"):
        self.evaluated.append(challenge_id)
        if self.error is not None:
            raise self.error


@pytest.mark.asyncio
async def test_empty_queue_returns_false():
    assert await process_next_evaluation(service=ScriptedEvaluationService(), queue=QueueClient()) is False


@pytest.mark.asyncio
async def test_job_is_evaluated_and_acknowledged():
    queue = QueueClient()
    challenge_id = uuid.uuid4()
    enqueue_evaluation(challenge_id, queue=queue)
    service = ScriptedEvaluationService()

    assert await process_next_evaluation(service=service, queue=queue) is True

    assert service.evaluated == [challenge_id]
    assert queue.length(QUEUE) == 0
    assert queue.length(queue.processing_name(QUEUE)) == 0


@pytest.mark.asyncio
async def test_not_ready_job_is_requeued_with_next_attempt():
    queue = QueueClient()
    challenge_id = uuid.uuid4()
    enqueue_evaluation(challenge_id, queue=queue)

    await process_next_evaluation(service=ScriptedEvaluationService(EvaluationNotReadyError()), queue=queue)

    job = queue.peek(QUEUE)
    assert job["challenge_id"] == str(challenge_id)
    assert job["attempt"] == 2
    assert queue.length(queue.processing_name(QUEUE)) == 0
    assert "not_before" in job


@pytest.mark.asyncio
async def test_requeued_job_waits_out_its_backoff():
    queue = QueueClient()
    challenge_id = uuid.uuid4()
    enqueue_evaluation(challenge_id, queue=queue)
    not_ready = ScriptedEvaluationService(EvaluationNotReadyError())
    await process_next_evaluation(service=not_ready, queue=queue)

    # The retry is not due yet, so it is put back without running
    assert await process_next_evaluation(service=not_ready, queue=queue) is False
    assert not_ready.evaluated == [challenge_id]
    assert queue.length(QUEUE) == 1
    assert queue.length(queue.processing_name(QUEUE)) == 0

    job = queue.reserve(QUEUE)
    queue.ack(QUEUE, job)
    job["not_before"] = isoformat_utc(utc_now() - timedelta(seconds=1))
    queue.push(QUEUE, job)
    ready = ScriptedEvaluationService()

    assert await process_next_evaluation(service=ready, queue=queue) is True
    assert ready.evaluated == [challenge_id]
    assert queue.length(QUEUE) == 0


@pytest.mark.asyncio
async def test_retry_delay_grows_with_attempt(monkeypatch):
    monkeypatch.setattr(settings, "evaluation_retry_backoff_seconds", 10.0)
    queue = QueueClient()
    enqueue_evaluation(uuid.uuid4(), attempt=2, queue=queue)

    await process_next_evaluation(service=ScriptedEvaluationService(EvaluationNotReadyError()), queue=queue)

    job = queue.peek(QUEUE)
    assert job["attempt"] == 3
    delay = datetime.fromisoformat(job["not_before"]) - datetime.fromisoformat(job["enqueued_at"])
    assert delay == timedelta(seconds=20)


@pytest.mark.asyncio
async def test_not_ready_job_dropped_after_max_attempts():
    queue = QueueClient()
    enqueue_evaluation(uuid.uuid4(), attempt=settings.evaluation_max_attempts, queue=queue)

    await process_next_evaluation(service=ScriptedEvaluationService(EvaluationNotReadyError()), queue=queue)

    assert queue.length(QUEUE) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ChallengeNotEvaluableError(), RuntimeError("database went away")])
async def test_failed_jobs_are_acknowledged_not_retried(error):
    queue = QueueClient()
    enqueue_evaluation(uuid.uuid4(), queue=queue)

    assert await process_next_evaluation(service=ScriptedEvaluationService(error), queue=queue) is True

    assert queue.length(QUEUE) == 0
    assert queue.length(queue.processing_name(QUEUE)) == 0


@pytest.mark.asyncio
async def test_malformed_job_is_discarded():
    queue = QueueClient()
    queue.push(QUEUE, {"challenge_id": "not-a-uuid", "attempt": 1})
    service = ScriptedEvaluationService()

    assert await process_next_evaluation(service=service, queue=queue) is True

    assert service.evaluated == []
    assert queue.length(QUEUE) == 0


@pytest.mark.asyncio
async def test_second_submission_is_evaluated_by_the_worker(db_session, session_factory, player_factory, challenge_factory):
    from quizduel.utils import queue_client

    p1 = await player_factory()
    p2 = await player_factory()
    challenge = await challenge_factory(p1, p2)
    submissions = SubmissionService(db_session)
    await submissions.submit_answers(challenge.challenge_id, p1.player_id, make_answers(challenge, 2), 20_000)
    await submissions.submit_answers(challenge.challenge_id, p2.player_id, make_answers(challenge, 5), 25_000)

    assert await process_next_evaluation(session_factory=session_factory, queue=queue_client) is True

    result = await EvaluationService(session_factory).get_result(challenge.challenge_id)
    assert result is not None
    assert result.winner_id == p2.player_id


@pytest.mark.asyncio
async def test_run_challenge_maintenance_reports_count(session_factory):
    expired = await run_challenge_maintenance(session_factory)

    assert expired >= 0
