"""Background worker draining the challenge evaluation queue."""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import async_sessionmaker

from quizduel.config import get_settings
from quizduel.services.evaluation_service import EvaluationService
from quizduel.utils import queue_client
from quizduel.utils.datetime_helpers import ensure_utc, isoformat_utc, utc_now
from quizduel.utils.exceptions import ChallengeError, EvaluationNotReadyError
from quizduel.utils.queue_client import QueueClient

logger = logging.getLogger(__name__)
settings = get_settings()


def enqueue_evaluation(
    challenge_id: UUID,
    attempt: int = 1,
    queue: Optional[QueueClient] = None,
    delay_seconds: float = 0,
) -> None:
    """Queue a challenge for evaluation, optionally not before delay_seconds from now."""
    queue = queue or queue_client
    now = utc_now()
    job = {
        "challenge_id": str(challenge_id),
        "attempt": attempt,
        "enqueued_at": isoformat_utc(now),
    }
    if delay_seconds > 0:
        job["not_before"] = isoformat_utc(now + timedelta(seconds=delay_seconds))
    queue.push(settings.evaluation_queue_name, job)
    logger.info(f"Evaluation queued for challenge {challenge_id} (attempt {attempt})")


def _is_due(job: dict) -> bool:
    not_before = job.get("not_before")
    if not not_before:
        return True
    try:
        return utc_now() >= ensure_utc(datetime.fromisoformat(not_before))
    except (TypeError, ValueError):
        return True


async def process_next_evaluation(
    session_factory: Optional[async_sessionmaker] = None,
    service: Optional[EvaluationService] = None,
    queue: Optional[QueueClient] = None,
) -> bool:
    """
    Reserve one evaluation job, run it and acknowledge it.

    Jobs waiting out a retry delay go back to the end of the queue untouched.

    Returns:
        False when there was no job ready to run
    """
    queue = queue or queue_client
    queue_name = settings.evaluation_queue_name
    job = queue.reserve(queue_name)
    if job is None:
        return False
    if not _is_due(job):
        queue.push(queue_name, job)
        queue.ack(queue_name, job)
        return False

    service = service or EvaluationService(session_factory=session_factory)
    attempt = int(job.get("attempt", 1))
    try:
        challenge_id = UUID(str(job["challenge_id"]))
        await service.evaluate_challenge(challenge_id)
    except EvaluationNotReadyError:
        if attempt < settings.evaluation_max_attempts:
            delay = settings.evaluation_retry_backoff_seconds * attempt
            logger.info(
                f"Challenge {job['challenge_id']} not ready, retrying in {delay:.0f}s (attempt {attempt})"
            )
            enqueue_evaluation(job["challenge_id"], attempt + 1, queue=queue, delay_seconds=delay)
        else:
            logger.error(
                f"Challenge {job['challenge_id']} still not ready after {attempt} attempts, giving up"
            )
    except (KeyError, ValueError) as e:
        logger.error(f"Discarding malformed evaluation job {job}: {e}")
    except ChallengeError as e:
        logger.warning(f"Evaluation job for {job['challenge_id']} dropped: {e.code}")
    except Exception as e:
        # The challenge is in the error state; an admin can re-evaluate it
        logger.error(f"Evaluation job for {job.get('challenge_id')} failed: {e}", exc_info=True)
    finally:
        queue.ack(queue_name, job)

    return True


async def evaluation_worker_cycle(session_factory: Optional[async_sessionmaker] = None) -> None:
    """
    Background task that evaluates challenges as their second submission arrives.

    Jobs reserved by a previous process that never acknowledged them are
    returned to the queue before the loop starts.
    """
    queue_name = settings.evaluation_queue_name
    queue_client.restore_unacked(queue_name)
    service = EvaluationService(session_factory=session_factory)
    logger.info(f"Evaluation worker started on queue {queue_name!r} ({queue_client.backend})")

    while True:
        try:
            processed = await process_next_evaluation(service=service)
        except asyncio.CancelledError:
            logger.info("Evaluation worker cancelled")
            raise
        except Exception as e:
            logger.error(f"Evaluation worker error: {e}", exc_info=True)
            processed = False

        if not processed:
            await asyncio.sleep(settings.evaluation_poll_interval_seconds)
