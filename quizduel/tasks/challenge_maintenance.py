"""Background tasks for challenge maintenance."""
import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from quizduel.config import get_settings
from quizduel.database import AsyncSessionLocal
from quizduel.services.challenge_service import ChallengeService

logger = logging.getLogger(__name__)
settings = get_settings()

# Track if maintenance task is running to prevent concurrent executions
_maintenance_task_running = False


async def run_challenge_maintenance(session_factory: Optional[async_sessionmaker] = None) -> int:
    """Expire challenges that passed their deadline while waiting for a submission.

    Returns:
        Number of challenges expired by this run
    """
    global _maintenance_task_running

    if _maintenance_task_running:
        logger.debug("Challenge maintenance already running, skipping")
        return 0

    _maintenance_task_running = True
    try:
        async with (session_factory or AsyncSessionLocal)() as db:
            expired = await ChallengeService(db).expire_stale_challenges()
            logger.info(f"Challenge maintenance completed: {expired} challenges expired")
            return expired
    except Exception as e:
        logger.error(f"Error during challenge maintenance: {e}", exc_info=True)
        return 0
    finally:
        _maintenance_task_running = False


async def schedule_periodic_maintenance(interval_minutes: Optional[int] = None) -> None:
    """Run challenge maintenance periodically.

    Args:
        interval_minutes: Minutes between runs (defaults to the expiry sweep setting)
    """
    interval_minutes = interval_minutes or settings.expiry_sweep_interval_minutes
    logger.info(f"Starting challenge maintenance scheduler (interval: {interval_minutes}m)")

    while True:
        try:
            await run_challenge_maintenance()
            await asyncio.sleep(interval_minutes * 60)
        except asyncio.CancelledError:
            logger.info("Challenge maintenance scheduler cancelled")
            break
        except Exception as e:
            logger.error(f"Unexpected error in maintenance scheduler: {e}", exc_info=True)
            await asyncio.sleep(60)
