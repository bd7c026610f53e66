"""Pytest configuration and fixtures."""
import os
import uuid
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

BASE_DIR = Path(__file__).resolve().parent.parent
TEST_DB_PATH = BASE_DIR / "test.db"

# Ensure the application uses a dedicated SQLite database during tests
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
# In-memory queue and rate limiter, simulated token service, logged emails
os.environ["REDIS_URL"] = ""
os.environ["TOKEN_SERVICE_URL"] = ""
os.environ["EMAIL_API_URL"] = ""
# API tests hit the challenge endpoints far more often than a real client would
os.environ["CHALLENGE_RATE_LIMIT"] = "1000"

from quizduel.config import get_settings
from quizduel.database import Base  # noqa: F401

settings = get_settings()


def make_questions(count: int = 5, prefix: str = "q") -> list[dict]:
    """Question copies whose correct answer is always option ``a``."""
    return [
        {
            "question_id": f"{prefix}{index}",
            "text": f"Question {index}?",
            "options": [
                {"option_id": "a", "text": "Right"},
                {"option_id": "b", "text": "Wrong"},
                {"option_id": "c", "text": "Also wrong"},
            ],
            "correct_option_id": "a",
        }
        for index in range(1, count + 1)
    ]


def make_answers(challenge, correct: int) -> list[dict]:
    """Answers for every question of a challenge, the first ``correct`` of them right."""
    return [
        {"question_id": question_id, "selected_option": "a" if index < correct else "b"}
        for index, question_id in enumerate(challenge.question_ids())
    ]


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    """Apply database migrations against the test database."""
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()

    alembic_cfg = AlembicConfig(str(BASE_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(BASE_DIR / "quizduel" / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    command.upgrade(alembic_cfg, "head")

    yield

    if TEST_DB_PATH.exists():
        try:
            TEST_DB_PATH.unlink()
        except PermissionError:
            # On Windows, database might still be in use
            pass


@pytest.fixture(autouse=True)
def clear_evaluation_queue():
    """Every test starts with an empty evaluation queue."""
    from quizduel.utils import queue_client

    queue_client.clear(settings.evaluation_queue_name)
    yield
    queue_client.clear(settings.evaluation_queue_name)


@pytest.fixture
async def test_engine():
    """Create test database engine using the same database as migrations."""
    engine = create_async_engine(settings.database_url, echo=False, pool_pre_ping=True)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory handed to services that open their own units of work."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()
        await session.close()


@pytest.fixture
async def test_app(session_factory):
    """Create test app with database override."""
    from quizduel.main import app
    from quizduel.database import get_db, get_session_factory

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def player_factory(db_session):
    """Factory for creating test players."""
    from quizduel.models.player import Player

    async def _create_player(
        username: str | None = None,
        email: str | None = None,
        is_admin: bool = False,
        payout_address: str | None = None,
    ) -> Player:
        # Use UUID to ensure unique usernames/emails across all tests
        unique_id = uuid.uuid4().hex[:8]
        player = Player(
            player_id=uuid.uuid4(),
            username=username or f"player{unique_id}",
            email=email or f"player{unique_id}@example.com",
            is_admin=is_admin,
            payout_address=payout_address,
        )
        db_session.add(player)
        await db_session.commit()
        return player

    return _create_player


@pytest.fixture
async def challenge_factory(db_session):
    """Factory for creating pending challenges through the challenge service."""
    from quizduel.services.challenge_service import ChallengeService

    async def _create_challenge(
        player_one,
        player_two,
        question_count: int = 5,
        course_id: str | None = None,
        time_limit_seconds: int | None = None,
    ):
        return await ChallengeService(db_session).create_challenge(
            player_one_id=player_one.player_id,
            player_two_id=player_two.player_id,
            questions=make_questions(question_count),
            course_id=course_id,
            time_limit_seconds=time_limit_seconds,
        )

    return _create_challenge


@pytest.fixture
def auth_headers():
    """Bearer headers for a player."""
    from quizduel.dependencies import create_access_token

    def _headers(player) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(player.player_id)}"}

    return _headers
