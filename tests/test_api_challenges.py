"""Tests for the challenge API endpoints."""
import uuid

import pytest
from httpx import AsyncClient, ASGITransport

from quizduel.config import get_settings
from quizduel.dependencies import create_access_token

from conftest import make_answers, make_questions

API_BASE_URL = "http://test"


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url=API_BASE_URL)


@pytest.fixture
async def duel(player_factory, challenge_factory):
    p1 = await player_factory()
    p2 = await player_factory()
    challenge = await challenge_factory(p1, p2, course_id=f"course-{uuid.uuid4().hex[:6]}")
    return challenge, p1, p2


def _answers_payload(challenge, correct: int, total_time: int) -> dict:
    return {"answers": make_answers(challenge, correct), "total_time": total_time}


@pytest.mark.asyncio
async def test_admin_creates_challenge(test_app, player_factory, auth_headers):
    admin = await player_factory(is_admin=True)
    p1 = await player_factory()
    p2 = await player_factory()
    payload = {
        "player_one_id": str(p1.player_id),
        "player_two_id": str(p2.player_id),
        "questions": make_questions(5),
        "course_id": "physics-2",
        "time_limit_seconds": 120,
    }

    async with _client(test_app) as client:
        response = await client.post("/challenges", json=payload, headers=auth_headers(admin))

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["question_count"] == 5
    assert data["time_limit_seconds"] == 120
    assert "correct_option_id" not in str(data)


@pytest.mark.asyncio
async def test_create_challenge_requires_admin(test_app, player_factory, auth_headers):
    p1 = await player_factory()
    p2 = await player_factory()
    payload = {
        "player_one_id": str(p1.player_id),
        "player_two_id": str(p2.player_id),
        "questions": make_questions(5),
    }

    async with _client(test_app) as client:
        response = await client.post("/challenges", json=payload, headers=auth_headers(p1))

    assert response.status_code == 403
    assert response.json()["detail"] == "admin_required"


@pytest.mark.asyncio
async def test_create_challenge_rejects_too_few_questions(test_app, player_factory, auth_headers):
    admin = await player_factory(is_admin=True)
    p1 = await player_factory()
    p2 = await player_factory()
    payload = {
        "player_one_id": str(p1.player_id),
        "player_two_id": str(p2.player_id),
        "questions": make_questions(2),
    }

    async with _client(test_app) as client:
        response = await client.post("/challenges", json=payload, headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json()["detail"] == "not_enough_questions"


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(test_app, duel):
    challenge, _, _ = duel

    async with _client(test_app) as client:
        missing = await client.get(f"/challenges/{challenge.challenge_id}/result")
        garbage = await client.get(
            f"/challenges/{challenge.challenge_id}/result",
            headers={"Authorization": "Bearer not-a-token"},
        )

    assert missing.status_code == 401
    assert missing.json()["detail"] == "missing_credentials"
    assert garbage.status_code == 401
    assert garbage.json()["detail"] == "invalid_token"


@pytest.mark.asyncio
async def test_expired_token_is_rejected(test_app, duel):
    challenge, p1, _ = duel
    token = create_access_token(p1.player_id, expires_minutes=-5)

    async with _client(test_app) as client:
        response = await client.get(
            f"/challenges/{challenge.challenge_id}/result",
            headers={"Authorization": f"Bearer {token}"},
        )

    assert response.status_code == 401
    assert response.json()["detail"] == "token_expired"


@pytest.mark.asyncio
async def test_full_challenge_flow(test_app, duel, player_factory, auth_headers):
    challenge, p1, p2 = duel
    admin = await player_factory(is_admin=True)
    base = f"/challenges/{challenge.challenge_id}"

    async with _client(test_app) as client:
        first = await client.post(f"{base}/submit", json=_answers_payload(challenge, 5, 31_000), headers=auth_headers(p1))
        assert first.status_code == 200
        assert first.json()["both_players_submitted"] is False

        pending = await client.get(f"{base}/result", headers=auth_headers(p1))
        assert pending.status_code == 404
        assert pending.json()["detail"] == "challenge_not_completed"

        second = await client.post(f"{base}/submit", json=_answers_payload(challenge, 2, 45_000), headers=auth_headers(p2))
        assert second.status_code == 200
        assert second.json()["both_players_submitted"] is True

        evaluated = await client.post(f"{base}/evaluate", headers=auth_headers(admin))
        assert evaluated.status_code == 200
        record = evaluated.json()["result"]
        assert record["winner_id"] == str(p1.player_id)
        assert record["evaluation_method"] == "manual"

        winner_view = await client.get(f"{base}/result", headers=auth_headers(p1))
        loser_view = await client.get(f"{base}/result", headers=auth_headers(p2))

        again = await client.post(f"{base}/submit", json=_answers_payload(challenge, 5, 1_000), headers=auth_headers(p2))

    assert winner_view.status_code == 200
    winner = winner_view.json()
    assert winner["is_winner"] is True
    assert winner["is_draw"] is False
    assert winner["player_one"]["score"] == 5
    assert winner["player_one"]["username"] == p1.username
    assert winner["player_two"]["percentage"] == 40
    assert winner["integrity_verified"] is True
    assert [answer["is_correct"] for answer in winner["your_answers"]] == [True] * 5

    loser = loser_view.json()
    assert loser["is_winner"] is False
    assert [answer["is_correct"] for answer in loser["your_answers"]] == [True, True, False, False, False]

    assert again.status_code == 400
    assert again.json()["detail"] == "challenge_already_completed"


@pytest.mark.asyncio
async def test_outsider_cannot_view_or_submit(test_app, duel, player_factory, auth_headers):
    challenge, _, _ = duel
    outsider = await player_factory()
    base = f"/challenges/{challenge.challenge_id}"

    async with _client(test_app) as client:
        view = await client.get(f"{base}/result", headers=auth_headers(outsider))
        submit = await client.post(f"{base}/submit", json=_answers_payload(challenge, 5, 1_000), headers=auth_headers(outsider))

    assert view.status_code == 403
    assert view.json()["detail"] == "not_authorized"
    assert submit.status_code == 403


@pytest.mark.asyncio
async def test_malformed_and_unknown_challenge_ids(test_app, player_factory, auth_headers):
    player = await player_factory()

    async with _client(test_app) as client:
        malformed = await client.get("/challenges/not-a-uuid/result", headers=auth_headers(player))
        unknown = await client.get(f"/challenges/{uuid.uuid4()}/result", headers=auth_headers(player))

    assert malformed.status_code == 400
    assert malformed.json()["detail"] == "invalid_challenge_id"
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "challenge_not_found"


@pytest.mark.asyncio
async def test_submission_validation_errors(test_app, duel, auth_headers):
    challenge, p1, _ = duel
    base = f"/challenges/{challenge.challenge_id}"
    short = {"answers": make_answers(challenge, 5)[:3], "total_time": 10_000}

    async with _client(test_app) as client:
        mismatch = await client.post(f"{base}/submit", json=short, headers=auth_headers(p1))
        negative = await client.post(
            f"{base}/submit",
            json={"answers": make_answers(challenge, 5), "total_time": -1},
            headers=auth_headers(p1),
        )
        too_slow = await client.post(
            f"{base}/submit",
            json=_answers_payload(challenge, 5, (challenge.time_limit_seconds + 60) * 1000),
            headers=auth_headers(p1),
        )

    assert mismatch.status_code == 400
    assert mismatch.json()["detail"] == "answer_count_mismatch"
    assert negative.status_code == 422
    body = negative.json()
    assert body["detail"] == "Request validation failed"
    assert body["errors"][0]["field"] == "total_time"
    assert too_slow.status_code == 400
    assert too_slow.json()["detail"] == "time_limit_exceeded"


@pytest.mark.asyncio
async def test_evaluate_before_both_submissions_conflicts(test_app, duel, player_factory, auth_headers):
    challenge, p1, _ = duel
    admin = await player_factory(is_admin=True)
    base = f"/challenges/{challenge.challenge_id}"

    async with _client(test_app) as client:
        await client.post(f"{base}/submit", json=_answers_payload(challenge, 5, 1_000), headers=auth_headers(p1))
        response = await client.post(f"{base}/evaluate", headers=auth_headers(admin))

    assert response.status_code == 409
    assert response.json()["detail"] == "evaluation_not_ready"


@pytest.mark.asyncio
async def test_history_and_leaderboards(test_app, duel, player_factory, auth_headers):
    challenge, p1, p2 = duel
    admin = await player_factory(is_admin=True)
    base = f"/challenges/{challenge.challenge_id}"

    async with _client(test_app) as client:
        await client.post(f"{base}/submit", json=_answers_payload(challenge, 3, 20_000), headers=auth_headers(p1))
        await client.post(f"{base}/submit", json=_answers_payload(challenge, 3, 20_000), headers=auth_headers(p2))
        await client.post(f"{base}/evaluate", headers=auth_headers(admin))

        history = await client.get("/challenges/history", headers=auth_headers(p2))
        course = await client.get(
            "/challenges/leaderboard",
            params={"type": "course", "course_id": challenge.course_id},
            headers=auth_headers(p1),
        )
        global_board = await client.get("/challenges/leaderboard", params={"limit": 5}, headers=auth_headers(p1))
        missing_course = await client.get("/challenges/leaderboard", params={"type": "course"}, headers=auth_headers(p1))

    assert history.status_code == 200
    entries = history.json()["history"]
    assert entries[0]["challenge_id"] == str(challenge.challenge_id)
    assert entries[0]["outcome"] == "draw"
    assert entries[0]["opponent"] == p1.username
    assert history.json()["pagination"]["total_challenges"] == 1

    assert course.status_code == 200
    board = course.json()
    assert board["type"] == "course"
    assert {entry["player_id"] for entry in board["leaderboard"]} == {str(p1.player_id), str(p2.player_id)}
    assert all(entry["total_points"] == get_settings().points_draw for entry in board["leaderboard"])

    assert global_board.status_code == 200
    assert len(global_board.json()["leaderboard"]) <= 5

    assert missing_course.status_code == 400
    assert missing_course.json()["detail"] == "course_id_required"


@pytest.mark.asyncio
async def test_retry_side_effects_endpoint(test_app, duel, player_factory, auth_headers):
    challenge, p1, p2 = duel
    admin = await player_factory(is_admin=True)
    base = f"/challenges/{challenge.challenge_id}"

    async with _client(test_app) as client:
        not_evaluated = await client.post(f"{base}/retry-side-effects", headers=auth_headers(admin))
        await client.post(f"{base}/submit", json=_answers_payload(challenge, 4, 20_000), headers=auth_headers(p1))
        await client.post(f"{base}/submit", json=_answers_payload(challenge, 1, 20_000), headers=auth_headers(p2))
        await client.post(f"{base}/evaluate", headers=auth_headers(admin))
        retried = await client.post(f"{base}/retry-side-effects", headers=auth_headers(admin))

    assert not_evaluated.status_code == 404
    assert retried.status_code == 200
    data = retried.json()
    assert data["side_effects_run"] == ["leaderboard"]
    assert data["result"]["rewards_distributed"] is True
    assert data["result"]["notifications_sent"] is True


@pytest.mark.asyncio
async def test_challenge_endpoints_are_rate_limited(monkeypatch, test_app, duel, auth_headers):
    from quizduel import dependencies

    challenge, p1, _ = duel
    monkeypatch.setattr(dependencies.settings, "challenge_rate_limit", 2)

    async with _client(test_app) as client:
        statuses = []
        for _ in range(3):
            response = await client.get(f"/challenges/{challenge.challenge_id}/result", headers=auth_headers(p1))
            statuses.append(response.status_code)

    assert statuses == [404, 404, 429]
    assert response.json()["detail"] == "rate_limit_exceeded"
    assert int(response.headers["Retry-After"]) >= 1


@pytest.mark.asyncio
async def test_health(test_app):
    async with _client(test_app) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["queue"] == "memory"
    assert data["rate_limiter"] == "memory"
