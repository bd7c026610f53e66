"""Tests for challenge points, ranks and leaderboards."""
import asyncio
import uuid

import pytest
from sqlalchemy import select

from quizduel.config import get_settings
from quizduel.models.player_points import PlayerPoints, PointsEvent
from quizduel.services.leaderboard_service import (
    ACTIVITY_DRAW,
    ACTIVITY_LOSS,
    ACTIVITY_WIN,
    LeaderboardService,
    calculate_award,
    calculate_performance_bonus,
)
from quizduel.services.result_service import ResultService
from quizduel.services.scoring_service import score_submission
from quizduel.services.winner_resolver import resolve_winner

from conftest import make_answers

settings = get_settings()


async def _result(db_session, challenge, correct_one, correct_two, time_one=30_000, time_two=30_000):
    one = score_submission(make_answers(challenge, correct_one), challenge.questions)
    two = score_submission(make_answers(challenge, correct_two), challenge.questions)
    decision = resolve_winner(challenge.player_one_id, challenge.player_two_id, one, two, time_one, time_two)
    result = await ResultService(db_session).persist_result(
        challenge_id=challenge.challenge_id,
        player_one_id=challenge.player_one_id,
        player_two_id=challenge.player_two_id,
        player_one=one,
        player_two=two,
        decision=decision,
    )
    await db_session.commit()
    return result


async def _total(db_session, player_id) -> int:
    return await db_session.scalar(
        select(PlayerPoints.total_points)
        .where(PlayerPoints.player_id == player_id)
        .execution_options(populate_existing=True)
    )


@pytest.mark.parametrize(
    "percentage,bonus",
    [(100, 20), (95, 15), (90, 15), (85, 10), (72, 5), (69, 0), (0, 0)],
)
def test_performance_bonus_tiers(percentage, bonus):
    assert calculate_performance_bonus(percentage) == bonus


def test_award_per_outcome():
    assert calculate_award("won", 100) == (settings.points_win + 20, ACTIVITY_WIN)
    assert calculate_award("lost", 40) == (settings.points_lose, ACTIVITY_LOSS)
    assert calculate_award("draw", 80) == (settings.points_draw + 10, ACTIVITY_DRAW)


@pytest.mark.asyncio
async def test_apply_challenge_awards_credits_both_players(db_session, player_factory, challenge_factory):
    p1 = await player_factory()
    p2 = await player_factory()
    challenge = await challenge_factory(p1, p2)
    result = await _result(db_session, challenge, 4, 2)

    awarded = await LeaderboardService(db_session).apply_challenge_awards(result, course_id="bio-101")

    assert awarded == {
        p1.player_id: settings.points_win + 10,
        p2.player_id: settings.points_lose,
    }
    assert await _total(db_session, p1.player_id) == settings.points_win + 10
    assert await _total(db_session, p2.player_id) == settings.points_lose

    events = (await db_session.execute(
        select(PointsEvent).where(PointsEvent.reference_id == challenge.challenge_id)
    )).scalars().all()
    assert {event.activity for event in events} == {ACTIVITY_WIN, ACTIVITY_LOSS}
    assert all(event.course_id == "bio-101" for event in events)


@pytest.mark.asyncio
async def test_rerun_awards_nothing_new(db_session, player_factory, challenge_factory):
    p1 = await player_factory()
    p2 = await player_factory()
    challenge = await challenge_factory(p1, p2)
    result = await _result(db_session, challenge, 3, 3)
    service = LeaderboardService(db_session)

    first = await service.apply_challenge_awards(result)
    second = await service.apply_challenge_awards(result)

    assert set(first) == {p1.player_id, p2.player_id}
    assert second == {}
    assert await _total(db_session, p1.player_id) == settings.points_draw


@pytest.mark.asyncio
async def test_points_accumulate_across_challenges(db_session, player_factory, challenge_factory):
    p1 = await player_factory()
    p2 = await player_factory()
    service = LeaderboardService(db_session)

    first = await challenge_factory(p1, p2)
    await service.apply_challenge_awards(await _result(db_session, first, 5, 0))
    second = await challenge_factory(p1, p2)
    await service.apply_challenge_awards(await _result(db_session, second, 0, 5))

    expected = settings.points_win + 20 + settings.points_lose
    assert await _total(db_session, p1.player_id) == expected
    assert await _total(db_session, p2.player_id) == expected


@pytest.mark.asyncio
async def test_ranks_follow_total_points(db_session, player_factory, challenge_factory):
    p1 = await player_factory()
    p2 = await player_factory()
    challenge = await challenge_factory(p1, p2)
    await LeaderboardService(db_session).apply_challenge_awards(await _result(db_session, challenge, 1, 5))

    rows = (await db_session.execute(
        select(PlayerPoints)
        .where(PlayerPoints.player_id.in_([p1.player_id, p2.player_id]))
        .execution_options(populate_existing=True)
    )).scalars().all()
    ranks = {row.player_id: row.rank for row in rows}

    assert ranks[p2.player_id] < ranks[p1.player_id]

    all_ranks = (await db_session.execute(select(PlayerPoints.rank))).scalars().all()
    assert sorted(all_ranks) == list(range(1, len(all_ranks) + 1))


@pytest.mark.asyncio
async def test_global_leaderboard_is_ordered(db_session, player_factory, challenge_factory):
    p1 = await player_factory()
    p2 = await player_factory()
    challenge = await challenge_factory(p1, p2)
    await LeaderboardService(db_session).apply_challenge_awards(await _result(db_session, challenge, 5, 4))

    entries = await LeaderboardService(db_session).get_global_leaderboard(limit=100)

    totals = [entry["total_points"] for entry in entries]
    assert totals == sorted(totals, reverse=True)
    assert [entry["rank"] for entry in entries] == sorted(entry["rank"] for entry in entries)


@pytest.mark.asyncio
async def test_course_leaderboard_only_counts_that_course(db_session, player_factory, challenge_factory):
    course_id = f"course-{uuid.uuid4().hex[:8]}"
    p1 = await player_factory()
    p2 = await player_factory()
    p3 = await player_factory()
    service = LeaderboardService(db_session)

    in_course = await challenge_factory(p1, p2, course_id=course_id)
    await service.apply_challenge_awards(await _result(db_session, in_course, 5, 2), course_id=course_id)
    elsewhere = await challenge_factory(p3, p2)
    await service.apply_challenge_awards(await _result(db_session, elsewhere, 5, 0), course_id="other")

    entries = await service.get_course_leaderboard(course_id)

    assert [entry["player_id"] for entry in entries] == [p1.player_id, p2.player_id]
    assert entries[0]["total_points"] == settings.points_win + 20
    assert entries[1]["total_points"] == settings.points_lose
    assert [entry["rank"] for entry in entries] == [1, 2]


@pytest.mark.asyncio
async def test_overlapping_award_runs_credit_each_player_once(
    db_session, session_factory, player_factory, challenge_factory
):
    p1 = await player_factory()
    p2 = await player_factory()
    challenge = await challenge_factory(p1, p2)
    result = await _result(db_session, challenge, 3, 1)

    async def award():
        async with session_factory() as session:
            return await LeaderboardService(session).apply_challenge_awards(result)

    first, second = await asyncio.gather(award(), award())

    assert sorted([len(first), len(second)]) == [0, 2]
    assert await _total(db_session, p1.player_id) == settings.points_win
    assert await _total(db_session, p2.player_id) == settings.points_lose
    events = (await db_session.execute(
        select(PointsEvent).where(PointsEvent.reference_id == challenge.challenge_id)
    )).scalars().all()
    assert len(events) == 2
