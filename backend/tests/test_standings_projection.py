"""
Standings refresh outbox: finalize enqueues, the drain recomputes, failures are
recorded and retried without touching the finalized match.
"""

import pytest
from sqlmodel import Session, select

from poolplay.models.division import Division
from poolplay.models.match import Match
from poolplay.models.pool_result import PoolResult
from poolplay.models.standings_refresh import StandingsRefresh
from poolplay.services import pool_results
from poolplay.services.advancement_service import finalize_match_result
from poolplay.services.generation_coordinator import generate_pool_schedule
from poolplay.services.match_store import division_matches
from poolplay.services.pool_results import drain_standings_refreshes, refresh_pool_result
from tests.factories import add_teams


@pytest.fixture
def pool_a_matches(session: Session, division: Division):
    add_teams(session, division, 8)
    generate_pool_schedule(session, division.id)
    return [m for m in division_matches(session, division.id, stage="pool") if m.pool_key == "pool-a"]


def _finalize(session, match, winner_id=None):
    winner_id = winner_id or match.team_a_id
    return finalize_match_result(session, match.id, {"winner_team_id": winner_id, "games": [{"a": 11, "b": 4}]})


def _queue(session, division_id):
    session.expire_all()
    return session.exec(select(StandingsRefresh).where(StandingsRefresh.division_id == division_id)).all()


def _broken_refresh(*args, **kwargs):
    raise RuntimeError("standings store unavailable")


def _pool_a_rows(session, division_id):
    session.expire_all()
    result = session.get(PoolResult, f"{division_id}__pool_result__pool-a")
    return {row["team_id"]: row for row in result.rows}


def test_finalize_enqueues_one_row_per_pool(session: Session, division: Division, pool_a_matches):
    outcome = _finalize(session, pool_a_matches[0])
    _finalize(session, pool_a_matches[1])

    assert outcome["standings_refresh_queued"] is True
    queue = _queue(session, division.id)
    assert [(r.pool_key, r.trigger_match_id, r.attempts) for r in queue] == [("pool-a", pool_a_matches[1].id, 0)]


def test_drain_recomputes_and_clears_queue(session: Session, division: Division, pool_a_matches):
    match = pool_a_matches[0]
    _finalize(session, match)
    assert _pool_a_rows(session, division.id)[match.team_a_id]["wins"] == 0

    summary = drain_standings_refreshes(session.get_bind(), division.id)

    assert summary == {"processed": 1, "refreshed": 1, "skipped": 0, "failed": 0}
    assert _queue(session, division.id) == []
    rows = _pool_a_rows(session, division.id)
    assert rows[match.team_a_id]["wins"] == 1
    assert rows[match.team_a_id]["points_for"] == 11
    assert rows[match.team_b_id]["losses"] == 1


def test_current_standings_are_skipped(session: Session, division: Division, pool_a_matches):
    _finalize(session, pool_a_matches[0])
    division = session.get(Division, division.id)
    _, refreshed = refresh_pool_result(session, division, "pool-a")
    session.commit()
    assert refreshed is True

    summary = drain_standings_refreshes(session.get_bind(), division.id)

    assert summary == {"processed": 1, "refreshed": 0, "skipped": 1, "failed": 0}
    assert _queue(session, division.id) == []


def test_failed_recompute_is_recorded_and_retried(
    session: Session, division: Division, pool_a_matches, monkeypatch
):
    match = pool_a_matches[0]
    _finalize(session, match)

    monkeypatch.setattr(pool_results, "refresh_pool_result", _broken_refresh)
    summary = drain_standings_refreshes(session.get_bind(), division.id, max_attempts=2)

    assert summary["failed"] == 1
    [row] = _queue(session, division.id)
    assert row.attempts == 1
    assert row.last_error == "standings store unavailable"
    assert row.last_attempt_at is not None

    # The completion itself is untouched
    finalized = session.get(Match, match.id)
    assert (finalized.status, finalized.winner_team_id) == ("completed", match.team_a_id)

    drain_standings_refreshes(session.get_bind(), division.id, max_attempts=2)
    [row] = _queue(session, division.id)
    assert row.attempts == 2

    # Retry budget spent: the row is left alone
    assert drain_standings_refreshes(session.get_bind(), division.id, max_attempts=2)["processed"] == 0

    monkeypatch.undo()
    assert drain_standings_refreshes(session.get_bind(), division.id, max_attempts=3)["refreshed"] == 1
    assert _pool_a_rows(session, division.id)[match.team_a_id]["wins"] == 1


def test_new_result_resets_retry_budget(session: Session, division: Division, pool_a_matches, monkeypatch):
    _finalize(session, pool_a_matches[0])
    monkeypatch.setattr(pool_results, "refresh_pool_result", _broken_refresh)
    drain_standings_refreshes(session.get_bind(), division.id)
    assert _queue(session, division.id)[0].attempts == 1

    _finalize(session, pool_a_matches[1])

    [row] = _queue(session, division.id)
    assert (row.attempts, row.last_error, row.trigger_match_id) == (0, None, pool_a_matches[1].id)


def test_finalize_endpoint_drains_in_background(client, session: Session, division: Division, pool_a_matches):
    match = pool_a_matches[0]

    response = client.post(
        f"/api/matches/{match.id}/finalize", json={"winner_team_id": match.team_b_id, "games": [{"a": 3, "b": 11}]}
    )

    assert response.status_code == 200
    assert _queue(session, division.id) == []
    assert _pool_a_rows(session, division.id)[match.team_b_id]["wins"] == 1
