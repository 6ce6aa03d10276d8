"""
Pool standings persistence and the standings refresh projection.

Finalizing a pool match enqueues a StandingsRefresh row in the same commit as the
result. The projector drains those rows separately, at least once, with its own
retry budget: a failing recompute is logged and retried on the next drain, and
never touches the match completion that triggered it.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from poolplay.config import STANDINGS_REFRESH_MAX_ATTEMPTS
from poolplay.errors import ConfigurationError
from poolplay.models.division import Division
from poolplay.models.match import STAGE_POOL, Match
from poolplay.models.pool_result import PoolResult
from poolplay.models.standings_refresh import StandingsRefresh
from poolplay.models.team import Team
from poolplay.services.canonical_ids import pool_result_id
from poolplay.services.pool_schedule import PoolAssignment, pools_from_assignments
from poolplay.services.pool_standings import calculate_pool_standings, contributing_watermark, is_stale
from poolplay.services.qualifiers import PoolStandings
from poolplay.utils.clock import utcnow

logger = logging.getLogger(__name__)

CALCULATION_VERSION = 1


def load_pools(session: Session, division: Division) -> List[PoolAssignment]:
    teams = session.exec(select(Team).where(Team.division_id == division.id)).all()
    return pools_from_assignments(division.pool_assignments or [], {t.id: t for t in teams})


def pool_matches_by_key(session: Session, division_id: int) -> Dict[str, List[Match]]:
    matches = session.exec(
        select(Match).where(Match.division_id == division_id, Match.stage == STAGE_POOL).order_by(Match.id)
    ).all()
    grouped: Dict[str, List[Match]] = {}
    for m in matches:
        grouped.setdefault(m.pool_key, []).append(m)
    return grouped


def compute_division_standings(
    session: Session, division: Division
) -> Tuple[List[PoolStandings], Dict[str, List[Match]]]:
    pools = load_pools(session, division)
    matches = pool_matches_by_key(session, division.id)
    standings = [
        PoolStandings(
            pool_name=pool.pool_name,
            pool_key=pool.pool_key,
            rows=calculate_pool_standings(pool.teams, matches.get(pool.pool_key, []), division.tiebreakers),
        )
        for pool in pools
    ]
    return standings, matches


def save_pool_result(
    session: Session,
    division_id: int,
    standings: PoolStandings,
    watermark: Optional[datetime],
    now: Optional[datetime] = None,
) -> PoolResult:
    """Upsert one pool's persisted standings. Caller commits."""
    result_id = pool_result_id(division_id, standings.pool_key)
    fields = {
        "division_id": division_id,
        "pool_key": standings.pool_key,
        "pool_name": standings.pool_name,
        "rows": [row.to_dict() for row in standings.rows],
        "matches_updated_at_max": watermark,
        "calculation_version": CALCULATION_VERSION,
        "calculated_at": now or utcnow(),
    }
    row = session.get(PoolResult, result_id)
    if row is None:
        row = PoolResult(id=result_id, **fields)
    else:
        row.sqlmodel_update(fields)
    session.add(row)
    return row


def persist_pool_results(
    session: Session, division_id: int, standings: Sequence[PoolStandings], matches: Dict[str, List[Match]]
) -> List[PoolResult]:
    return [
        save_pool_result(session, division_id, ps, contributing_watermark(matches.get(ps.pool_key, [])))
        for ps in standings
    ]


def refresh_pool_result(
    session: Session, division: Division, pool_key: str, force: bool = False
) -> Tuple[PoolResult, bool]:
    """
    Recompute one pool unless the stored watermark already covers every finalized match.
    Returns (result, refreshed). Caller commits.
    """
    pool = next((p for p in load_pools(session, division) if p.pool_key == pool_key), None)
    if pool is None:
        raise ConfigurationError(f"Division {division.id} has no pool '{pool_key}'")
    matches = pool_matches_by_key(session, division.id).get(pool_key, [])

    existing = session.get(PoolResult, pool_result_id(division.id, pool_key))
    if existing is not None and not force and not is_stale(existing.matches_updated_at_max, matches):
        logger.debug("Standings for %s/%s are current; skipping", division.id, pool_key)
        return existing, False

    standings = PoolStandings(
        pool_name=pool.pool_name,
        pool_key=pool_key,
        rows=calculate_pool_standings(pool.teams, matches, division.tiebreakers),
    )
    return save_pool_result(session, division.id, standings, contributing_watermark(matches)), True


# ============================================================================
# Refresh outbox
# ============================================================================


def enqueue_standings_refresh(
    session: Session, division_id: int, pool_key: str, trigger_match_id: Optional[str], now: Optional[datetime] = None
) -> StandingsRefresh:
    """Record that a pool needs recomputing. Coalesces into one row per pool. Caller commits."""
    now = now or utcnow()
    row = session.exec(
        select(StandingsRefresh).where(
            StandingsRefresh.division_id == division_id, StandingsRefresh.pool_key == pool_key
        )
    ).first()
    if row is None:
        row = StandingsRefresh(division_id=division_id, pool_key=pool_key)
    row.trigger_match_id = trigger_match_id
    row.requested_at = now
    row.attempts = 0
    row.last_error = None
    session.add(row)
    return row


def drain_standings_refreshes(
    bind: Engine, division_id: Optional[int] = None, max_attempts: int = STANDINGS_REFRESH_MAX_ATTEMPTS
) -> Dict[str, int]:
    """
    Process pending refresh rows with a fresh session. Each row is handled in its own
    transaction; failures bump `attempts` and stay queued until `max_attempts`.
    """
    summary = {"processed": 0, "refreshed": 0, "skipped": 0, "failed": 0}
    with Session(bind) as session:
        query = select(StandingsRefresh).where(StandingsRefresh.attempts < max_attempts)
        if division_id is not None:
            query = query.where(StandingsRefresh.division_id == division_id)
        pending = session.exec(query.order_by(StandingsRefresh.requested_at, StandingsRefresh.id)).all()
        jobs = [(r.id, r.division_id, r.pool_key, r.requested_at, r.attempts) for r in pending]

        for row_id, row_division_id, pool_key, requested_at, attempts in jobs:
            summary["processed"] += 1
            try:
                division = session.get(Division, row_division_id)
                if division is None:
                    raise ConfigurationError(f"Division {row_division_id} not found")
                _, refreshed = refresh_pool_result(session, division, pool_key)
                # A newer request keeps its row for the next drain
                session.connection().execute(
                    delete(StandingsRefresh).where(
                        StandingsRefresh.id == row_id, StandingsRefresh.requested_at == requested_at
                    )
                )
                session.commit()
                summary["refreshed" if refreshed else "skipped"] += 1
            except Exception as exc:
                session.rollback()
                summary["failed"] += 1
                logger.exception(
                    "Standings refresh failed for division %s pool %s (attempt %d of %d)",
                    row_division_id,
                    pool_key,
                    attempts + 1,
                    max_attempts,
                )
                session.connection().execute(
                    update(StandingsRefresh)
                    .where(StandingsRefresh.id == row_id)
                    .values(attempts=StandingsRefresh.attempts + 1, last_error=str(exc)[:500], last_attempt_at=utcnow())
                )
                session.commit()
    return summary
