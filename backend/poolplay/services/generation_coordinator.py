"""
Generation Coordinator

Top-level organizer operations, each run under the division's generation lock:
1. generate_pool_schedule: assignment -> round-robin pool matches
2. generate_bracket_from_pool_standings: standings -> qualifiers -> seed documents -> bracket matches
3. generate_bracket_from_seeds: stored seed document -> bracket matches

save_pool_assignments and clear_pool_assignments manage the organizer's saved
pools; they share the schedule's guards but do not take the lock.

Every write is keyed by canonical id, so repeating an operation overwrites the same
rows. Inputs are validated before any data is written; on failure the unit of work
is rolled back and the lock returns to idle.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from sqlmodel import Session, select

from poolplay.errors import ConfigurationError, GenerationInProgressError, PreconditionError
from poolplay.models.division import Division
from poolplay.models.match import STAGE_BRACKET, STAGE_POOL, Match
from poolplay.models.pool_result import PoolResult
from poolplay.models.team import Team
from poolplay.services.bracket_generation import build_bracket_matches
from poolplay.services.bracket_seeds import (
    BRACKET_MAIN,
    BRACKET_TYPES,
    build_main_seed_document,
    build_plate_seed_document,
    load_seed_document,
    save_seed_document,
)
from poolplay.services.canonical_ids import IdFactory, canonical_id
from poolplay.services.generation_lock import GenerationLock, LockFamily, LockStatus, read_lock_state
from poolplay.services.match_store import delete_obsolete_matches, division_matches, upsert_matches
from poolplay.services.pool_results import compute_division_standings, load_pools, persist_pool_results
from poolplay.services.pool_schedule import (
    build_pool_matches,
    dedupe_teams,
    pools_from_assignments,
    snake_draft_pools,
    validate_pool_balance,
    validate_pool_matches,
)
from poolplay.services.qualifiers import assert_pool_stage_complete, qualifiers_per_pool, select_qualifiers
from poolplay.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    operation: str
    division_id: int
    lock_version: Optional[int] = None
    matches_written: List[str] = field(default_factory=list)
    matches_deleted: List[str] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    seeds: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    qualifiers: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "operation": self.operation,
            "division_id": self.division_id,
            "lock_version": self.lock_version,
            "matches_written": self.matches_written,
            "matches_deleted": self.matches_deleted,
            "counts": self.counts,
        }
        if self.seeds:
            result["seeds"] = self.seeds
        if self.qualifiers is not None:
            result["qualifiers"] = self.qualifiers
        return result


def _get_division(session: Session, division_id: int) -> Division:
    division = session.get(Division, division_id)
    if division is None:
        raise ConfigurationError(f"Division {division_id} not found")
    return division


def _division_teams(session: Session, division_id: int) -> List[Team]:
    teams = session.exec(select(Team).where(Team.division_id == division_id).order_by(Team.id)).all()
    return dedupe_teams(teams)


# ============================================================================
# Pool schedule
# ============================================================================


def _assert_pool_stage_mutable(session: Session, division_id: int) -> List[Match]:
    """Refuse changes to pools once a bracket exists or any pool result is official."""
    bracket = division_matches(session, division_id, stage=STAGE_BRACKET)
    if bracket:
        raise PreconditionError(
            f"Bracket already exists ({len(bracket)} matches); pools cannot be changed",
            blocking=[m.id for m in bracket],
        )
    existing = division_matches(session, division_id, stage=STAGE_POOL)
    played = [m.id for m in existing if m.official_result is not None]
    if played:
        raise PreconditionError(
            f"{len(played)} pool match(es) already have official results; pools cannot be changed",
            blocking=played,
        )
    return existing


def generate_pool_schedule(
    session: Session,
    division_id: int,
    assignments: Optional[Sequence[Mapping[str, Any]]] = None,
    owner: Optional[str] = None,
    clock: Callable[[], datetime] = utcnow,
    id_factory: IdFactory = canonical_id,
    lock_timeout_seconds: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> GenerationResult:
    """
    Build round-robin pool matches. Pools come from `assignments` when given, else the
    division's saved assignment, else a snake draft using the division's seeding method.
    Explicit assignments must be balanced; an empty list is rejected.
    """
    division = _get_division(session, division_id)
    teams = _division_teams(session, division_id)
    if not teams:
        raise ConfigurationError(f"Division {division_id} has no participants; register teams first")

    teams_by_id = {t.id: t for t in teams}
    if assignments is not None:
        pools = pools_from_assignments(assignments, teams_by_id)
        validate_pool_balance(pools)
    elif division.pool_assignments:
        pools = pools_from_assignments(division.pool_assignments, teams_by_id)
    else:
        pools = snake_draft_pools(teams, division.pool_size, division.seeding_method, rng)
        if any(len(p.teams) < 2 for p in pools):
            raise ConfigurationError(
                f"{len(teams)} participant(s) cannot fill pools of {division.pool_size} with at least 2 per pool"
            )

    result = GenerationResult(operation="generate_pool_schedule", division_id=division_id)
    lock_kwargs = {} if lock_timeout_seconds is None else {"timeout_seconds": lock_timeout_seconds}
    with GenerationLock(session, division_id, LockFamily.SCHEDULE, clock=clock, owner=owner, **lock_kwargs) as lock:
        existing = _assert_pool_stage_mutable(session, division_id)

        matches = build_pool_matches(division, pools, id_factory)
        validate_pool_matches(pools, matches)

        now = clock()
        result.matches_written = upsert_matches(session, matches, now)
        result.matches_deleted = delete_obsolete_matches(session, existing, result.matches_written)

        division = session.get(Division, division_id)
        division.pool_assignments = [p.to_dict() for p in pools]
        session.add(division)

        pool_keys = {p.pool_key for p in pools}
        for stale in session.exec(select(PoolResult).where(PoolResult.division_id == division_id)).all():
            if stale.pool_key not in pool_keys:
                session.delete(stale)
        session.flush()
        standings, by_pool = compute_division_standings(session, division)
        persist_pool_results(session, division_id, standings, by_pool)

        result.counts = {
            "pools": len(pools),
            "teams": sum(len(p.teams) for p in pools),
            "matches": len(matches),
            "deleted": len(result.matches_deleted),
        }
    result.lock_version = lock.version
    logger.info("Pool schedule generated for division %s: %s", division_id, result.counts)
    return result


def _assert_schedule_not_generating(session: Session, division_id: int, clock: Callable[[], datetime]) -> None:
    lock = GenerationLock(session, division_id, LockFamily.SCHEDULE, clock=clock)
    state = read_lock_state(session, division_id, LockFamily.SCHEDULE)
    if state.status == LockStatus.GENERATING.value and not lock.is_stale(state):
        raise GenerationInProgressError(
            f"Schedule generation in progress for division {division_id}; pool assignments cannot change now"
        )


def save_pool_assignments(
    session: Session,
    division_id: int,
    assignments: Sequence[Mapping[str, Any]],
    clock: Callable[[], datetime] = utcnow,
) -> List[Dict[str, Any]]:
    """
    Validate and store an organizer's pool assignment for the next schedule generation.
    Pools must be balanced (sizes differ by at most one) and every pool needs two teams.
    """
    _get_division(session, division_id)
    _assert_schedule_not_generating(session, division_id, clock)
    _assert_pool_stage_mutable(session, division_id)

    teams = _division_teams(session, division_id)
    pools = pools_from_assignments(assignments, {t.id: t for t in teams})
    validate_pool_balance(pools)

    division = session.get(Division, division_id)
    division.pool_assignments = [p.to_dict() for p in pools]
    session.add(division)
    session.commit()
    logger.info(
        "Saved pool assignments for division %s: %s",
        division_id,
        {p.pool_name: len(p.teams) for p in pools},
    )
    return division.pool_assignments


def clear_pool_assignments(
    session: Session,
    division_id: int,
    clock: Callable[[], datetime] = utcnow,
) -> None:
    """Drop the saved assignment so the next generation falls back to the snake draft."""
    _get_division(session, division_id)
    _assert_schedule_not_generating(session, division_id, clock)
    _assert_pool_stage_mutable(session, division_id)

    division = session.get(Division, division_id)
    division.pool_assignments = None
    session.add(division)
    session.commit()
    logger.info("Cleared pool assignments for division %s", division_id)


# ============================================================================
# Bracket
# ============================================================================


def generate_bracket_from_pool_standings(
    session: Session,
    division_id: int,
    owner: Optional[str] = None,
    clock: Callable[[], datetime] = utcnow,
    id_factory: IdFactory = canonical_id,
    lock_timeout_seconds: Optional[int] = None,
) -> GenerationResult:
    """Standings -> qualifiers -> main (and plate) seed documents -> bracket matches."""
    division = _get_division(session, division_id)
    k = qualifiers_per_pool(division.advancement_rule)

    result = GenerationResult(operation="generate_bracket_from_pool_standings", division_id=division_id)
    lock_kwargs = {} if lock_timeout_seconds is None else {"timeout_seconds": lock_timeout_seconds}
    with GenerationLock(session, division_id, LockFamily.BRACKET, clock=clock, owner=owner, **lock_kwargs) as lock:
        division = session.get(Division, division_id)
        bracket = division_matches(session, division_id, stage=STAGE_BRACKET)
        if bracket:
            raise PreconditionError(
                f"Bracket already exists ({len(bracket)} matches). Delete it or regenerate from seeds.",
                blocking=[m.id for m in bracket],
            )
        if not division.pool_assignments:
            raise ConfigurationError("Pool assignments missing. Generate the pool schedule first.")

        pools = load_pools(session, division)
        pool_matches = division_matches(session, division_id, stage=STAGE_POOL)
        if not pool_matches:
            raise PreconditionError("Pool schedule has not been generated for this division")
        assert_pool_stage_complete(pool_matches)

        standings, by_pool = compute_division_standings(session, division)
        persist_pool_results(session, division_id, standings, by_pool)

        selection = select_qualifiers(
            standings,
            division.advancement_rule,
            advancement_count=division.advancement_count,
            plate_enabled=division.plate_enabled,
            plate_per_pool=division.advance_to_plate_per_pool,
        )
        result.qualifiers = selection.to_dict()
        player_ids = {t.id: list(t.player_ids or []) for p in pools for t in p.teams}

        now = clock()
        docs = [
            build_main_seed_document(
                selection.main_entries(), k, len(pools), third_place_match=division.bronze_match, player_ids=player_ids
            )
        ]
        if division.plate_enabled:
            docs.append(
                build_plate_seed_document(
                    selection.plate_entries(),
                    k,
                    len(pools),
                    third_place_match=division.plate_third_place,
                    player_ids=player_ids,
                )
            )

        counts = {"pools": len(pools)}
        for doc in docs:
            save_seed_document(session, division_id, doc, now, id_factory)
            result.seeds[doc.bracket_type] = doc.to_dict()
            matches = build_bracket_matches(division, doc, id_factory)
            result.matches_written.extend(upsert_matches(session, matches, now))
            counts[f"{doc.bracket_type}_matches"] = len(matches)
        result.counts = counts
    result.lock_version = lock.version
    logger.info("Bracket generated from standings for division %s: %s", division_id, result.counts)
    return result


def generate_bracket_from_seeds(
    session: Session,
    division_id: int,
    bracket_type: str = BRACKET_MAIN,
    owner: Optional[str] = None,
    clock: Callable[[], datetime] = utcnow,
    id_factory: IdFactory = canonical_id,
    lock_timeout_seconds: Optional[int] = None,
) -> GenerationResult:
    """Rebuild one bracket type from its stored seed document, overwriting by canonical id."""
    if bracket_type not in BRACKET_TYPES:
        raise ConfigurationError(f"Unknown bracket type '{bracket_type}'; expected one of {list(BRACKET_TYPES)}")
    _get_division(session, division_id)

    result = GenerationResult(operation="generate_bracket_from_seeds", division_id=division_id)
    lock_kwargs = {} if lock_timeout_seconds is None else {"timeout_seconds": lock_timeout_seconds}
    with GenerationLock(session, division_id, LockFamily.BRACKET, clock=clock, owner=owner, **lock_kwargs) as lock:
        division = session.get(Division, division_id)
        doc = load_seed_document(session, division_id, bracket_type, id_factory)
        if doc is None:
            raise PreconditionError(
                f"No {bracket_type} seed document for division {division_id}; generate from pool standings first"
            )

        existing = division_matches(session, division_id, stage=STAGE_BRACKET, bracket_type=bracket_type)
        played = [m.id for m in existing if not m.is_bye and m.official_result is not None]
        if played:
            raise PreconditionError(
                f"{len(played)} {bracket_type} bracket match(es) already have official results",
                blocking=played,
            )

        if doc.is_empty:
            logger.info("%s seed document for division %s is empty; no matches generated", bracket_type, division_id)
            matches = []
        else:
            matches = build_bracket_matches(division, doc, id_factory)
        result.matches_written = upsert_matches(session, matches, clock())
        result.matches_deleted = delete_obsolete_matches(session, existing, result.matches_written)
        result.seeds[bracket_type] = doc.to_dict()
        result.counts = {
            f"{bracket_type}_matches": len(matches),
            "deleted": len(result.matches_deleted),
        }
    result.lock_version = lock.version
    logger.info("%s bracket generated from seeds for division %s: %s", bracket_type, division_id, result.counts)
    return result
