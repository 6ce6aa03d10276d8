"""
Runtime match completion.

Finalizing a match writes the official result, advances the winner into the linked
next match and the loser into the bronze match, and (for pool matches) enqueues a
standings refresh, all in one commit. Standings are recomputed later by the
projector in pool_results; a failing recompute never undoes a completion.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from poolplay.models.match import (
    STAGE_BRACKET,
    STAGE_POOL,
    STATUS_COMPLETED,
    STATUS_FORFEIT,
    TERMINAL_STATUSES,
    Match,
)
from poolplay.services.bracket_generation import is_open_slot, place_in_slot
from poolplay.services.pool_results import enqueue_standings_refresh
from poolplay.utils.clock import utcnow

logger = logging.getLogger(__name__)


class MatchResultError(Exception):
    """Raised when a result cannot be recorded for a match (unknown winner, already final...)."""

    pass


class MatchNotFoundError(MatchResultError):
    pass


class MatchAlreadyFinalError(MatchResultError):
    pass


def _validate_result(match: Match, result: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not result:
        raise MatchResultError(f"Match {match.id} has no result to record")
    if match.team_a_id is None or match.team_b_id is None:
        raise MatchResultError(f"Match {match.id} does not have both teams yet")
    winner = result.get("winner_team_id")
    if winner not in (match.team_a_id, match.team_b_id):
        raise MatchResultError(
            f"winner_team_id {winner} is not a side of match {match.id} ({match.team_a_id} vs {match.team_b_id})"
        )
    for game in result.get("games") or []:
        if not isinstance(game, dict) or "a" not in game or "b" not in game:
            raise MatchResultError(f"Each game needs 'a' and 'b' scores (got {game!r})")
    return dict(result)


def _is_final(match: Match) -> bool:
    return match.official_result is not None or match.status in TERMINAL_STATUSES


def propose_match_result(session: Session, match_id: str, result: Dict[str, Any]) -> Match:
    """Record an unconfirmed score. It never counts toward standings or advancement."""
    match = session.get(Match, match_id)
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    if _is_final(match):
        raise MatchAlreadyFinalError(f"Match {match_id} is already final")
    match.proposed_result = _validate_result(match, result)
    match.updated_at = utcnow()
    session.add(match)
    session.commit()
    session.refresh(match)
    return match


def apply_advancement_for_final_match(session: Session, match: Match) -> List[str]:
    """
    Write the winner (and loser, when a loser link exists) into linked slots that are
    still TBD. Returns the ids of matches that changed. Does not commit.
    """
    if match.winner_team_id is None:
        return []
    loser_id = match.team_b_id if match.winner_team_id == match.team_a_id else match.team_a_id
    changed = []
    links = [
        (match.next_match_id, match.next_match_slot, match.winner_team_id),
        (match.loser_next_match_id, match.loser_next_match_slot, loser_id),
    ]
    for target_id, slot, team_id in links:
        if not target_id or team_id is None:
            continue
        target = session.get(Match, target_id)
        if target is None:
            logger.warning("Match %s links to missing match %s", match.id, target_id)
            continue
        if place_in_slot(target, slot, match, team_id):
            target.updated_at = utcnow()
            session.add(target)
            changed.append(target.id)
    return changed


def finalize_match_result(
    session: Session, match_id: str, result: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Make a result official. Without `result`, the stored proposal is confirmed.

    A match can be finalized once; a second finalize is rejected. Two finalize calls
    racing on the same match are not guarded against and the last commit wins.
    """
    match = session.get(Match, match_id)
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    if _is_final(match):
        raise MatchAlreadyFinalError(f"Match {match_id} is already final")

    official = _validate_result(match, result if result is not None else match.proposed_result)
    now = utcnow()
    try:
        match.official_result = official
        match.winner_team_id = official["winner_team_id"]
        match.status = STATUS_FORFEIT if official.get("forfeit") else STATUS_COMPLETED
        match.completed_at = now
        match.updated_at = now
        session.add(match)

        advanced = apply_advancement_for_final_match(session, match)
        refresh_queued = False
        if match.stage == STAGE_POOL and match.pool_key:
            enqueue_standings_refresh(session, match.division_id, match.pool_key, match.id, now)
            refresh_queued = True
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Finalize failed for match %s", match_id)
        raise

    session.refresh(match)
    logger.info("Finalized match %s (winner %s), advanced into %s", match.id, match.winner_team_id, advanced)
    return {"match": match, "advanced_match_ids": advanced, "standings_refresh_queued": refresh_queued}


def resolve_bracket_dependencies(session: Session, division_id: int) -> Dict[str, int]:
    """
    Re-apply advancement for every completed bracket match of a division.

    Idempotent: only TBD slots are filled, in bracket position order.
    """
    bracket = session.exec(
        select(Match).where(Match.division_id == division_id, Match.stage == STAGE_BRACKET)
    ).all()
    unknown_before = sum(1 for m in bracket for slot in ("side_a", "side_b") if is_open_slot(m, slot))

    finished = sorted(
        (m for m in bracket if m.status in TERMINAL_STATUSES and m.winner_team_id is not None),
        key=lambda m: (m.bracket_type or "", m.round_number, m.bracket_position or 0, m.id),
    )
    teams_advanced = 0
    for match in finished:
        teams_advanced += len(apply_advancement_for_final_match(session, match))
    session.commit()

    session.expire_all()
    bracket_after = session.exec(
        select(Match).where(Match.division_id == division_id, Match.stage == STAGE_BRACKET)
    ).all()
    unknown_after = sum(1 for m in bracket_after for slot in ("side_a", "side_b") if is_open_slot(m, slot))
    return {
        "matches_processed": len(finished),
        "teams_advanced": teams_advanced,
        "unknown_before": unknown_before,
        "unknown_after": unknown_after,
    }
