"""
Runtime API: proposed and official results, advancement repair, standings refresh.

Finalizing a pool match queues a standings refresh in the same commit; the queue is
drained after the response, so a failed recompute never affects the finalize call.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from poolplay.database import get_session
from poolplay.routes.schemas import MatchResponse
from poolplay.services.advancement_service import (
    MatchAlreadyFinalError,
    MatchNotFoundError,
    MatchResultError,
    finalize_match_result,
    propose_match_result,
    resolve_bracket_dependencies,
)
from poolplay.services.pool_results import drain_standings_refreshes
from poolplay.utils.guards import get_division_or_404, get_match_or_404

router = APIRouter()


class GameScore(BaseModel):
    a: int
    b: int


class MatchResultPayload(BaseModel):
    winner_team_id: int
    games: List[GameScore] = []
    forfeit: bool = False


class FinalizePayload(BaseModel):
    # Omit everything to confirm the stored proposed result
    winner_team_id: Optional[int] = None
    games: Optional[List[GameScore]] = None
    forfeit: bool = False


class FinalizeResponse(BaseModel):
    match: MatchResponse
    advanced_match_ids: List[str] = []
    standings_refresh_queued: bool = False


def _result_error(e: MatchResultError) -> HTTPException:
    if isinstance(e, MatchNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, MatchAlreadyFinalError):
        return HTTPException(status_code=409, detail=f"MATCH_ALREADY_FINAL: {e}")
    return HTTPException(status_code=422, detail=f"INVALID_RESULT: {e}")


@router.post("/matches/{match_id}/propose", response_model=MatchResponse)
def propose_result(match_id: str, payload: MatchResultPayload, session: Session = Depends(get_session)):
    """Record an unconfirmed score. Does not affect standings or advancement."""
    get_match_or_404(session, match_id)
    try:
        return propose_match_result(session, match_id, payload.model_dump())
    except MatchResultError as e:
        raise _result_error(e)


@router.post("/matches/{match_id}/finalize", response_model=FinalizeResponse)
def finalize_result(
    match_id: str,
    background_tasks: BackgroundTasks,
    payload: Optional[FinalizePayload] = None,
    session: Session = Depends(get_session),
):
    """Make a result official and advance winner/loser. A match can be finalized once."""
    match = get_match_or_404(session, match_id)
    result = None
    if payload is not None and payload.winner_team_id is not None:
        result = payload.model_dump()
        result["games"] = result["games"] or []
    try:
        outcome = finalize_match_result(session, match_id, result)
    except MatchResultError as e:
        raise _result_error(e)

    if outcome["standings_refresh_queued"]:
        background_tasks.add_task(drain_standings_refreshes, session.get_bind(), match.division_id)
    return FinalizeResponse(
        match=MatchResponse.model_validate(outcome["match"]),
        advanced_match_ids=outcome["advanced_match_ids"],
        standings_refresh_queued=outcome["standings_refresh_queued"],
    )


@router.post("/divisions/{division_id}/bracket/resolve-dependencies")
def post_resolve_dependencies(division_id: int, session: Session = Depends(get_session)) -> Dict[str, int]:
    """Re-apply advancement for all completed bracket matches (repair). Idempotent."""
    get_division_or_404(session, division_id)
    return resolve_bracket_dependencies(session, division_id)


@router.post("/divisions/{division_id}/standings/refresh")
def post_refresh_standings(division_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Drain queued standings refreshes for a division now."""
    get_division_or_404(session, division_id)
    return drain_standings_refreshes(session.get_bind(), division_id)
