"""
Generation API: pool assignments, pool schedule, bracket from standings, bracket from seeds.

Each POST runs one coordinator operation under the division's generation lock.
A busy lock answers 409 GENERATION_IN_PROGRESS; retry after it clears.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session, select

from poolplay.database import get_session
from poolplay.errors import GenerationError
from poolplay.models.pool_result import PoolResult
from poolplay.routes.schemas import MatchResponse
from poolplay.services.bracket_seeds import BRACKET_TYPES, load_seed_document
from poolplay.services.generation_coordinator import (
    clear_pool_assignments,
    generate_bracket_from_pool_standings,
    generate_bracket_from_seeds,
    generate_pool_schedule,
    save_pool_assignments,
)
from poolplay.services.generation_lock import LockFamily, read_lock_state
from poolplay.services.match_store import division_matches
from poolplay.utils.guards import generation_http_error, get_division_or_404

router = APIRouter()


class PoolAssignmentIn(BaseModel):
    pool_name: str
    team_ids: List[int]


class PoolScheduleRequest(BaseModel):
    assignments: Optional[List[PoolAssignmentIn]] = None
    requested_by: Optional[str] = None


class GenerateRequest(BaseModel):
    requested_by: Optional[str] = None


class PoolAssignmentsRequest(BaseModel):
    assignments: List[PoolAssignmentIn]


@router.get("/divisions/{division_id}/pool-assignments")
def get_pool_assignments(division_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    division = get_division_or_404(session, division_id)
    return {"division_id": division_id, "assignments": division.pool_assignments or []}


@router.put("/divisions/{division_id}/pool-assignments")
def put_pool_assignments(
    division_id: int,
    payload: PoolAssignmentsRequest,
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """Save an organizer's pools; the next schedule generation uses them."""
    get_division_or_404(session, division_id)
    try:
        saved = save_pool_assignments(session, division_id, [a.model_dump() for a in payload.assignments])
    except GenerationError as e:
        raise generation_http_error(e)
    return {"division_id": division_id, "assignments": saved}


@router.delete("/divisions/{division_id}/pool-assignments")
def delete_pool_assignments(division_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    get_division_or_404(session, division_id)
    try:
        clear_pool_assignments(session, division_id)
    except GenerationError as e:
        raise generation_http_error(e)
    return {"division_id": division_id, "assignments": []}


@router.post("/divisions/{division_id}/pool-schedule/generate")
def post_generate_pool_schedule(
    division_id: int,
    payload: Optional[PoolScheduleRequest] = None,
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """Generate (or regenerate) round-robin pool matches for a division."""
    get_division_or_404(session, division_id)
    payload = payload or PoolScheduleRequest()
    assignments = [a.model_dump() for a in payload.assignments] if payload.assignments is not None else None
    try:
        result = generate_pool_schedule(session, division_id, assignments=assignments, owner=payload.requested_by)
    except GenerationError as e:
        raise generation_http_error(e)
    return result.to_dict()


@router.post("/divisions/{division_id}/bracket/generate-from-standings")
def post_generate_bracket_from_standings(
    division_id: int,
    payload: Optional[GenerateRequest] = None,
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """Seed and build the bracket(s) once every pool match is finished."""
    get_division_or_404(session, division_id)
    owner = payload.requested_by if payload else None
    try:
        result = generate_bracket_from_pool_standings(session, division_id, owner=owner)
    except GenerationError as e:
        raise generation_http_error(e)
    return result.to_dict()


@router.post("/divisions/{division_id}/bracket/generate-from-seeds")
def post_generate_bracket_from_seeds(
    division_id: int,
    bracket_type: str = Query("main"),
    payload: Optional[GenerateRequest] = None,
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """Rebuild one bracket from its stored seed document."""
    get_division_or_404(session, division_id)
    owner = payload.requested_by if payload else None
    try:
        result = generate_bracket_from_seeds(session, division_id, bracket_type=bracket_type, owner=owner)
    except GenerationError as e:
        raise generation_http_error(e)
    return result.to_dict()


@router.get("/divisions/{division_id}/matches", response_model=List[MatchResponse])
def list_division_matches(
    division_id: int,
    stage: Optional[str] = Query(None),
    bracket_type: Optional[str] = Query(None),
    session: Session = Depends(get_session),
):
    get_division_or_404(session, division_id)
    return division_matches(session, division_id, stage=stage, bracket_type=bracket_type)


@router.get("/divisions/{division_id}/seeds/{bracket_type}")
def get_seed_document(division_id: int, bracket_type: str, session: Session = Depends(get_session)) -> Dict[str, Any]:
    get_division_or_404(session, division_id)
    if bracket_type not in BRACKET_TYPES:
        raise HTTPException(status_code=422, detail=f"bracket_type must be one of {list(BRACKET_TYPES)}")
    doc = load_seed_document(session, division_id, bracket_type)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"No {bracket_type} seed document for division {division_id}")
    return doc.to_dict()


@router.get("/divisions/{division_id}/pool-results")
def list_pool_results(division_id: int, session: Session = Depends(get_session)) -> List[Dict[str, Any]]:
    get_division_or_404(session, division_id)
    results = session.exec(
        select(PoolResult).where(PoolResult.division_id == division_id).order_by(PoolResult.pool_key)
    ).all()
    return [
        {
            "id": r.id,
            "pool_key": r.pool_key,
            "pool_name": r.pool_name,
            "rows": r.rows,
            "matches_updated_at_max": r.matches_updated_at_max.isoformat() if r.matches_updated_at_max else None,
            "calculation_version": r.calculation_version,
        }
        for r in results
    ]


@router.get("/divisions/{division_id}/generation-status")
def get_generation_status(division_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    get_division_or_404(session, division_id)
    return {family.value: read_lock_state(session, division_id, family).to_dict() for family in LockFamily}
