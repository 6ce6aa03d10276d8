"""
Tournament, division and participant API routes.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session, select

from poolplay.database import get_session
from poolplay.errors import ConfigurationError
from poolplay.models.division import Division
from poolplay.models.team import Team
from poolplay.models.tournament import Tournament
from poolplay.services.pool_schedule import SEEDING_METHODS
from poolplay.services.pool_standings import resolve_tiebreakers
from poolplay.services.qualifiers import qualifiers_per_pool
from poolplay.utils.guards import get_division_or_404, get_tournament_or_404

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class TournamentCreate(BaseModel):
    name: str
    location: Optional[str] = None
    notes: Optional[str] = None


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    location: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class DivisionSettings(BaseModel):
    pool_size: Optional[int] = None
    seeding_method: Optional[str] = None
    advancement_rule: Optional[str] = None
    advancement_count: Optional[int] = None
    bronze_match: Optional[bool] = None
    tiebreakers: Optional[List[str]] = None
    plate_enabled: Optional[bool] = None
    plate_third_place: Optional[bool] = None
    plate_name: Optional[str] = None
    advance_to_plate_per_pool: Optional[int] = None
    game_settings: Optional[Dict[str, Any]] = None
    medal_round_settings: Optional[Dict[str, Any]] = None
    plate_round_settings: Optional[Dict[str, Any]] = None

    @field_validator("pool_size")
    @classmethod
    def validate_pool_size(cls, v):
        if v is not None and v < 2:
            raise ValueError("pool_size must be at least 2")
        return v

    @field_validator("seeding_method")
    @classmethod
    def validate_seeding_method(cls, v):
        if v is not None and v not in SEEDING_METHODS:
            raise ValueError(f"seeding_method must be one of {list(SEEDING_METHODS)}")
        return v


class DivisionCreate(DivisionSettings):
    name: str


class DivisionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    name: str
    pool_size: int
    seeding_method: str
    advancement_rule: str
    advancement_count: Optional[int] = None
    bronze_match: bool
    tiebreakers: Optional[List[str]] = None
    plate_enabled: bool
    plate_third_place: bool
    plate_name: Optional[str] = None
    advance_to_plate_per_pool: Optional[int] = None
    game_settings: Optional[Dict[str, Any]] = None
    medal_round_settings: Optional[Dict[str, Any]] = None
    plate_round_settings: Optional[Dict[str, Any]] = None
    pool_assignments: Optional[List[Dict[str, Any]]] = None
    schedule_status: str
    schedule_version: int
    bracket_status: str
    bracket_version: int


class TeamCreate(BaseModel):
    name: str
    player_ids: List[str] = []
    seed: Optional[int] = None
    rating: Optional[float] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    division_id: int
    name: str
    player_ids: List[str]
    seed: Optional[int] = None
    rating: Optional[float] = None


def _apply_settings(division: Division, settings: DivisionSettings) -> None:
    data = settings.model_dump(exclude_unset=True, exclude={"name"})
    try:
        if data.get("advancement_rule") is not None:
            qualifiers_per_pool(data["advancement_rule"])
        if data.get("tiebreakers") is not None:
            resolve_tiebreakers(data["tiebreakers"])
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=e.to_detail())
    for key, value in data.items():
        if value is not None:
            setattr(division, key, value)


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(payload: TournamentCreate, session: Session = Depends(get_session)):
    tournament = Tournament(**payload.model_dump())
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return get_tournament_or_404(session, tournament_id)


@router.post("/tournaments/{tournament_id}/divisions", response_model=DivisionResponse, status_code=201)
def create_division(tournament_id: int, payload: DivisionCreate, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    division = Division(tournament_id=tournament_id, name=payload.name)
    _apply_settings(division, payload)
    session.add(division)
    session.commit()
    session.refresh(division)
    return division


@router.get("/tournaments/{tournament_id}/divisions", response_model=List[DivisionResponse])
def list_divisions(tournament_id: int, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    return session.exec(select(Division).where(Division.tournament_id == tournament_id).order_by(Division.id)).all()


@router.get("/divisions/{division_id}", response_model=DivisionResponse)
def get_division(division_id: int, session: Session = Depends(get_session)):
    return get_division_or_404(session, division_id)


@router.patch("/divisions/{division_id}", response_model=DivisionResponse)
def update_division(division_id: int, payload: DivisionSettings, session: Session = Depends(get_session)):
    """Update format settings. Takes effect on the next generation."""
    division = get_division_or_404(session, division_id)
    _apply_settings(division, payload)
    session.add(division)
    session.commit()
    session.refresh(division)
    return division


@router.post("/divisions/{division_id}/teams", response_model=List[TeamResponse], status_code=201)
def register_teams(division_id: int, payload: List[TeamCreate], session: Session = Depends(get_session)):
    """Register one or more participants in a division."""
    get_division_or_404(session, division_id)
    teams = [Team(division_id=division_id, **t.model_dump()) for t in payload]
    for team in teams:
        session.add(team)
    session.commit()
    for team in teams:
        session.refresh(team)
    return teams


@router.get("/divisions/{division_id}/teams", response_model=List[TeamResponse])
def list_teams(division_id: int, session: Session = Depends(get_session)):
    get_division_or_404(session, division_id)
    return session.exec(select(Team).where(Team.division_id == division_id).order_by(Team.id)).all()
