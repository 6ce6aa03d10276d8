from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

STAGE_POOL = "pool"
STAGE_BRACKET = "bracket"

STATUS_SCHEDULED = "scheduled"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FORFEIT = "forfeit"
STATUS_BYE = "bye"
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FORFEIT, STATUS_BYE)

SLOT_A = "side_a"
SLOT_B = "side_b"

TBD_NAME = "TBD"
BYE_NAME = "BYE"


class Match(SQLModel, table=True):
    # Canonical id: stable across regenerations of the same pool pairing / bracket position
    id: str = Field(primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id")
    division_id: int = Field(foreign_key="division.id", index=True)
    stage: str  # "pool" | "bracket"
    bracket_type: Optional[str] = Field(default=None)  # "main" | "plate" (bracket stage only)
    pool_name: Optional[str] = Field(default=None)
    pool_key: Optional[str] = Field(default=None, index=True)
    round_number: int
    round_name: Optional[str] = Field(default=None)
    match_number: int
    bracket_position: Optional[int] = Field(default=None)

    # Sides. A null team id with name "TBD" is an open slot; "BYE" marks a missing opponent.
    team_a_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team_a_name: str = Field(default=TBD_NAME)
    team_a_player_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    team_b_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team_b_name: str = Field(default=TBD_NAME)
    team_b_player_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Advancement links: winner -> next match slot, loser -> bronze match slot
    next_match_id: Optional[str] = Field(default=None)
    next_match_slot: Optional[str] = Field(default=None)  # "side_a" | "side_b"
    loser_next_match_id: Optional[str] = Field(default=None)
    loser_next_match_slot: Optional[str] = Field(default=None)

    is_bye: bool = Field(default=False)
    is_third_place: bool = Field(default=False)

    status: str = Field(default=STATUS_SCHEDULED)  # scheduled | in_progress | completed | forfeit | bye
    winner_team_id: Optional[int] = Field(default=None)
    # {"winner_team_id": 1, "games": [{"a": 11, "b": 7}, ...]}
    proposed_result: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    official_result: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    game_settings: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    completed_at: Optional[datetime] = Field(default=None)
    # Stamped on write, not on construction, so regenerated rows compare equal
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None, index=True)
