from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

from poolplay.utils.clock import utcnow

if TYPE_CHECKING:
    from poolplay.models.team import Team
    from poolplay.models.tournament import Tournament


class Division(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str

    # Pool-play format settings
    pool_size: int = Field(default=4)
    seeding_method: str = Field(default="rating")  # "rating" | "random", for automatic pool assignment
    advancement_rule: str = Field(default="top_2")  # "top_1" | "top_2" | "top_n_plus_best"
    advancement_count: Optional[int] = Field(default=None)  # total qualifiers for top_n_plus_best
    bronze_match: bool = Field(default=True)
    tiebreakers: Optional[List[str]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    # Plate (consolation) bracket
    plate_enabled: bool = Field(default=False)
    plate_third_place: bool = Field(default=False)
    plate_name: Optional[str] = Field(default=None)
    advance_to_plate_per_pool: Optional[int] = Field(default=None)

    # Scoring: pool default plus per-round overrides
    # {"best_of": 1, "points_to_win": 11, "win_by": 2, "point_cap": null}
    game_settings: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    # keys: quarter_finals | semi_finals | finals | bronze
    medal_round_settings: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    # keys: plate_finals | plate_bronze
    plate_round_settings: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    # Saved by the organizer or the last pool schedule generation: [{"pool_name": "Pool A", "team_ids": [..]}, ..]
    pool_assignments: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    # Generation locks, one per family. status: idle | generating | generated
    schedule_status: str = Field(default="idle")
    schedule_status_changed_at: Optional[datetime] = Field(default=None)
    schedule_version: int = Field(default=0)
    schedule_generated_by: Optional[str] = Field(default=None)

    bracket_status: str = Field(default="idle")
    bracket_status_changed_at: Optional[datetime] = Field(default=None)
    bracket_version: int = Field(default=0)
    bracket_generated_by: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="divisions")
    teams: List["Team"] = Relationship(back_populates="division")
