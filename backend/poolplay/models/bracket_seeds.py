from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class BracketSeeds(SQLModel, table=True):
    """Stored seed document. Source of truth for bracket match generation."""

    id: str = Field(primary_key=True)
    division_id: int = Field(foreign_key="division.id", index=True)
    bracket_type: str  # "main" | "plate"
    qualifiers_per_pool: int
    pool_count: int
    method: str = Field(default="mirror")
    bracket_size: int
    rounds: int
    round1_match_count: int
    third_place_match: bool = Field(default=False)
    # {"A1": {"team_id": .., "name": .., "pool_key": .., "pool_name": .., "rank": .., ...}}
    slots: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    # [{"match_number": 1, "side_a": "A1", "side_b": null}, ...]
    round1_pairs: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    generated_at: Optional[datetime] = Field(default=None)
