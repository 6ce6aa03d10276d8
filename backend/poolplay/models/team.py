from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

from poolplay.utils.clock import utcnow

if TYPE_CHECKING:
    from poolplay.models.division import Division


class Team(SQLModel, table=True):
    """A registered participant (single player or pair) in a division."""

    id: Optional[int] = Field(default=None, primary_key=True)
    division_id: int = Field(foreign_key="division.id", index=True)
    name: str
    player_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    seed: Optional[int] = Field(default=None)
    rating: Optional[float] = Field(default=None)  # Drives snake-draft pool assignment
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    division: "Division" = Relationship(back_populates="teams")
