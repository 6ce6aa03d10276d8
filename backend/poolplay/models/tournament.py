from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

from poolplay.utils.clock import utcnow

if TYPE_CHECKING:
    from poolplay.models.division import Division


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    location: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    divisions: List["Division"] = Relationship(back_populates="tournament")
