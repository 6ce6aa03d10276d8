from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel

from poolplay.utils.clock import utcnow


class StandingsRefresh(SQLModel, table=True):
    """Outbox row requesting a pool standings recompute. One pending row per pool."""

    __table_args__ = (SAUniqueConstraint("division_id", "pool_key", name="uq_standings_refresh_pool"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    division_id: int = Field(foreign_key="division.id", index=True)
    pool_key: str
    trigger_match_id: Optional[str] = Field(default=None)
    requested_at: datetime = Field(default_factory=utcnow)
    attempts: int = Field(default=0)
    last_error: Optional[str] = Field(default=None)
    last_attempt_at: Optional[datetime] = Field(default=None)
