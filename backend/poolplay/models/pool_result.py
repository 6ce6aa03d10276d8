from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

from poolplay.utils.clock import utcnow


class PoolResult(SQLModel, table=True):
    """Persisted standings for one pool."""

    id: str = Field(primary_key=True)
    division_id: int = Field(foreign_key="division.id", index=True)
    pool_key: str
    pool_name: str
    rows: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    # Newest updated_at among the matches that fed `rows`
    matches_updated_at_max: Optional[datetime] = Field(default=None)
    calculation_version: int = Field(default=1)
    calculated_at: datetime = Field(default_factory=utcnow)
