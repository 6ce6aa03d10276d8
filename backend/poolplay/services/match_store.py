"""
Idempotent match writes keyed by canonical id.

Upserting an unchanged generated match rewrites identical values, so retried or
duplicate generation calls never create a second row for the same coordinate.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlmodel import Session, select

from poolplay.models.match import Match
from poolplay.utils.clock import utcnow

_WRITE_STAMPS = {"id", "created_at", "updated_at"}


def upsert_matches(session: Session, matches: Iterable[Match], now: Optional[datetime] = None) -> List[str]:
    """Insert or overwrite each match by id. Keeps the original created_at. Caller commits."""
    now = now or utcnow()
    written = []
    for match in matches:
        existing = session.get(Match, match.id)
        if existing is None:
            match.created_at = now
            match.updated_at = now
            session.add(match)
        else:
            existing.sqlmodel_update(match.model_dump(exclude=_WRITE_STAMPS))
            existing.updated_at = now
            session.add(existing)
        written.append(match.id)
    return written


def delete_obsolete_matches(session: Session, existing: Sequence[Match], keep_ids: Iterable[str]) -> List[str]:
    """Delete rows in `existing` whose ids the latest generation no longer produces."""
    keep = set(keep_ids)
    removed = []
    for match in existing:
        if match.id not in keep:
            session.delete(match)
            removed.append(match.id)
    return sorted(removed)


def division_matches(
    session: Session, division_id: int, stage: Optional[str] = None, bracket_type: Optional[str] = None
) -> List[Match]:
    query = select(Match).where(Match.division_id == division_id)
    if stage:
        query = query.where(Match.stage == stage)
    if bracket_type:
        query = query.where(Match.bracket_type == bracket_type)
    return list(session.exec(query.order_by(Match.stage, Match.bracket_type, Match.match_number, Match.id)).all())
