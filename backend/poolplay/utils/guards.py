"""
Request guards and error translation for the HTTP layer.

- 404 lookups for tournaments, divisions and matches
- GenerationError -> HTTPException with a structured detail
"""

from fastapi import HTTPException
from sqlmodel import Session

from poolplay.errors import ConsistencyError, GenerationError, PreconditionError
from poolplay.models.division import Division
from poolplay.models.match import Match
from poolplay.models.tournament import Tournament


def get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} not found")
    return tournament


def get_division_or_404(session: Session, division_id: int, tournament_id: int = None) -> Division:
    """
    Get a division or raise 404.

    Raises:
        HTTPException 404: Division not found or doesn't belong to tournament
    """
    division = session.get(Division, division_id)
    if not division:
        raise HTTPException(status_code=404, detail=f"Division {division_id} not found")
    if tournament_id and division.tournament_id != tournament_id:
        raise HTTPException(
            status_code=404, detail=f"Division {division_id} does not belong to tournament {tournament_id}"
        )
    return division


def get_match_or_404(session: Session, match_id: str) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail=f"Match {match_id} not found")
    return match


def generation_http_error(err: GenerationError) -> HTTPException:
    detail = {"code": err.code, "message": err.message}
    if isinstance(err, PreconditionError):
        detail["blocking"] = err.blocking
    elif isinstance(err, ConsistencyError):
        detail["context"] = err.context
    return HTTPException(status_code=err.status_code, detail=detail)
