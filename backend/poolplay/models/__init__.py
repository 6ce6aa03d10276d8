from poolplay.models.bracket_seeds import BracketSeeds
from poolplay.models.division import Division
from poolplay.models.match import Match
from poolplay.models.pool_result import PoolResult
from poolplay.models.standings_refresh import StandingsRefresh
from poolplay.models.team import Team
from poolplay.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Division",
    "Team",
    "Match",
    "PoolResult",
    "BracketSeeds",
    "StandingsRefresh",
]
