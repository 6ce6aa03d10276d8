# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from poolplay.models.bracket_seeds import BracketSeeds  # noqa: F401
from poolplay.models.division import Division  # noqa: F401
from poolplay.models.match import Match  # noqa: F401
from poolplay.models.pool_result import PoolResult  # noqa: F401
from poolplay.models.standings_refresh import StandingsRefresh  # noqa: F401
from poolplay.models.team import Team  # noqa: F401
from poolplay.models.tournament import Tournament  # noqa: F401
