from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tournament_id: int
    division_id: int
    stage: str
    bracket_type: Optional[str] = None
    pool_name: Optional[str] = None
    pool_key: Optional[str] = None
    round_number: int
    round_name: Optional[str] = None
    match_number: int
    bracket_position: Optional[int] = None
    team_a_id: Optional[int] = None
    team_a_name: str
    team_a_player_ids: List[str] = []
    team_b_id: Optional[int] = None
    team_b_name: str
    team_b_player_ids: List[str] = []
    next_match_id: Optional[str] = None
    next_match_slot: Optional[str] = None
    loser_next_match_id: Optional[str] = None
    loser_next_match_slot: Optional[str] = None
    is_bye: bool
    is_third_place: bool
    status: str
    winner_team_id: Optional[int] = None
    proposed_result: Optional[Dict[str, Any]] = None
    official_result: Optional[Dict[str, Any]] = None
    game_settings: Optional[Dict[str, Any]] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
