"""
Pool standings.

Ranks one pool from its matches. Only officially finalized results count; a proposed
score never moves the table. Wins always order first, then the division's tiebreaker
chain, then team id so the order is total and deterministic.

Head-to-head is a mini round-robin restricted to the teams sharing a win total, so a
three-way tie is decided by results among those three only.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from poolplay.errors import ConfigurationError
from poolplay.models.match import Match

TB_WINS = "wins"
TB_HEAD_TO_HEAD = "head_to_head"
TB_POINT_DIFF = "point_diff"
TB_POINTS_SCORED = "points_scored"

DEFAULT_TIEBREAKERS = [TB_WINS, TB_HEAD_TO_HEAD, TB_POINT_DIFF, TB_POINTS_SCORED]
KNOWN_TIEBREAKERS = frozenset(DEFAULT_TIEBREAKERS)


@dataclass
class StandingRow:
    team_id: int
    name: str
    rank: int = 0
    played: int = 0
    wins: int = 0
    losses: int = 0
    points_for: int = 0
    points_against: int = 0

    @property
    def point_diff(self) -> int:
        return self.points_for - self.points_against

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["point_diff"] = self.point_diff
        return data


@dataclass
class _Outcome:
    team_a_id: int
    team_b_id: int
    winner_id: int
    points_a: int
    points_b: int


def resolve_tiebreakers(tiebreakers: Optional[Sequence[str]]) -> List[str]:
    """Validate a configured chain. `wins` is always the primary key."""
    chain = list(tiebreakers) if tiebreakers else list(DEFAULT_TIEBREAKERS)
    unknown = [t for t in chain if t not in KNOWN_TIEBREAKERS]
    if unknown:
        raise ConfigurationError(
            f"Unknown tiebreaker(s) {unknown}; supported: {sorted(KNOWN_TIEBREAKERS)}"
        )
    return [TB_WINS] + [t for t in chain if t != TB_WINS]


def is_official(match: Match) -> bool:
    result = match.official_result
    if not result:
        return False
    winner = result.get("winner_team_id", match.winner_team_id)
    return winner is not None and winner in (match.team_a_id, match.team_b_id)


def game_points(result: Dict[str, Any]) -> Tuple[int, int]:
    points_a = 0
    points_b = 0
    for game in result.get("games") or []:
        points_a += int(game.get("a", 0))
        points_b += int(game.get("b", 0))
    return points_a, points_b


def _outcomes(team_ids: Iterable[int], matches: Iterable[Match]) -> List[_Outcome]:
    members = set(team_ids)
    outcomes = []
    for m in matches:
        if not is_official(m):
            continue
        if m.team_a_id not in members or m.team_b_id not in members:
            continue
        points_a, points_b = game_points(m.official_result)
        winner = m.official_result.get("winner_team_id", m.winner_team_id)
        outcomes.append(_Outcome(m.team_a_id, m.team_b_id, winner, points_a, points_b))
    return outcomes


def _mini_table(tied_ids: Sequence[int], outcomes: Sequence[_Outcome]) -> Dict[int, Tuple[int, int]]:
    """(mini_wins, mini_diff) per team, counting only games among `tied_ids`."""
    tied = set(tied_ids)
    table = {tid: [0, 0] for tid in tied}
    for o in outcomes:
        if o.team_a_id not in tied or o.team_b_id not in tied:
            continue
        table[o.winner_id][0] += 1
        table[o.team_a_id][1] += o.points_a - o.points_b
        table[o.team_b_id][1] += o.points_b - o.points_a
    return {tid: (w, d) for tid, (w, d) in table.items()}


def calculate_pool_standings(
    teams: Sequence[Any],
    matches: Iterable[Match],
    tiebreakers: Optional[Sequence[str]] = None,
) -> List[StandingRow]:
    """
    Rank a pool. `teams` are objects with `id` and `name`; `matches` may include
    unfinished ones, which are ignored.
    """
    chain = resolve_tiebreakers(tiebreakers)
    rows = {t.id: StandingRow(team_id=t.id, name=t.name) for t in teams}
    outcomes = _outcomes(rows.keys(), matches)

    for o in outcomes:
        loser_id = o.team_b_id if o.winner_id == o.team_a_id else o.team_a_id
        rows[o.winner_id].wins += 1
        rows[loser_id].losses += 1
        for tid, pf, pa in ((o.team_a_id, o.points_a, o.points_b), (o.team_b_id, o.points_b, o.points_a)):
            rows[tid].played += 1
            rows[tid].points_for += pf
            rows[tid].points_against += pa

    by_wins: Dict[int, List[int]] = {}
    for row in rows.values():
        by_wins.setdefault(row.wins, []).append(row.team_id)

    mini: Dict[int, Tuple[int, int]] = {}
    for group in by_wins.values():
        if len(group) > 1:
            mini.update(_mini_table(group, outcomes))
        else:
            mini[group[0]] = (0, 0)

    def sort_key(row: StandingRow) -> Tuple:
        key: List[int] = []
        for tb in chain:
            if tb == TB_WINS:
                key.append(-row.wins)
            elif tb == TB_HEAD_TO_HEAD:
                mini_wins, mini_diff = mini[row.team_id]
                key.extend((-mini_wins, -mini_diff))
            elif tb == TB_POINT_DIFF:
                key.append(-row.point_diff)
            elif tb == TB_POINTS_SCORED:
                key.append(-row.points_for)
        key.append(row.team_id)
        return tuple(key)

    ranked = sorted(rows.values(), key=sort_key)
    for index, row in enumerate(ranked, start=1):
        row.rank = index
    return ranked


def contributing_watermark(matches: Iterable[Match]) -> Optional[datetime]:
    """Newest `updated_at` among officially finalized matches."""
    stamps = [m.updated_at for m in matches if is_official(m) and m.updated_at is not None]
    return max(stamps) if stamps else None


def is_stale(stored_watermark: Optional[datetime], matches: Iterable[Match]) -> bool:
    """True when some contributing match is newer than what the stored standings saw."""
    latest = contributing_watermark(matches)
    if latest is None:
        return stored_watermark is not None
    return stored_watermark is None or latest > stored_watermark
