"""
Pool schedule builder.

Turns a participant-to-pool assignment into round-robin pool matches keyed by
canonical id. Assignments come either from the organizer (validated fail-closed)
or from a snake draft by rating.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from poolplay.errors import ConfigurationError, ConsistencyError
from poolplay.models.division import Division
from poolplay.models.match import STAGE_POOL, Match
from poolplay.models.team import Team
from poolplay.services.canonical_ids import IdFactory, canonical_id, normalize_pool_key, pool_match_id

logger = logging.getLogger(__name__)

MIN_POOL_SIZE = 2

SEEDING_RATING = "rating"
SEEDING_RANDOM = "random"
SEEDING_METHODS = (SEEDING_RATING, SEEDING_RANDOM)


@dataclass
class PoolAssignment:
    pool_name: str
    teams: List[Team] = field(default_factory=list)

    @property
    def pool_key(self) -> str:
        return normalize_pool_key(self.pool_name)

    @property
    def team_ids(self) -> List[int]:
        return [t.id for t in self.teams]

    def to_dict(self) -> Dict[str, Any]:
        return {"pool_name": self.pool_name, "team_ids": self.team_ids}


def pool_name(pool_number: int) -> str:
    """1 -> 'Pool A', 26 -> 'Pool Z', 27 -> 'Pool AA'."""
    if pool_number < 1:
        raise ValueError("pool_number is 1-based")
    letters = ""
    n = pool_number
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(65 + rem) + letters
    return f"Pool {letters}"


def pool_label_sort_key(label: str) -> Tuple[int, str]:
    """Order pool letters A..Z before AA.."""
    return (len(label), label)


def calculate_pool_count(team_count: int, pool_size: int) -> int:
    if pool_size < MIN_POOL_SIZE:
        raise ConfigurationError(f"pool_size must be at least {MIN_POOL_SIZE} (got {pool_size})")
    return max(1, math.ceil(team_count / pool_size))


def dedupe_teams(teams: Iterable[Team]) -> List[Team]:
    """Drop repeated registrations of the same team id, keeping the first."""
    seen = set()
    unique = []
    for team in teams:
        if team.id in seen:
            logger.warning("Dropping duplicate team %s (%s) from pool assignment input", team.id, team.name)
            continue
        seen.add(team.id)
        unique.append(team)
    return unique


def snake_draft_pools(
    teams: Sequence[Team],
    pool_size: int,
    seeding_method: str = SEEDING_RATING,
    rng: Optional[random.Random] = None,
) -> List[PoolAssignment]:
    """
    Assign teams to pools by snake draft on rating (highest first, unrated last),
    or on a shuffled order when `seeding_method` is "random".

    With 2 pools, Pool A gets seeds 1, 4, 5, 8 and Pool B gets 2, 3, 6, 7.
    """
    teams = dedupe_teams(teams)
    if not teams:
        raise ConfigurationError("Cannot build pools: division has no participants")
    if seeding_method not in SEEDING_METHODS:
        raise ConfigurationError(
            f"Unknown seeding method '{seeding_method}'; expected one of {list(SEEDING_METHODS)}"
        )
    count = calculate_pool_count(len(teams), pool_size)
    if seeding_method == SEEDING_RANDOM:
        ranked = list(teams)
        (rng or random.Random()).shuffle(ranked)
    else:
        ranked = sorted(teams, key=lambda t: (t.rating is None, -(t.rating or 0.0)))
    pools = [PoolAssignment(pool_name=pool_name(i + 1)) for i in range(count)]

    index = 0
    direction = 1
    for team in ranked:
        pools[index].teams.append(team)
        index += direction
        if index >= count:
            index = count - 1
            direction = -1
        elif index < 0:
            index = 0
            direction = 1
    return pools


def pools_from_assignments(
    assignments: Sequence[Mapping[str, Any]], teams_by_id: Mapping[int, Team]
) -> List[PoolAssignment]:
    """Validate saved/manual assignments [{"pool_name", "team_ids"}] and resolve team rows."""
    if not assignments:
        raise ConfigurationError("Pool assignments missing. Generate or save pool assignments first.")

    pools: List[PoolAssignment] = []
    placed: Dict[int, str] = {}
    keys = set()
    for entry in assignments:
        name = (entry.get("pool_name") or "").strip()
        team_ids = list(entry.get("team_ids") or [])
        if not name:
            raise ConfigurationError("Pool assignment has no pool_name")
        key = normalize_pool_key(name)
        if key in keys:
            raise ConfigurationError(f"Pool '{name}' is listed more than once")
        keys.add(key)
        if not team_ids:
            raise ConfigurationError(f"{name} has an empty team list")

        pool = PoolAssignment(pool_name=name)
        for team_id in team_ids:
            if team_id in placed:
                raise ConfigurationError(
                    f"Team {team_id} is assigned to both {placed[team_id]} and {name}"
                )
            team = teams_by_id.get(team_id)
            if team is None:
                raise ConfigurationError(f"{name} references unknown team {team_id}")
            placed[team_id] = name
            pool.teams.append(team)
        if len(pool.teams) < MIN_POOL_SIZE:
            raise ConfigurationError(f"{name} has {len(pool.teams)} team(s); minimum is {MIN_POOL_SIZE}")
        pools.append(pool)
    return pools


def validate_pool_balance(pools: Sequence[PoolAssignment]) -> None:
    """Organizer-supplied pools may differ in size by at most one team."""
    if not pools:
        return
    sizes = [len(p.teams) for p in pools]
    if max(sizes) - min(sizes) > 1:
        raise ConfigurationError(
            f"Pools are imbalanced: sizes range from {min(sizes)} to {max(sizes)} teams",
        )


def rr_pairings_by_round(teams_per_pool: int) -> List[Tuple[int, int, int]]:
    """
    Round-robin pairings. Returns list of (round_number, idx_a, idx_b) with 0-based
    pool positions.

    Pool size 4 uses exact preset order (1v2 last):
    - Round 1: 1v4, 2v3
    - Round 2: 1v3, 2v4
    - Round 3: 1v2, 3v4

    Other sizes: circle method, with a BYE position for odd sizes.
    """
    if teams_per_pool == 4:
        return [(1, 0, 3), (1, 1, 2), (2, 0, 2), (2, 1, 3), (3, 0, 1), (3, 2, 3)]

    n = teams_per_pool
    n2 = n + 1 if n % 2 == 1 else n
    bye_idx = n if n % 2 == 1 else -1
    positions = list(range(n2))

    result: List[Tuple[int, int, int]] = []
    for round_num in range(1, n2):
        for i in range(n2 // 2):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                continue
            result.append((round_num, min(a, b), max(a, b)))
        # Keep 0 fixed, rotate the rest
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]
    return result


def build_pool_matches(
    division: Division,
    pools: Sequence[PoolAssignment],
    id_factory: IdFactory = canonical_id,
) -> List[Match]:
    matches: List[Match] = []
    match_number = 0
    for pool in pools:
        key = pool.pool_key
        for round_num, ia, ib in rr_pairings_by_round(len(pool.teams)):
            team_a, team_b = pool.teams[ia], pool.teams[ib]
            match_number += 1
            matches.append(
                Match(
                    id=pool_match_id(division.id, key, team_a.id, team_b.id, id_factory),
                    tournament_id=division.tournament_id,
                    division_id=division.id,
                    stage=STAGE_POOL,
                    pool_name=pool.pool_name,
                    pool_key=key,
                    round_number=round_num,
                    round_name=f"Round {round_num}",
                    match_number=match_number,
                    team_a_id=team_a.id,
                    team_a_name=team_a.name,
                    team_a_player_ids=list(team_a.player_ids or []),
                    team_b_id=team_b.id,
                    team_b_name=team_b.name,
                    team_b_player_ids=list(team_b.player_ids or []),
                    game_settings=dict(division.game_settings) if division.game_settings else None,
                )
            )
    return matches


def validate_pool_matches(pools: Sequence[PoolAssignment], matches: Sequence[Match]) -> None:
    """Each pool gets exactly N(N-1)/2 matches covering every unordered pair once."""
    by_pool: Dict[str, List[Match]] = {}
    for m in matches:
        by_pool.setdefault(m.pool_key, []).append(m)

    ids = [m.id for m in matches]
    if len(ids) != len(set(ids)):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise ConsistencyError("Duplicate pool match ids generated", {"duplicates": dupes})

    for pool in pools:
        members = set(pool.team_ids)
        pool_matches = by_pool.get(pool.pool_key, [])
        n = len(members)
        expected = n * (n - 1) // 2
        pairs = set()
        for m in pool_matches:
            if m.team_a_id == m.team_b_id:
                raise ConsistencyError(f"Self-pairing in {pool.pool_name}", {"match_id": m.id})
            if m.team_a_id not in members or m.team_b_id not in members:
                raise ConsistencyError(
                    f"Match {m.id} pairs a team outside {pool.pool_name}",
                    {"match_id": m.id, "pool_team_ids": sorted(members)},
                )
            pairs.add(frozenset((m.team_a_id, m.team_b_id)))
        expected_pairs = {frozenset(p) for p in combinations(members, 2)}
        if len(pool_matches) != expected or pairs != expected_pairs:
            raise ConsistencyError(
                f"{pool.pool_name} has {len(pool_matches)} matches covering {len(pairs)} pairs; expected {expected}",
                {"pool_key": pool.pool_key, "team_count": n, "match_count": len(pool_matches)},
            )
