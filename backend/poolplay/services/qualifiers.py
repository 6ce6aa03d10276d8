"""
Qualifier selection.

Partitions every pool's ranked standings into main-bracket qualifiers, plate-eligible
teams and eliminated teams. Runs only once the pool stage is finished: any non-terminal
pool match blocks selection outright.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from poolplay.errors import ConfigurationError, PreconditionError
from poolplay.models.match import STAGE_POOL, TERMINAL_STATUSES, Match
from poolplay.services.pool_standings import StandingRow

RULE_TOP_1 = "top_1"
RULE_TOP_2 = "top_2"
RULE_TOP_N_PLUS_BEST = "top_n_plus_best"

MAX_QUALIFIERS_PER_POOL = 2


@dataclass
class PoolStandings:
    pool_name: str
    pool_key: str
    rows: List[StandingRow]

    @property
    def label(self) -> str:
        return pool_label(self.pool_name)


@dataclass
class SeededEntry:
    """A standings row tagged with the pool it came from."""

    pool_name: str
    pool_key: str
    pool_label: str
    row: StandingRow

    @property
    def slot_key(self) -> str:
        return f"{self.pool_label}{self.row.rank}"


@dataclass
class PoolQualifiers:
    pool_name: str
    pool_key: str
    pool_label: str
    qualifiers: List[StandingRow] = field(default_factory=list)
    plate_eligible: List[StandingRow] = field(default_factory=list)
    eliminated: List[StandingRow] = field(default_factory=list)


@dataclass
class QualifierSelection:
    rule: str
    qualifiers_per_pool: int
    pools: List[PoolQualifiers]
    wildcards: List[SeededEntry] = field(default_factory=list)

    def _entries(self, attr: str) -> List[SeededEntry]:
        entries = []
        for pool in self.pools:
            for row in getattr(pool, attr):
                entries.append(SeededEntry(pool.pool_name, pool.pool_key, pool.pool_label, row))
        return entries

    def main_entries(self) -> List[SeededEntry]:
        return self._entries("qualifiers") + list(self.wildcards)

    def plate_entries(self) -> List[SeededEntry]:
        return self._entries("plate_eligible")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "qualifiers_per_pool": self.qualifiers_per_pool,
            "main": [e.slot_key for e in self.main_entries()],
            "plate": [e.slot_key for e in self.plate_entries()],
            "eliminated": [
                f"{p.pool_label}{row.rank}" for p in self.pools for row in p.eliminated
            ],
        }


def pool_label(name: str) -> str:
    """'Pool A' -> 'A'. Labels prefix seed slot keys, so they carry no spaces."""
    label = re.sub(r"^pool\s+", "", name.strip(), flags=re.IGNORECASE)
    return re.sub(r"\s+", "", label).upper()


def qualifiers_per_pool(rule: str) -> int:
    """K for an advancement rule. Only K in {1, 2} is supported downstream."""
    if rule == RULE_TOP_N_PLUS_BEST:
        return 1
    match = re.fullmatch(r"top_(\d+)", rule or "")
    if not match:
        raise ConfigurationError(
            f"Unknown advancement rule '{rule}'; expected top_1, top_2 or top_n_plus_best"
        )
    k = int(match.group(1))
    if k < 1 or k > MAX_QUALIFIERS_PER_POOL:
        raise ConfigurationError(
            f"Advancement rule '{rule}' needs {k} qualifiers per pool; only 1 or 2 are supported"
        )
    return k


def blocking_pool_matches(matches: Iterable[Match]) -> List[Match]:
    return sorted(
        (m for m in matches if m.stage == STAGE_POOL and m.status not in TERMINAL_STATUSES),
        key=lambda m: m.id,
    )


def assert_pool_stage_complete(matches: Iterable[Match]) -> None:
    blocking = blocking_pool_matches(matches)
    if blocking:
        raise PreconditionError(
            f"Pool stage incomplete: {len(blocking)} pool match(es) are not completed, forfeited or byes",
            blocking=[m.id for m in blocking],
        )


def _wildcard_sort_key(entry: SeededEntry):
    row = entry.row
    return (-row.wins, -row.point_diff, -row.points_for, row.rank, len(entry.pool_label), entry.pool_label)


def select_qualifiers(
    standings: Sequence[PoolStandings],
    rule: str,
    advancement_count: Optional[int] = None,
    plate_enabled: bool = False,
    plate_per_pool: Optional[int] = None,
) -> QualifierSelection:
    """
    Split ranked pools into qualifiers / plate-eligible / eliminated.

    Plate takes the next `plate_per_pool` ranks after the qualifiers in each pool;
    a missing or non-positive value means min(K, pool size - K).
    top_n_plus_best advances every pool winner plus the best remaining non-plate
    teams across pools (wins, point diff, points for) up to `advancement_count` in total.
    """
    k = qualifiers_per_pool(rule)
    pools: List[PoolQualifiers] = []
    for ps in standings:
        rows = sorted(ps.rows, key=lambda r: r.rank)
        pool = PoolQualifiers(
            pool_name=ps.pool_name,
            pool_key=ps.pool_key,
            pool_label=ps.label,
            qualifiers=rows[:k],
            eliminated=rows[k:],
        )
        if plate_enabled:
            limit = plate_per_pool if plate_per_pool and plate_per_pool > 0 else min(k, len(rows) - k)
            limit = max(0, limit)
            pool.plate_eligible = pool.eliminated[:limit]
            pool.eliminated = pool.eliminated[limit:]
        pools.append(pool)

    wildcards: List[SeededEntry] = []
    if rule == RULE_TOP_N_PLUS_BEST:
        if advancement_count is None or advancement_count < 1:
            raise ConfigurationError("advancement_count is required for top_n_plus_best")
        spots = advancement_count - len(pools)
        if spots > 0:
            candidates = [
                SeededEntry(p.pool_name, p.pool_key, p.pool_label, row) for p in pools for row in p.eliminated
            ]
            wildcards = sorted(candidates, key=_wildcard_sort_key)[:spots]
            taken = {id(e.row) for e in wildcards}
            for p in pools:
                p.eliminated = [r for r in p.eliminated if id(r) not in taken]

    selection = QualifierSelection(rule=rule, qualifiers_per_pool=k, pools=pools, wildcards=wildcards)
    if not selection.main_entries():
        raise ConfigurationError("No qualifiers: every pool is empty")
    return selection
