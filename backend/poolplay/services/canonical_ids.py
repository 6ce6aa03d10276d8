"""
Canonical ids for generated records.

Every generated record is keyed by a pure function of (division, scope, coordinate),
so regenerating the same pool pairing or bracket position overwrites instead of
duplicating. Builders accept an `id_factory` with the same signature as
`canonical_id` so a storage backend with different key constraints can swap it.
"""

import re
from typing import Callable, Sequence, Union

IdPart = Union[str, int]
IdFactory = Callable[[int, str, Sequence[IdPart]], str]

SEPARATOR = "__"

SCOPE_POOL = "pool"
SCOPE_BRACKET = "bracket"
SCOPE_SEEDS = "seeds"
SCOPE_POOL_RESULT = "pool_result"

BRONZE_COORDINATE = "bronze"


def canonical_id(division_id: int, scope: str, coordinate: Sequence[IdPart]) -> str:
    parts = [str(division_id), scope, *[str(c) for c in coordinate]]
    for part in parts:
        if not part or SEPARATOR in part:
            raise ValueError(f"Invalid canonical id part {part!r} in {parts}")
    return SEPARATOR.join(parts)


def normalize_pool_key(pool_name: str) -> str:
    """'Pool A' -> 'pool-a'"""
    key = re.sub(r"\s+", "-", pool_name.strip().lower())
    if not key:
        raise ValueError("Pool name is empty")
    return key


def pool_match_id(
    division_id: int, pool_key: str, team_a_id: int, team_b_id: int, id_factory: IdFactory = canonical_id
) -> str:
    # Unordered pair: (a, b) and (b, a) map to the same id
    low, high = sorted((team_a_id, team_b_id))
    return id_factory(division_id, SCOPE_POOL, (pool_key, low, high))


def bracket_match_id(
    division_id: int, bracket_type: str, position: int, id_factory: IdFactory = canonical_id
) -> str:
    return id_factory(division_id, SCOPE_BRACKET, (bracket_type, position))


def bronze_match_id(division_id: int, bracket_type: str, id_factory: IdFactory = canonical_id) -> str:
    return id_factory(division_id, SCOPE_BRACKET, (bracket_type, BRONZE_COORDINATE))


def seeds_doc_id(division_id: int, bracket_type: str, id_factory: IdFactory = canonical_id) -> str:
    return id_factory(division_id, SCOPE_SEEDS, (bracket_type,))


def pool_result_id(division_id: int, pool_key: str, id_factory: IdFactory = canonical_id) -> str:
    return id_factory(division_id, SCOPE_POOL_RESULT, (pool_key,))
