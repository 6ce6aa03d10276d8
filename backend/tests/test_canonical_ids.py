"""Canonical ids are pure and stable: the same coordinate always maps to the same id."""

import pytest

from poolplay.services.canonical_ids import (
    bracket_match_id,
    bronze_match_id,
    canonical_id,
    normalize_pool_key,
    pool_match_id,
    pool_result_id,
    seeds_doc_id,
)


def test_canonical_id_joins_parts():
    assert canonical_id(12, "bracket", ("main", 3)) == "12__bracket__main__3"


def test_pool_match_id_is_order_independent():
    assert pool_match_id(5, "pool-a", 9, 2) == pool_match_id(5, "pool-a", 2, 9) == "5__pool__pool-a__2__9"


def test_bracket_and_bronze_ids():
    assert bracket_match_id(5, "plate", 7) == "5__bracket__plate__7"
    assert bronze_match_id(5, "main") == "5__bracket__main__bronze"
    assert seeds_doc_id(5, "main") == "5__seeds__main"
    assert pool_result_id(5, "pool-b") == "5__pool_result__pool-b"


def test_id_factory_is_injectable():
    def slash_ids(division_id, scope, coordinate):
        return "/".join([str(division_id), scope, *map(str, coordinate)])

    assert bracket_match_id(5, "main", 1, id_factory=slash_ids) == "5/bracket/main/1"
    assert pool_match_id(5, "pool-a", 4, 3, id_factory=slash_ids) == "5/pool/pool-a/3/4"


def test_separator_inside_a_part_is_rejected():
    with pytest.raises(ValueError):
        canonical_id(1, "pool", ("a__b", 1))


@pytest.mark.parametrize(
    "name,key",
    [("Pool A", "pool-a"), ("  Pool  AB ", "pool-ab"), ("Gold Group 1", "gold-group-1")],
)
def test_normalize_pool_key(name, key):
    assert normalize_pool_key(name) == key
