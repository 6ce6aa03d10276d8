"""Bracket seeding: BYE allocation, pairing passes, same-pool avoidance, document invariants."""

import logging

import pytest

from poolplay.errors import ConsistencyError
from poolplay.services import bracket_seeds
from poolplay.services.bracket_seeds import (
    Round1Pair,
    avoid_same_pool_pairs,
    build_main_seed_document,
    build_plate_seed_document,
    next_pow2,
    same_pool_pairs,
    validate_seed_document,
)
from tests.factories import entries


def _pairs(doc):
    return [(p.side_a, p.side_b) for p in doc.round1_pairs]


def _check_invariants(doc):
    remaining = doc.slot_count - doc.bye_count
    assert doc.bracket_size == next_pow2(doc.slot_count)
    assert doc.bye_count + remaining == doc.slot_count
    assert len(doc.round1_pairs) == doc.bracket_size // 2 == doc.round1_match_count
    assert sum(1 for p in doc.round1_pairs if p.is_bye) == doc.bye_count


@pytest.mark.parametrize("n,size", [(1, 2), (2, 2), (3, 4), (5, 8), (8, 8), (10, 16), (17, 32)])
def test_next_pow2(n, size):
    assert next_pow2(n) == size


class TestMainBracket:
    def test_five_pools_top_two(self):
        keys = [f"{p}{r}" for r in (1, 2) for p in "ABCDE"]
        doc = build_main_seed_document(entries(keys), qualifiers_per_pool=2, pool_count=5)
        _check_invariants(doc)
        assert (doc.slot_count, doc.bracket_size, doc.bye_count, doc.round1_match_count) == (10, 16, 6, 8)
        assert doc.rounds == 4
        assert _pairs(doc) == [
            ("A1", None),
            ("B1", None),
            ("C1", None),
            ("D1", None),
            ("E1", None),
            ("A2", None),
            ("B2", "E2"),
            ("C2", "D2"),
        ]
        assert [p.match_number for p in doc.round1_pairs] == list(range(1, 9))

    def test_four_pools_top_two_mirror_pairing(self):
        keys = ["A1", "B1", "C1", "D1", "A2", "B2", "C2", "D2"]
        doc = build_main_seed_document(entries(keys), qualifiers_per_pool=2, pool_count=4)
        _check_invariants(doc)
        assert _pairs(doc) == [("A1", "D2"), ("B1", "C2"), ("C1", "B2"), ("D1", "A2")]
        assert same_pool_pairs(doc) == []

    def test_three_pools_top_two_middle_pool_has_no_mirror(self):
        keys = ["A1", "B1", "C1", "A2", "B2", "C2"]
        doc = build_main_seed_document(entries(keys), qualifiers_per_pool=2, pool_count=3)
        _check_invariants(doc)
        assert _pairs(doc) == [("A1", None), ("B1", None), ("C1", "A2"), ("B2", "C2")]

    @pytest.mark.parametrize("pool_count", [2, 3, 4, 5, 6, 7, 8])
    def test_top_one_never_pairs_same_pool(self, pool_count):
        keys = [f"{chr(65 + i)}1" for i in range(pool_count)]
        doc = build_main_seed_document(entries(keys), qualifiers_per_pool=1, pool_count=pool_count)
        _check_invariants(doc)
        assert same_pool_pairs(doc) == []

    def test_top_one_folds_first_with_last(self):
        doc = build_main_seed_document(entries(["A1", "B1", "C1", "D1"]), qualifiers_per_pool=1, pool_count=4)
        assert _pairs(doc) == [("A1", "D1"), ("B1", "C1")]

    def test_single_qualifier_gets_a_bye(self):
        doc = build_main_seed_document(entries(["A1"]), qualifiers_per_pool=1, pool_count=1)
        assert (doc.bracket_size, doc.rounds) == (2, 1)
        assert _pairs(doc) == [("A1", None)]

    def test_pool_labels_past_z_sort_after_single_letters(self):
        keys = [f"{chr(65 + i)}1" for i in range(26)] + ["AA1", "AB1"]
        doc = build_main_seed_document(entries(keys), qualifiers_per_pool=1, pool_count=28)
        _check_invariants(doc)
        assert doc.round1_pairs[0].side_a == "A1"
        byes = [p.side_a for p in doc.round1_pairs if p.is_bye]
        assert "AA1" not in byes and "AB1" not in byes

    def test_slot_metadata(self):
        doc = build_main_seed_document(entries(["A1", "B1"]), qualifiers_per_pool=1, pool_count=2)
        slot = doc.to_dict()["slots"]["B1"]
        assert slot["team_id"] == 2
        assert slot["pool_key"] == "pool-b"
        assert slot["rank"] == 1


class TestPlateBracket:
    def test_fewer_than_two_gives_empty_document(self):
        doc = build_plate_seed_document(entries(["A3"]), qualifiers_per_pool=2, pool_count=1)
        assert doc.is_empty
        assert (doc.bracket_size, doc.round1_match_count, doc.slots, doc.round1_pairs) == (0, 0, {}, [])
        validate_seed_document(doc)

    def test_fold_then_swap_away_same_pool(self):
        keys = ["A3", "B3", "C3", "A4", "B4", "C4"]
        doc = build_plate_seed_document(entries(keys), qualifiers_per_pool=2, pool_count=3)
        _check_invariants(doc)
        # Fold gives C3-C4, A4-B4; the swap pass breaks up C3-C4
        assert _pairs(doc) == [("A3", None), ("B3", None), ("C3", "B4"), ("A4", "C4")]
        assert same_pool_pairs(doc) == []

    def test_single_pool_plate_warns_about_same_pool_match(self, caplog):
        with caplog.at_level(logging.WARNING, logger="poolplay.services.bracket_seeds"):
            doc = build_plate_seed_document(entries(["A3", "A4"]), qualifiers_per_pool=2, pool_count=1)

        assert _pairs(doc) == [("A3", "A4")]
        assert [(p.side_a, p.side_b) for p in same_pool_pairs(doc)] == [("A3", "A4")]
        assert "plate seeds keep 1 same-pool round-1 match(es): A3 vs A4" in caplog.text

    def test_no_warning_when_swap_pass_clears_pools(self, caplog):
        keys = ["A3", "B3", "C3", "A4", "B4", "C4"]
        with caplog.at_level(logging.WARNING, logger="poolplay.services.bracket_seeds"):
            build_plate_seed_document(entries(keys), qualifiers_per_pool=2, pool_count=3)
        assert "same-pool" not in caplog.text


class TestSwapPass:
    def test_swaps_side_b_with_later_pair(self):
        slots = build_main_seed_document(
            entries(["A1", "B1", "A2", "B2"]), qualifiers_per_pool=2, pool_count=2
        ).slots
        pairs = [["A1", "A2"], ["B1", "B2"]]
        assert avoid_same_pool_pairs(pairs, slots) == 1
        assert pairs == [["A1", "B2"], ["B1", "A2"]]

    def test_no_swap_when_it_would_create_another_same_pool_pair(self):
        slots = build_main_seed_document(
            entries(["A1", "B1", "A2", "B2"]), qualifiers_per_pool=2, pool_count=2
        ).slots
        pairs = [["A1", "A2"], ["A1", "B1"]]
        # Swapping would give A1-B1 / A1-A2: still same-pool, so nothing moves
        assert avoid_same_pool_pairs(pairs, slots) == 0


class TestConsistency:
    def test_odd_remaining_seed_count_is_fatal(self, monkeypatch):
        monkeypatch.setattr(bracket_seeds, "next_pow2", lambda n: 7)
        with pytest.raises(ConsistencyError, match="is odd") as exc:
            build_main_seed_document(entries(["A1", "B1", "C1", "D1"]), qualifiers_per_pool=1, pool_count=4)
        assert exc.value.context["remaining"] == ["D1"]

    def test_pair_count_mismatch(self):
        doc = build_main_seed_document(entries(["A1", "B1", "C1", "D1"]), qualifiers_per_pool=1, pool_count=4)
        doc.round1_pairs.pop()
        with pytest.raises(ConsistencyError, match="Round-1 match count mismatch"):
            validate_seed_document(doc)

    def test_dangling_slot_reference(self):
        doc = build_main_seed_document(entries(["A1", "B1", "C1", "D1"]), qualifiers_per_pool=1, pool_count=4)
        doc.round1_pairs[0] = Round1Pair(match_number=1, side_a="A1", side_b="Z9")
        with pytest.raises(ConsistencyError) as exc:
            validate_seed_document(doc)
        assert exc.value.context["missing"] == ["Z9"]
