"""Qualifier selection: K per rule, completeness gate, plate eligibility, wildcards."""

import pytest

from poolplay.errors import ConfigurationError, PreconditionError
from poolplay.models.match import Match
from poolplay.services.pool_standings import StandingRow
from poolplay.services.qualifiers import (
    PoolStandings,
    assert_pool_stage_complete,
    pool_label,
    qualifiers_per_pool,
    select_qualifiers,
)


def _pool(letter, first_id, wins, diffs=None):
    diffs = diffs or [0] * len(wins)
    rows = []
    for rank, (w, d) in enumerate(zip(wins, diffs), start=1):
        rows.append(
            StandingRow(
                team_id=first_id + rank - 1,
                name=f"{letter}{rank}",
                rank=rank,
                wins=w,
                losses=len(wins) - 1 - w,
                points_for=50 + d,
                points_against=50,
            )
        )
    return PoolStandings(pool_name=f"Pool {letter}", pool_key=f"pool-{letter.lower()}", rows=rows)


class TestAdvancementRule:
    @pytest.mark.parametrize("rule,k", [("top_1", 1), ("top_2", 2), ("top_n_plus_best", 1)])
    def test_supported_rules(self, rule, k):
        assert qualifiers_per_pool(rule) == k

    @pytest.mark.parametrize("rule", ["top_3", "top_0", "best_of_pool", ""])
    def test_unsupported_rules_rejected(self, rule):
        with pytest.raises(ConfigurationError):
            qualifiers_per_pool(rule)


def test_pool_label():
    assert pool_label("Pool A") == "A"
    assert pool_label("pool  ab") == "AB"


class TestCompletenessGate:
    def _match(self, mid, status):
        return Match(id=mid, tournament_id=1, division_id=1, stage="pool", round_number=1, match_number=1, status=status)

    def test_terminal_statuses_pass(self):
        assert_pool_stage_complete(
            [self._match("m1", "completed"), self._match("m2", "forfeit"), self._match("m3", "bye")]
        )

    def test_incomplete_matches_block_with_identities(self):
        matches = [
            self._match("m1", "completed"),
            self._match("m3", "in_progress"),
            self._match("m2", "scheduled"),
        ]
        with pytest.raises(PreconditionError) as exc:
            assert_pool_stage_complete(matches)
        assert "2 pool match(es)" in exc.value.message
        assert exc.value.blocking == ["m2", "m3"]


class TestSelection:
    def setup_method(self):
        self.standings = [
            _pool("A", 1, [3, 2, 1, 0], [20, 5, -5, -20]),
            _pool("B", 11, [3, 2, 1, 0], [15, 8, -8, -15]),
            _pool("C", 21, [2, 2, 1, 1], [10, 2, -2, -10]),
        ]

    def test_top_2_without_plate(self):
        sel = select_qualifiers(self.standings, "top_2")
        assert [e.slot_key for e in sel.main_entries()] == ["A1", "A2", "B1", "B2", "C1", "C2"]
        assert sel.plate_entries() == []
        assert [r.rank for r in sel.pools[0].eliminated] == [3, 4]

    def test_top_2_with_default_plate_size(self):
        sel = select_qualifiers(self.standings, "top_2", plate_enabled=True)
        assert [e.slot_key for e in sel.plate_entries()] == ["A3", "A4", "B3", "B4", "C3", "C4"]
        assert all(not p.eliminated for p in sel.pools)

    def test_plate_per_pool_limit(self):
        sel = select_qualifiers(self.standings, "top_2", plate_enabled=True, plate_per_pool=1)
        assert [e.slot_key for e in sel.plate_entries()] == ["A3", "B3", "C3"]
        assert [r.rank for r in sel.pools[2].eliminated] == [4]

    def test_top_n_plus_best_adds_best_runners_up(self):
        sel = select_qualifiers(self.standings, "top_n_plus_best", advancement_count=5)
        keys = [e.slot_key for e in sel.main_entries()]
        # Winners first, then wildcards by wins then point diff: B2 (+8), A2 (+5)
        assert keys == ["A1", "B1", "C1", "B2", "A2"]
        assert [r.rank for r in sel.pools[0].eliminated] == [3, 4]
        assert [r.rank for r in sel.pools[2].eliminated] == [2, 3, 4]

    def test_non_positive_plate_per_pool_uses_default(self):
        for value in (0, -1):
            sel = select_qualifiers(self.standings, "top_2", plate_enabled=True, plate_per_pool=value)
            assert [e.slot_key for e in sel.plate_entries()] == ["A3", "A4", "B3", "B4", "C3", "C4"]

    def test_top_n_plus_best_wildcards_skip_plate_teams(self):
        sel = select_qualifiers(self.standings[:2], "top_n_plus_best", advancement_count=3, plate_enabled=True)
        # Runners-up belong to the plate, so the wildcard comes from third place: A3 (-5) over B3 (-8)
        assert sel.to_dict()["main"] == ["A1", "B1", "A3"]
        assert sel.to_dict()["plate"] == ["A2", "B2"]
        assert sel.to_dict()["eliminated"] == ["A4", "B3", "B4"]

    def test_top_n_plus_best_with_plate_across_three_pools(self):
        sel = select_qualifiers(self.standings, "top_n_plus_best", advancement_count=5, plate_enabled=True)
        assert [e.slot_key for e in sel.main_entries()] == ["A1", "B1", "C1", "C3", "A3"]
        assert [e.slot_key for e in sel.plate_entries()] == ["A2", "B2", "C2"]
        assert {e.row.rank for e in sel.plate_entries()} == {2}

    def test_top_n_plus_best_requires_count(self):
        with pytest.raises(ConfigurationError, match="advancement_count"):
            select_qualifiers(self.standings, "top_n_plus_best")

    def test_empty_pools_rejected(self):
        with pytest.raises(ConfigurationError, match="No qualifiers"):
            select_qualifiers([PoolStandings("Pool A", "pool-a", [])], "top_1")
