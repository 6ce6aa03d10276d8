"""Round-robin pool schedule: pairing completeness, pool naming, snake draft, assignment validation."""

import random
from itertools import combinations

import pytest

from poolplay.errors import ConfigurationError, ConsistencyError
from poolplay.models.division import Division
from poolplay.models.team import Team
from poolplay.services.pool_schedule import (
    PoolAssignment,
    build_pool_matches,
    calculate_pool_count,
    pool_name,
    pools_from_assignments,
    rr_pairings_by_round,
    snake_draft_pools,
    validate_pool_balance,
    validate_pool_matches,
)


def _teams(n, start=1):
    return [Team(id=i, division_id=1, name=f"T{i}", rating=float(100 - i)) for i in range(start, start + n)]


class TestRoundRobinPairings:
    @pytest.mark.parametrize("n", range(2, 9))
    def test_every_pair_exactly_once(self, n):
        pairings = rr_pairings_by_round(n)
        pairs = [frozenset((a, b)) for _, a, b in pairings]
        assert len(pairings) == n * (n - 1) // 2
        assert len(set(pairs)) == len(pairs)
        assert all(a != b for _, a, b in pairings)
        assert set(pairs) == {frozenset(p) for p in combinations(range(n), 2)}

    @pytest.mark.parametrize("n", range(2, 9))
    def test_no_team_plays_twice_in_a_round(self, n):
        by_round = {}
        for rnd, a, b in rr_pairings_by_round(n):
            seen = by_round.setdefault(rnd, set())
            assert a not in seen and b not in seen
            seen.update((a, b))

    def test_pool_of_four_plays_top_two_last(self):
        pairings = rr_pairings_by_round(4)
        assert pairings[-2] == (3, 0, 1)
        assert max(r for r, _, _ in pairings) == 3


class TestPoolNaming:
    @pytest.mark.parametrize("number,name", [(1, "Pool A"), (26, "Pool Z"), (27, "Pool AA"), (28, "Pool AB")])
    def test_pool_name(self, number, name):
        assert pool_name(number) == name

    def test_pool_count_rounds_up(self):
        assert calculate_pool_count(10, 4) == 3
        assert calculate_pool_count(8, 4) == 2

    def test_pool_size_below_two_rejected(self):
        with pytest.raises(ConfigurationError):
            calculate_pool_count(8, 1)


class TestSnakeDraft:
    def test_snake_order_by_rating(self):
        pools = snake_draft_pools(_teams(8), pool_size=4)
        assert [p.pool_name for p in pools] == ["Pool A", "Pool B"]
        assert pools[0].team_ids == [1, 4, 5, 8]
        assert pools[1].team_ids == [2, 3, 6, 7]

    def test_unrated_teams_seed_last(self):
        teams = _teams(4)
        teams[0].rating = None
        pools = snake_draft_pools(teams, pool_size=2)
        assert pools[0].team_ids == [2, 1]
        assert pools[1].team_ids == [3, 4]

    def test_duplicate_registrations_dropped(self):
        teams = _teams(4)
        pools = snake_draft_pools(teams + [teams[0]], pool_size=4)
        assert sorted(pools[0].team_ids) == [1, 2, 3, 4]

    def test_no_participants(self):
        with pytest.raises(ConfigurationError, match="no participants"):
            snake_draft_pools([], pool_size=4)

    def test_random_seeding_is_balanced_and_complete(self):
        pools = snake_draft_pools(_teams(11), pool_size=4, seeding_method="random", rng=random.Random(7))
        assert sorted(len(p.teams) for p in pools) == [3, 4, 4]
        assert sorted(t for p in pools for t in p.team_ids) == list(range(1, 12))
        validate_pool_balance(pools)

    def test_random_seeding_repeats_for_same_seed(self):
        first = snake_draft_pools(_teams(8), pool_size=4, seeding_method="random", rng=random.Random(42))
        second = snake_draft_pools(_teams(8), pool_size=4, seeding_method="random", rng=random.Random(42))
        assert [p.team_ids for p in first] == [p.team_ids for p in second]

    def test_unknown_seeding_method(self):
        with pytest.raises(ConfigurationError, match="Unknown seeding method 'alphabetical'"):
            snake_draft_pools(_teams(4), pool_size=2, seeding_method="alphabetical")


class TestManualAssignments:
    def setup_method(self):
        self.teams = {t.id: t for t in _teams(6)}

    def test_valid_assignment(self):
        pools = pools_from_assignments(
            [{"pool_name": "Pool A", "team_ids": [1, 2, 3]}, {"pool_name": "Pool B", "team_ids": [4, 5, 6]}],
            self.teams,
        )
        assert [p.pool_key for p in pools] == ["pool-a", "pool-b"]

    @pytest.mark.parametrize(
        "assignments,message",
        [
            ([], "Pool assignments missing"),
            ([{"pool_name": "Pool A", "team_ids": [1, 2]}, {"pool_name": "Pool B", "team_ids": [2, 3]}], "both"),
            ([{"pool_name": "Pool A", "team_ids": [1, 99]}], "unknown team 99"),
            ([{"pool_name": "Pool A", "team_ids": [1]}], "minimum is 2"),
            ([{"pool_name": "Pool A", "team_ids": []}], "empty team list"),
            ([{"pool_name": "Pool A", "team_ids": [1, 2]}, {"pool_name": "pool a", "team_ids": [3, 4]}], "more than once"),
        ],
    )
    def test_invalid_assignment_fails_closed(self, assignments, message):
        with pytest.raises(ConfigurationError, match=message):
            pools_from_assignments(assignments, self.teams)

    def test_pool_sizes_may_differ_by_one(self):
        pools = pools_from_assignments(
            [{"pool_name": "Pool A", "team_ids": [1, 2, 3, 4]}, {"pool_name": "Pool B", "team_ids": [5, 6]}],
            self.teams,
        )
        with pytest.raises(ConfigurationError, match="sizes range from 2 to 4"):
            validate_pool_balance(pools)

        validate_pool_balance(
            pools_from_assignments(
                [{"pool_name": "Pool A", "team_ids": [1, 2, 3]}, {"pool_name": "Pool B", "team_ids": [4, 5]}],
                self.teams,
            )
        )


class TestBuildPoolMatches:
    def setup_method(self):
        self.division = Division(id=3, tournament_id=1, name="Open", game_settings={"best_of": 1, "points_to_win": 11})
        teams = _teams(8)
        self.pools = [PoolAssignment("Pool A", teams[:3]), PoolAssignment("Pool B", teams[3:])]

    def test_match_counts_and_ids(self):
        matches = build_pool_matches(self.division, self.pools)
        validate_pool_matches(self.pools, matches)
        assert len(matches) == 3 + 10
        assert [m.match_number for m in matches] == list(range(1, 14))
        first = matches[0]
        assert first.id == f"3__pool__pool-a__{min(first.team_a_id, first.team_b_id)}__{max(first.team_a_id, first.team_b_id)}"
        assert first.game_settings == {"best_of": 1, "points_to_win": 11}
        assert all(m.stage == "pool" and m.status == "scheduled" for m in matches)

    def test_regeneration_yields_identical_rows(self):
        first = [m.model_dump() for m in build_pool_matches(self.division, self.pools)]
        second = [m.model_dump() for m in build_pool_matches(self.division, self.pools)]
        assert first == second

    def test_validation_catches_duplicates(self):
        matches = build_pool_matches(self.division, self.pools)
        with pytest.raises(ConsistencyError, match="Duplicate"):
            validate_pool_matches(self.pools, matches + [matches[0]])

    def test_validation_catches_missing_pair(self):
        matches = build_pool_matches(self.division, self.pools)
        with pytest.raises(ConsistencyError) as exc:
            validate_pool_matches(self.pools, matches[1:])
        assert exc.value.context["pool_key"] == "pool-a"
