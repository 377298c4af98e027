"""
Challenge selection - daily/weekly policies, weighted draws and XP potential
"""
import random

import pytest

from spotitnow.services.challenge_selector import (
    calculate_xp_potential,
    consolidate,
    select_daily,
    select_weekly,
    weighted_pick,
)
from tests.conftest import MANIFEST


def by_name(selection):
    return {entry["name"]: entry for entry in selection}


# ==================== WEIGHTED DRAWS ====================

class TestWeightedPick:

    def test_empty_pool_returns_none(self, scripted_rng):
        assert weighted_pick([], scripted_rng([0.5])) is None

    def test_roll_walks_cumulative_weights(self, scripted_rng):
        pool = [{"name": "A", "probability": 75}, {"name": "B", "probability": 55}]
        # total weight 130: 0.5 * 130 = 65 falls in A, 0.9 * 130 = 117 falls in B
        assert weighted_pick(pool, scripted_rng([0.5]))["name"] == "A"
        assert weighted_pick(pool, scripted_rng([0.9]))["name"] == "B"

    def test_zero_roll_returns_first_entry(self, scripted_rng):
        pool = [{"name": "A", "probability": 10}, {"name": "B", "probability": 90}]
        assert weighted_pick(pool, scripted_rng([0.0]))["name"] == "A"

    def test_higher_probability_drawn_more_often(self):
        pool = [{"name": "Common", "probability": 90}, {"name": "Scarce", "probability": 10}]
        rng = random.Random(42)
        draws = [weighted_pick(pool, rng)["name"] for _ in range(2000)]
        assert draws.count("Common") > draws.count("Scarce") * 4


class TestConsolidate:

    def test_merges_duplicates_in_first_drawn_order(self):
        fox = {"name": "Red Fox", "probability": 8}
        jay = {"name": "Blue Jay", "probability": 30}
        result = consolidate([jay, fox, jay, None, jay])

        assert result == [
            {"name": "Blue Jay", "probability": 30, "count": 3},
            {"name": "Red Fox", "probability": 8, "count": 1},
        ]


# ==================== DAILY ====================

class TestSelectDaily:

    def test_moderate_branch_returns_single_animal(self, scripted_rng):
        rng = scripted_rng([0.1])
        result = select_daily(MANIFEST, rng)

        assert result == [{"name": "Northern Cardinal", "probability": 45, "count": 1}]
        assert rng.values == []

    def test_easy_branch_draws_three_with_replacement(self, scripted_rng):
        # 0.5 skips the moderate branch; easy pool weights are 75 + 55 = 130
        rng = scripted_rng([0.5, 0.1, 0.9, 0.2])
        result = select_daily(MANIFEST, rng)

        assert result == [
            {"name": "Rock Pigeon", "probability": 75, "count": 2},
            {"name": "American Robin", "probability": 55, "count": 1},
        ]
        assert rng.values == []

    def test_no_branch_roll_without_moderate_pool(self, scripted_rng):
        manifest = [m for m in MANIFEST if not 40 <= m["probability"] < 50]
        rng = scripted_rng([0.1, 0.1, 0.1])
        result = select_daily(manifest, rng)

        assert result == [{"name": "Rock Pigeon", "probability": 75, "count": 3}]

    def test_empty_easy_pool_has_no_fallback(self, scripted_rng):
        manifest = [m for m in MANIFEST if m["probability"] < 50]
        assert select_daily(manifest, scripted_rng([0.5])) == []

    def test_no_candidates_returns_empty_selection(self, scripted_rng):
        manifest = [m for m in MANIFEST if m["probability"] < 40]
        assert select_daily(manifest, scripted_rng([])) == []

    def test_selection_bounds_hold_across_many_draws(self):
        rng = random.Random(1234)
        for _ in range(500):
            result = select_daily(MANIFEST, rng)
            probabilities = [entry["probability"] for entry in result]
            total = sum(entry["count"] for entry in result)

            assert all(40 <= p <= 100 for p in probabilities)
            if total == 1 and probabilities[0] < 50:
                assert 40 <= probabilities[0] < 50
            else:
                assert total == 3
                assert all(p >= 50 for p in probabilities)


# ==================== WEEKLY ====================

class TestSelectWeekly:

    def test_very_rare_branch(self, scripted_rng):
        rng = scripted_rng([0.1, 0.1, 0.9])
        result = select_weekly(MANIFEST, rng)

        assert [entry["name"] for entry in result] == ["Red Fox", "Rock Pigeon", "American Robin"]
        assert sum(entry["count"] for entry in result) == 3
        assert rng.values == []

    def test_very_rare_branch_limits_common_draws_to_pool_size(self, scripted_rng):
        manifest = [m for m in MANIFEST if m["name"] != "American Robin"]
        rng = scripted_rng([0.1, 0.3])
        result = select_weekly(manifest, rng)

        assert result == [
            {"name": "Red Fox", "probability": 8, "count": 1},
            {"name": "Rock Pigeon", "probability": 75, "count": 1},
        ]

    def test_rare_branch_with_two_rare_and_three_common(self, scripted_rng):
        # roll, two-rare coin, fourth-common coin, then three common draws
        rng = scripted_rng([0.5, 0.3, 0.7, 0.1, 0.1, 0.1])
        result = select_weekly(MANIFEST, rng)

        assert result == [
            {"name": "Northern Cardinal", "probability": 45, "count": 1},
            {"name": "Blue Jay", "probability": 30, "count": 1},
            {"name": "Rock Pigeon", "probability": 75, "count": 3},
        ]
        assert rng.values == []

    def test_rare_branch_with_one_rare_and_four_common(self, scripted_rng):
        rng = scripted_rng([0.5, 0.6, 0.2, 0.1, 0.9, 0.1, 0.9])
        result = select_weekly(MANIFEST, rng)

        assert result[0] == {"name": "Northern Cardinal", "probability": 45, "count": 1}
        assert sum(entry["count"] for entry in result) == 5

    def test_very_rare_roll_falls_through_to_rare_branch(self, scripted_rng):
        manifest = [m for m in MANIFEST if not 5 <= m["probability"] <= 10]
        rng = scripted_rng([0.1, 0.9, 0.9, 0.1, 0.1, 0.1])
        result = select_weekly(manifest, rng)

        assert result[0]["name"] == "Northern Cardinal"
        assert sum(entry["count"] for entry in result) == 4

    def test_common_branch_draws_five_to_seven(self, scripted_rng):
        rng = scripted_rng([0.9, 0.99] + [0.1] * 7)
        result = select_weekly(MANIFEST, rng)

        assert result == [{"name": "Rock Pigeon", "probability": 75, "count": 7}]

        rng = scripted_rng([0.9, 0.0] + [0.1] * 5)
        assert select_weekly(MANIFEST, rng)[0]["count"] == 5

    def test_branch_with_empty_pool_contributes_nothing(self, scripted_rng):
        manifest = [m for m in MANIFEST if 10 < m["probability"] < 50]
        rng = scripted_rng([0.9, 0.5])
        assert select_weekly(manifest, rng) == []

    def test_no_candidates_returns_empty_selection(self, scripted_rng):
        manifest = [m for m in MANIFEST if m["probability"] < 5]
        assert select_weekly(manifest, scripted_rng([])) == []

    def test_never_selects_below_five_percent(self):
        rng = random.Random(99)
        for _ in range(500):
            result = select_weekly(MANIFEST, rng)
            total = sum(entry["count"] for entry in result)

            assert all(entry["probability"] >= 5 for entry in result)
            assert 3 <= total <= 9


# ==================== XP POTENTIAL ====================

class TestXpPotential:

    def test_blue_jay_and_red_fox(self):
        animals = [
            {"name": "Blue Jay", "probability": 62, "count": 1},
            {"name": "Red Fox", "probability": 8, "count": 1},
        ]
        assert calculate_xp_potential(animals) == 260

    def test_counts_do_not_multiply_xp(self):
        once = [{"name": "Rock Pigeon", "probability": 75, "count": 1}]
        thrice = [{"name": "Rock Pigeon", "probability": 75, "count": 3}]
        assert calculate_xp_potential(once) == calculate_xp_potential(thrice) == 50

    @pytest.mark.parametrize("probability,expected", [(100, 0), (50, 100), (0, 200)])
    def test_rarer_animals_are_worth_more(self, probability, expected):
        assert calculate_xp_potential([{"name": "X", "probability": probability}]) == expected

    def test_empty_selection_is_worth_nothing(self):
        assert calculate_xp_potential([]) == 0
