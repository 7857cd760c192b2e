from fractions import Fraction
from itertools import product

import numpy as np
import pytest

from attack_core.exact import ExactDamageEngine
from attack_core.models import AdvantageMode, CritRules


@pytest.fixture
def engine() -> ExactDamageEngine:
    return ExactDamageEngine()


def test_binomial_values(engine: ExactDamageEngine) -> None:
    assert engine.binomial(5, 2) == 10
    assert engine.binomial(8, 4) == 70
    assert engine.binomial(0, 0) == 1
    assert engine.binomial(3, 5) == 0
    assert engine.binomial(3, -1) == 0


def test_binomial_rejects_negative_n(engine: ExactDamageEngine) -> None:
    with pytest.raises(ValueError):
        engine.binomial(-1, 0)


def test_binomial_handles_large_rows_exactly(engine: ExactDamageEngine) -> None:
    assert engine.binomial(100, 50) == 100891344545564193334812497256


def test_probability_of_total_matches_enumeration(engine: ExactDamageEngine) -> None:
    counts: dict[int, int] = {}
    for faces in product(range(1, 7), repeat=3):
        total = sum(faces) + 2
        counts[total] = counts.get(total, 0) + 1
    for total, count in counts.items():
        assert engine.probability_of_total(total, 3, 6, 2) == pytest.approx(count / 216)


def test_totals_outside_range_have_zero_probability(engine: ExactDamageEngine) -> None:
    assert engine.probability_of_total(1, 2, 6, 0) == 0.0
    assert engine.probability_of_total(13, 2, 6, 0) == 0.0


def test_single_hit_distribution_sums_to_one(engine: ExactDamageEngine) -> None:
    distribution = engine.single_hit_distribution(2, 6, 0)
    assert sorted(distribution) == list(range(2, 13))
    assert sum(distribution.values()) == pytest.approx(1.0, abs=1e-12)
    assert distribution[7] == pytest.approx(6 / 36)


def test_many_dice_stay_non_negative(engine: ExactDamageEngine) -> None:
    distribution = engine.single_hit_distribution(30, 6, 0)
    assert min(distribution.values()) >= 0.0
    assert sum(distribution.values()) == pytest.approx(1.0, abs=1e-9)


def test_flat_modifier_shifts_distribution(engine: ExactDamageEngine) -> None:
    distribution = engine.single_hit_distribution(1, 6, 2)
    assert sorted(distribution) == [3, 4, 5, 6, 7, 8]
    assert all(value == pytest.approx(1 / 6) for value in distribution.values())


def test_hit_count_probability(engine: ExactDamageEngine) -> None:
    assert engine.hit_count_probability(0.5, 1, 2) == pytest.approx(0.5)
    assert engine.hit_count_probability(1.0, 3, 3) == 1.0
    assert engine.hit_count_probability(0.3, 4, 3) == 0.0
    with pytest.raises(ValueError):
        engine.hit_count_probability(1.5, 1, 2)


def test_certain_hits_match_repeated_convolution(engine: ExactDamageEngine) -> None:
    single = engine.single_hit_distribution(1, 6, 0)
    base = np.array([single[face] for face in range(1, 7)])
    expected = np.convolve(np.convolve(base, base), base)

    distribution = engine.damage_distribution(1, 6, 0, 3, 1.0)

    assert sorted(distribution) == list(range(3, 19))
    assert [distribution[damage] for damage in range(3, 19)] == list(expected)


def test_impossible_hits_give_zero_damage(engine: ExactDamageEngine) -> None:
    assert engine.damage_distribution(2, 8, 1, 4, 0.0) == {0: 1.0}


def test_zero_hits_is_point_mass_at_zero(engine: ExactDamageEngine) -> None:
    assert engine.multi_hit_distribution({3: 0.5, 4: 0.5}, 0) == {0: 1.0}


def test_damage_distribution_sums_to_one(engine: ExactDamageEngine) -> None:
    distribution = engine.damage_distribution(1, 8, 3, 3, 0.65)
    assert sum(distribution.values()) == pytest.approx(1.0, abs=1e-12)
    assert distribution[0] == pytest.approx(0.35**3)
    assert list(distribution) == sorted(distribution)


def test_probability_of_damage(engine: ExactDamageEngine) -> None:
    assert engine.probability_of_damage(0, 1, 6, 0, 2, 0.5) == pytest.approx(0.25)
    # One hit of two: 2 * 0.5 * 0.5, then 1/6 for the face.
    assert engine.probability_of_damage(4, 1, 6, 0, 2, 0.5) == pytest.approx(0.5 / 6 + 0.25 * 3 / 36)
    assert engine.probability_of_damage(99, 1, 6, 0, 2, 0.5) == 0.0


def test_convolution_tables_are_cached(engine: ExactDamageEngine) -> None:
    engine.damage_distribution(1, 6, 0, 4, 0.5)
    engine.damage_distribution(1, 6, 0, 2, 0.3)
    assert len(engine._convolutions) == 1
    _, tables = next(iter(engine._convolutions.values()))
    assert len(tables) == 5


def test_engines_do_not_share_caches() -> None:
    first = ExactDamageEngine()
    second = ExactDamageEngine()
    first.binomial(40, 3)
    first.damage_distribution(1, 6, 0, 2, 0.5)
    assert len(second._binomials) == 1
    assert second._convolutions == {}


def test_d20_hit_probability_normal() -> None:
    # Faces 11 through 20 beat 15 with a +5 bonus.
    assert ExactDamageEngine.d20_hit_probability(5, 15) == pytest.approx(0.5)


def test_d20_hit_probability_with_advantage_and_disadvantage() -> None:
    assert ExactDamageEngine.d20_hit_probability(5, 15, AdvantageMode.ADVANTAGE) == pytest.approx(0.75)
    assert ExactDamageEngine.d20_hit_probability(5, 15, "disadvantage") == pytest.approx(0.25)


def test_d20_hit_probability_respects_crit_rules() -> None:
    assert ExactDamageEngine.d20_hit_probability(0, 100) == pytest.approx(1 / 20)
    assert ExactDamageEngine.d20_hit_probability(0, 100, crits=CritRules(successes_hit=False)) == 0.0
    assert ExactDamageEngine.d20_hit_probability(0, -100) == pytest.approx(19 / 20)
    assert ExactDamageEngine.d20_hit_probability(0, -100, crits=CritRules(fails_miss=False)) == 1.0


def test_hit_count_probability_for_many_attacks(engine: ExactDamageEngine) -> None:
    expected = float(Fraction(engine.binomial(1100, 550), 2**1100))
    assert engine.hit_count_probability(0.5, 550, 1100) == pytest.approx(expected, rel=1e-9)
    assert engine.hit_count_probability(0.99, 1100, 1100) == pytest.approx(0.99**1100, rel=1e-9)


def test_many_attacks_keep_unit_mass(engine: ExactDamageEngine) -> None:
    distribution = engine.damage_distribution(1, 4, 0, 1100, 0.5)
    assert sum(distribution.values()) == pytest.approx(1.0, abs=1e-9)
    assert min(distribution.values()) >= 0.0
