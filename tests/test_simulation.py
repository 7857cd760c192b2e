import random

import pytest

from attack_core.compiler import ExpressionCompiler
from attack_core.errors import ExpressionError, UnboundVariableError
from attack_core.models import AttackSetup, CritRules
from attack_core.simulation import (
    SimulationEngine,
    prepare_setup,
    resolve_attack_count,
    simulate_many,
    simulate_trial,
)
from tests.helpers import ScriptedRolls


def prepared(**kwargs):
    fields = {"attack": "100", "damage": "1d6", "versus": "0"}
    fields.update(kwargs)
    return prepare_setup(AttackSetup(**fields), ExpressionCompiler())


def test_guaranteed_hits_converge_on_damage_mean() -> None:
    histogram = SimulationEngine(seed=42).simulate(
        AttackSetup(attack="100", damage="1d6", versus="0"), 10_000
    )
    assert histogram.mean_damage() == pytest.approx(3.5, rel=0.05)
    assert set(histogram.buckets) == {1, 2, 3, 4, 5, 6}
    assert histogram.num_hit == histogram.num_attacks == 10_000


def test_every_trial_lands_in_one_bucket() -> None:
    setup = AttackSetup(
        attack="1d20+X%%X=1d4",
        damage="1d8+X",
        versus="14",
        num_attacks="1d3",
        cost="1",
    )
    histogram = SimulationEngine(seed=5).simulate(setup, 2_000)
    assert histogram.total_count == histogram.num_trials == 2_000
    assert sum(bucket.attack_count_total for _, bucket in histogram) == histogram.num_attacks
    assert histogram.total_cost == pytest.approx(histogram.num_attacks)


def test_zero_attacks_puts_every_trial_at_zero_damage() -> None:
    histogram = simulate_many(prepared(num_attacks="0"), 50, random.Random(1))
    assert list(histogram.buckets) == [0]
    assert histogram.num_trials == 50
    assert histogram.num_attacks == 0
    assert histogram.num_hit == 0


def test_negative_attack_count_means_no_attacks() -> None:
    assert resolve_attack_count(ExpressionCompiler().compile("1-5"), random.Random(0)) == 0
    assert resolve_attack_count(ExpressionCompiler().compile("7/2"), random.Random(0)) == 3


def test_attack_count_is_rolled_once_per_trial() -> None:
    rng = ScriptedRolls([2, 3, 5])
    trial = simulate_trial(prepared(num_attacks="1d3"), rng)
    assert rng.exhausted
    assert trial.attacks_resolved == 2
    assert trial.total_damage == 8


def test_variables_are_resolved_before_the_attacks() -> None:
    setup = prepared(attack="1d4%%X=1d6", damage="1d8+X")
    rng = ScriptedRolls([6, 2, 3, 1, 2, 3])
    assert simulate_trial(setup, rng).total_damage == 9
    assert simulate_trial(setup, rng).total_damage == 4
    assert rng.exhausted


def test_variables_are_shared_by_every_attack_of_a_trial() -> None:
    setup = prepared(attack="100%%X=1d6", damage="X", num_attacks="3")
    trial = simulate_trial(setup, ScriptedRolls([4]))
    assert trial.total_damage == 12


def test_variables_can_set_the_number_of_attacks() -> None:
    setup = prepared(attack="100%%N=1d4", damage="2", num_attacks="N")
    trial = simulate_trial(setup, ScriptedRolls([3]))
    assert trial.attacks_resolved == 3
    assert trial.total_damage == 6


def test_reduction_larger_than_damage_keeps_trials_at_zero() -> None:
    histogram = simulate_many(prepared(damage="1d4", reduction="5"), 200, random.Random(2))
    assert list(histogram.buckets) == [0]
    assert histogram.num_hit == 200


def test_cost_accumulates_per_attack() -> None:
    histogram = simulate_many(prepared(num_attacks="3", cost="2"), 100, random.Random(3))
    for _, bucket in histogram:
        assert bucket.cost_total == pytest.approx(6 * bucket.count)
        assert bucket.attack_count_total == 3 * bucket.count


def test_crit_rules_change_the_hit_rate() -> None:
    setup = AttackSetup(attack="1d20", damage="1", versus="100")
    assert SimulationEngine(seed=1).simulate(setup, 4_000).num_hit > 0
    no_auto_hit = AttackSetup(
        attack="1d20", damage="1", versus="100", crits=CritRules(successes_hit=False)
    )
    assert SimulationEngine(seed=1).simulate(no_auto_hit, 4_000).num_hit == 0


def test_same_seed_reproduces_the_histogram() -> None:
    setup = AttackSetup(attack="1d20+5", damage="2d6+3", versus="15", num_attacks="2")
    first = SimulationEngine(seed=7).simulate(setup, 1_000)
    second = SimulationEngine(seed=7).simulate(setup, 1_000)
    assert first.probabilities() == second.probabilities()


def test_malformed_setup_fails_the_whole_request() -> None:
    with pytest.raises(ExpressionError):
        SimulationEngine().simulate(AttackSetup(attack="1d20+", damage="1d6"), 10)


def test_unknown_variable_fails_the_whole_request() -> None:
    with pytest.raises(UnboundVariableError):
        SimulationEngine().simulate(AttackSetup(attack="1d20", damage="1d6", versus="Z"), 10)


def test_negative_run_count_is_rejected() -> None:
    with pytest.raises(ValueError):
        simulate_many(prepared(), -1, random.Random(0))


def test_engine_reuses_compiled_expressions() -> None:
    engine = SimulationEngine(seed=3)
    setup = AttackSetup(attack="1d20+2", damage="1d6", versus="12")
    engine.simulate(setup, 10)
    misses = engine.compiler.misses
    engine.simulate(setup, 10)
    assert engine.compiler.misses == misses
    assert engine.compiler.hits > 0


def test_dice_shaped_variable_names_fail_the_request() -> None:
    setup = AttackSetup(attack="100%%d6=1000", damage="d6", versus="0")
    with pytest.raises(ExpressionError):
        SimulationEngine().simulate(setup, 10)
