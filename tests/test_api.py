import pytest

from attack_core.api import (
    ExactModel,
    build_setup,
    compute_damage_distribution,
    compute_exact_distribution,
    exact_model_for_setup,
)
from attack_core.errors import ExpressionError
from attack_core.models import AdvantageMode


def exact_friendly_setup(**overrides):
    fields = {
        "attack": "1d20+5",
        "damage": "1d8+3",
        "versus": 15,
        "successes_crit": False,
    }
    fields.update(overrides)
    return build_setup(**fields)


def test_build_setup_normalises_fields() -> None:
    setup = build_setup("1d20+4", "2d6", versus=13, advantage="Advantage", num_attacks=2, cost="")
    assert setup.versus == "13"
    assert setup.num_attacks == "2"
    assert setup.advantage is AdvantageMode.ADVANTAGE
    assert setup.cost is None


def test_exact_model_for_flat_setup() -> None:
    model = exact_model_for_setup(exact_friendly_setup(num_attacks=2))
    assert model == ExactModel(n=1, s=8, mod=3, num_attacks=2, p_hit=0.5)


@pytest.mark.parametrize(
    "overrides",
    [
        {"successes_crit": True},
        {"attack": "1d20+X%%X=1d4"},
        {"reduction": "2"},
        {"damage": "2d6kh1"},
        {"damage": "1d6+1d4"},
        {"attack": "2d10+5"},
        {"attack": "1d20cs19+5"},
        {"versus": "1d4+10"},
        {"num_attacks": "1d3"},
        {"num_attacks": "1.5"},
        {"damage": "1d4-3"},
    ],
)
def test_exact_model_declines_unsupported_setups(overrides) -> None:
    assert exact_model_for_setup(exact_friendly_setup(**overrides)) is None


def test_exact_model_allows_crits_without_auto_hit() -> None:
    setup = exact_friendly_setup(successes_hit=False, successes_crit=True)
    model = exact_model_for_setup(setup)
    assert model is not None
    # A natural 20 still beats 15 on its total.
    assert model.p_hit == pytest.approx(0.5)


def test_compute_exact_distribution() -> None:
    distribution = compute_exact_distribution(exact_friendly_setup())
    assert distribution is not None
    assert distribution[0] == pytest.approx(0.5)
    assert distribution[4] == pytest.approx(0.5 / 8)
    assert compute_exact_distribution(exact_friendly_setup(successes_crit=True)) is None


def test_simulation_agrees_with_exact_distribution() -> None:
    result = compute_damage_distribution(exact_friendly_setup(), iterations=20_000, seed=42)
    assert result.exact is not None
    assert result.summary.total_trials == 20_000
    exact_mean = sum(damage * probability for damage, probability in result.exact.items())
    assert exact_mean == pytest.approx(3.75)
    assert result.summary.mean_damage == pytest.approx(exact_mean, rel=0.05)
    assert result.histogram.probabilities()[0] == pytest.approx(result.exact[0], abs=0.02)
    assert result.compute_seconds >= 0.0


def test_exact_distribution_can_be_skipped() -> None:
    result = compute_damage_distribution(exact_friendly_setup(), iterations=10, include_exact=False)
    assert result.exact is None


def test_malformed_setup_raises() -> None:
    with pytest.raises(ExpressionError):
        compute_damage_distribution(build_setup("1d20+", "1d6"), iterations=10)


def test_exact_distribution_for_long_attack_sequences() -> None:
    distribution = compute_exact_distribution(exact_friendly_setup(num_attacks=1100))
    assert distribution is not None
    assert sum(distribution.values()) == pytest.approx(1.0, abs=1e-9)


@pytest.mark.parametrize(
    "overrides",
    [
        {"damage": "200d100"},
        {"damage": "11d100"},
        {"damage": "1d8+3", "num_attacks": 5000},
    ],
)
def test_exact_model_declines_oversized_tables(overrides) -> None:
    assert exact_model_for_setup(exact_friendly_setup(**overrides)) is None


def test_exact_model_accepts_tables_at_the_limit() -> None:
    assert exact_model_for_setup(exact_friendly_setup(damage="10d100")) is not None
