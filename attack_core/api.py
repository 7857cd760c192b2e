"""High-level entry points used by the UI and scripts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Optional

from .compiler import ExpressionCompiler
from .data import (
    D20_SIDES,
    DEFAULT_ITERATIONS,
    DEFAULT_SEED,
    EXACT_MAX_DICE_TOTAL,
    EXACT_MAX_OUTCOMES,
    DamageDistribution,
)
from .dice import constant_value, flat_dice_term, flat_dice_terms
from .exact import ExactDamageEngine
from .histogram import Histogram
from .models import AdvantageMode, AttackSetup, CritRules, DamageSummary
from .simulation import SimulationEngine
from .variables import split_variables

logger = logging.getLogger(__name__)


def build_setup(
    attack: str,
    damage: str,
    versus: str | int = 10,
    advantage: str = "normal",
    num_attacks: str | int = 1,
    fails_miss: bool = True,
    successes_hit: bool = True,
    successes_crit: bool = True,
    cost: Optional[str] = None,
    reduction: Optional[str] = None,
) -> AttackSetup:
    """Factory helper that keeps callers decoupled from the dataclass layout."""

    return AttackSetup(
        attack=attack,
        damage=damage,
        versus=str(versus),
        advantage=AdvantageMode.parse(advantage),
        num_attacks=str(num_attacks),
        crits=CritRules(
            fails_miss=fails_miss,
            successes_hit=successes_hit,
            successes_crit=successes_crit,
        ),
        cost=cost,
        reduction=reduction,
    )


@dataclass(frozen=True)
class ExactModel:
    """Parameters of a setup that the analytic engine can evaluate."""

    n: int
    s: int
    mod: int
    num_attacks: int
    p_hit: float


def exact_model_for_setup(
    setup: AttackSetup,
    compiler: Optional[ExpressionCompiler] = None,
) -> Optional[ExactModel]:
    """Return the flat-modifier model of ``setup``, or ``None`` when it does not fit.

    The setup fits when the attack is ``1d20 + bonus`` with default critical
    faces, versus and number of attacks are constants, damage is
    ``NdS + mod``, no variables or reduction are configured, and critical hits
    cannot double damage. Rolls whose exact tables would exceed
    ``EXACT_MAX_DICE_TOTAL`` or ``EXACT_MAX_OUTCOMES`` are left to the simulation.
    """

    compiler = compiler or ExpressionCompiler()
    attack_text, variables = split_variables(setup.attack)
    if variables or setup.reduction is not None:
        return None
    if setup.crits.successes_hit and setup.crits.successes_crit:
        return None

    attack_term = flat_dice_term(compiler.compile(attack_text))
    if attack_term is None:
        return None
    attack_dice, attack_bonus = attack_term
    if (
        attack_dice.count != 1
        or attack_dice.sides != D20_SIDES
        or attack_dice.crit_success != D20_SIDES
        or attack_dice.crit_failure != 1
    ):
        return None

    damage_terms = flat_dice_terms(compiler.compile(setup.damage))
    versus = constant_value(compiler.compile(setup.versus))
    attacks = constant_value(compiler.compile(setup.num_attacks))
    if damage_terms is None or versus is None or attacks is None:
        return None
    if attacks != int(attacks) or attacks < 0:
        return None

    n, s, mod = damage_terms
    if n + mod < 0:
        # Simulated damage is clamped at zero; the analytic sum is not.
        return None
    if n * s > EXACT_MAX_DICE_TOTAL or int(attacks) * (n * (s - 1) + 1) > EXACT_MAX_OUTCOMES:
        logger.debug("Setup too large for the exact distribution (%dd%d x %d attacks)", n, s, int(attacks))
        return None
    p_hit = ExactDamageEngine.d20_hit_probability(attack_bonus, versus, setup.advantage, setup.crits)
    return ExactModel(n=n, s=s, mod=mod, num_attacks=int(attacks), p_hit=p_hit)


def compute_exact_distribution(
    setup: AttackSetup,
    engine: Optional[ExactDamageEngine] = None,
) -> Optional[DamageDistribution]:
    """Return the analytic damage distribution of ``setup`` when it fits the model."""

    model = exact_model_for_setup(setup)
    if model is None:
        return None
    engine = engine or ExactDamageEngine()
    return engine.damage_distribution(model.n, model.s, model.mod, model.num_attacks, model.p_hit)


@dataclass
class DamageComputationResult:
    """Bundle containing the histogram and derived reporting artefacts."""

    setup: AttackSetup
    histogram: Histogram
    summary: DamageSummary
    exact: Optional[DamageDistribution]
    compute_seconds: float


def compute_damage_distribution(
    setup: AttackSetup,
    iterations: int = DEFAULT_ITERATIONS,
    seed: Optional[int] = DEFAULT_SEED,
    include_exact: bool = True,
    engine: Optional[SimulationEngine] = None,
) -> DamageComputationResult:
    """Simulate ``setup`` and, where possible, compute its exact distribution.

    Parameters
    ----------
    setup:
        Attack sequence to evaluate.
    iterations:
        Number of Monte Carlo trials.
    seed:
        Seed forwarded to the engine's RNG when no engine is supplied.
    include_exact:
        Whether to attempt the analytic distribution as well.
    engine:
        Optional engine to reuse its caches and random state.

    Returns
    -------
    DamageComputationResult
        Histogram, summary, optional exact distribution and timing.

    Raises
    ------
    ExpressionError
        If any field of ``setup`` is malformed.
    """

    engine = engine or SimulationEngine(seed)
    compute_start = perf_counter()
    histogram = engine.simulate(setup, iterations)
    compute_seconds = perf_counter() - compute_start
    logger.info("Simulated %d trials in %.2f s", iterations, compute_seconds)

    exact: Optional[DamageDistribution] = None
    if include_exact:
        exact = compute_exact_distribution(setup, engine.exact)

    return DamageComputationResult(
        setup=setup,
        histogram=histogram,
        summary=histogram.summary(),
        exact=exact,
        compute_seconds=compute_seconds,
    )
