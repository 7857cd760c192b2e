"""Monte Carlo orchestration of whole attack sequences."""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from .attack import AttackExpressions, resolve_attack
from .compiler import ExpressionCompiler
from .data import DEFAULT_SEED
from .dice import CompiledExpression
from .exact import ExactDamageEngine
from .histogram import Histogram
from .models import AttackSetup, TrialResult
from .variables import VariableResolver, split_variables

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedSetup:
    """Every field of an ``AttackSetup`` compiled once for a request."""

    setup: AttackSetup
    expressions: AttackExpressions
    num_attacks: CompiledExpression
    variables: VariableResolver


def prepare_setup(setup: AttackSetup, compiler: ExpressionCompiler) -> PreparedSetup:
    """Compile the fields of ``setup``.

    Raises
    ------
    ExpressionError
        If any field or variable definition is malformed.
    """

    attack_text, variables = split_variables(setup.attack)
    expressions = AttackExpressions(
        attack=compiler.compile(attack_text),
        damage=compiler.compile(setup.damage),
        versus=compiler.compile(setup.versus),
        advantage=setup.advantage,
        crits=setup.crits,
        cost=compiler.compile_optional(setup.cost),
        reduction=compiler.compile_optional(setup.reduction),
    )
    return PreparedSetup(
        setup=setup,
        expressions=expressions,
        num_attacks=compiler.compile(setup.num_attacks),
        variables=VariableResolver(variables, compiler),
    )


def resolve_attack_count(
    expression: CompiledExpression,
    rng: random.Random,
    env: Optional[Mapping[str, float]] = None,
) -> int:
    """Roll the number of attacks for one trial; negative results mean none."""

    return max(0, math.floor(expression.roll(rng, env).value))


def simulate_trial(prepared: PreparedSetup, rng: random.Random) -> TrialResult:
    """Resolve one full attack sequence."""

    env = prepared.variables.resolve(rng) if prepared.variables else {}
    attack_count = resolve_attack_count(prepared.num_attacks, rng, env)
    trial = TrialResult()
    for _ in range(attack_count):
        trial.add(resolve_attack(prepared.expressions, rng, env))
    return trial


def simulate_many(
    prepared: PreparedSetup,
    runs: int,
    rng: random.Random,
    histogram: Optional[Histogram] = None,
) -> Histogram:
    """Run ``runs`` independent trials and fold them into a histogram."""

    if runs < 0:
        raise ValueError(f"Number of trials must be non-negative, received {runs}")
    result = histogram if histogram is not None else Histogram()
    for _ in range(runs):
        result.add(simulate_trial(prepared, rng))
    return result


class SimulationEngine:
    """State owned by one computation thread.

    Holds the random source, the expression cache and the exact engine's
    binomial cache; nothing here is shared with other engines.
    """

    def __init__(self, seed: Optional[int] = DEFAULT_SEED) -> None:
        self.rng = random.Random(seed)
        self.compiler = ExpressionCompiler()
        self.exact = ExactDamageEngine()

    def prepare(self, setup: AttackSetup) -> PreparedSetup:
        return prepare_setup(setup, self.compiler)

    def run_trial(self, setup: AttackSetup) -> TrialResult:
        return simulate_trial(self.prepare(setup), self.rng)

    def simulate(self, setup: AttackSetup, iterations: int) -> Histogram:
        """Compile ``setup`` and tabulate ``iterations`` trials."""

        prepared = self.prepare(setup)
        logger.debug(
            "Simulating %d trials (variables: %s)",
            iterations,
            ", ".join(prepared.variables.names) or "none",
        )
        return simulate_many(prepared, iterations, self.rng)
