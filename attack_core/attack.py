"""Resolution of a single attack instance."""

from __future__ import annotations

import math
import random
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from .dice import CompiledExpression, CriticalClass
from .models import AdvantageMode, AttackOutcome, AttackState, CritRules

POSITIVE_CRIT = math.inf
NEGATIVE_CRIT = -math.inf

TERMINAL_STATES = frozenset({AttackState.MISS, AttackState.HIT_NORMAL, AttackState.HIT_CRIT})


@dataclass(frozen=True)
class AttackExpressions:
    """Compiled fields consumed by every attack of a request."""

    attack: CompiledExpression
    damage: CompiledExpression
    versus: CompiledExpression
    advantage: AdvantageMode
    crits: CritRules
    cost: Optional[CompiledExpression] = None
    reduction: Optional[CompiledExpression] = None


def roll_check(
    expression: CompiledExpression,
    rng: random.Random,
    env: Mapping[str, float],
    crits: CritRules,
) -> float:
    """Roll one attack check, mapping enabled critical classes to infinities."""

    result = expression.roll(rng, env)
    if crits.fails_miss and result.critical is CriticalClass.FAILURE:
        return NEGATIVE_CRIT
    if crits.successes_hit and result.critical is CriticalClass.SUCCESS:
        return POSITIVE_CRIT
    return result.value


def classify_attack(attack_value: float, versus: float) -> AttackState:
    """Map an attack value against its threshold to a terminal state."""

    if attack_value == NEGATIVE_CRIT:
        return AttackState.MISS
    if attack_value == POSITIVE_CRIT:
        return AttackState.HIT_CRIT
    if attack_value <= versus:
        return AttackState.MISS
    return AttackState.HIT_NORMAL


class AttackResolution:
    """State machine for one attack: ``PENDING -> ATTACK_ROLLED -> terminal``."""

    def __init__(
        self,
        expressions: AttackExpressions,
        rng: random.Random,
        env: Optional[Mapping[str, float]] = None,
    ) -> None:
        self.expressions = expressions
        self.rng = rng
        self.env: Mapping[str, float] = env or {}
        self.state = AttackState.PENDING
        self.attack_value: Optional[float] = None
        self.versus: Optional[float] = None

    def _require(self, expected: AttackState) -> None:
        if self.state is not expected:
            raise RuntimeError(
                f"Attack is in state {self.state.name}, expected {expected.name}"
            )

    def roll_attack(self) -> float:
        """Roll the check once, or twice keeping max/min under (dis)advantage."""

        self._require(AttackState.PENDING)
        expressions = self.expressions
        value = roll_check(expressions.attack, self.rng, self.env, expressions.crits)
        if expressions.advantage is not AdvantageMode.NORMAL:
            second = roll_check(expressions.attack, self.rng, self.env, expressions.crits)
            if expressions.advantage is AdvantageMode.ADVANTAGE:
                value = max(value, second)
            else:
                value = min(value, second)
        self.attack_value = value
        self.state = AttackState.ATTACK_ROLLED
        return value

    def classify(self) -> AttackState:
        """Roll the versus threshold and move to MISS, HIT_NORMAL or HIT_CRIT."""

        self._require(AttackState.ATTACK_ROLLED)
        self.versus = self.expressions.versus.roll(self.rng, self.env).value
        self.state = classify_attack(self.attack_value, self.versus)
        return self.state

    def outcome(self) -> AttackOutcome:
        """Roll damage, reduction and cost for a classified attack."""

        if self.state not in TERMINAL_STATES:
            raise RuntimeError(f"Attack in state {self.state.name} has not been classified")
        expressions = self.expressions
        hit = self.state.is_hit

        damage = 0
        if hit:
            # Critical flags on the damage roll itself are ignored.
            raw_damage = expressions.damage.roll(self.rng, self.env).value
            if self.state is AttackState.HIT_CRIT and expressions.crits.successes_crit:
                raw_damage *= 2
            if expressions.reduction is not None:
                raw_damage -= expressions.reduction.roll(self.rng, self.env).value
            damage = max(0, math.floor(raw_damage))

        cost = 0.0
        if expressions.cost is not None:
            cost = float(expressions.cost.roll(self.rng, self.env).value)

        return AttackOutcome(damage=damage, hit=hit, cost=cost, state=self.state)


def resolve_attack(
    expressions: AttackExpressions,
    rng: random.Random,
    env: Optional[Mapping[str, float]] = None,
) -> AttackOutcome:
    """Resolve one attack instance from start to finish.

    Parameters
    ----------
    expressions:
        Compiled attack, damage, versus, cost and reduction fields.
    rng:
        Random source owned by the calling engine.
    env:
        Variables resolved for the current trial.

    Returns
    -------
    AttackOutcome
        Damage is a non-negative integer. Cost is charged on hits and misses.
    """

    resolution = AttackResolution(expressions, rng, env)
    resolution.roll_attack()
    resolution.classify()
    return resolution.outcome()
