from __future__ import annotations

from collections.abc import Iterable

from attack_core.attack import AttackExpressions
from attack_core.compiler import ExpressionCompiler
from attack_core.models import AdvantageMode, CritRules


class ScriptedRolls:
    """Stand-in random source that returns predetermined die faces in order."""

    def __init__(self, values: Iterable[int]):
        self.values = list(values)
        self.index = 0
        self.requests: list[tuple[int, int]] = []

    def randint(self, a: int, b: int) -> int:
        if self.index >= len(self.values):
            raise AssertionError(f"Unexpected extra roll of d{b}")
        value = self.values[self.index]
        self.index += 1
        assert a <= value <= b, f"scripted value {value} outside {a}..{b}"
        self.requests.append((a, b))
        return value

    @property
    def exhausted(self) -> bool:
        return self.index == len(self.values)


def make_expressions(
    attack: str = "1d20+5",
    damage: str = "1d8+3",
    versus: str = "15",
    advantage: AdvantageMode = AdvantageMode.NORMAL,
    crits: CritRules | None = None,
    cost: str | None = None,
    reduction: str | None = None,
) -> AttackExpressions:
    compiler = ExpressionCompiler()
    return AttackExpressions(
        attack=compiler.compile(attack),
        damage=compiler.compile(damage),
        versus=compiler.compile(versus),
        advantage=advantage,
        crits=crits or CritRules(),
        cost=compiler.compile_optional(cost),
        reduction=compiler.compile_optional(reduction),
    )
