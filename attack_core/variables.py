"""Variable definitions carried by the attack field and their per-trial resolution."""

from __future__ import annotations

import random
import re
from collections.abc import Sequence
from dataclasses import dataclass

from .compiler import ExpressionCompiler
from .data import VARIABLE_ASSIGNMENT, VARIABLE_DELIMITER, Environment
from .dice import CompiledExpression, is_dice_term
from .errors import ExpressionError

_NAME_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


@dataclass(frozen=True)
class Variable:
    """Named sub-expression rolled once per trial."""

    name: str
    raw_expression: str


def split_variables(text: str) -> tuple[str, list[Variable]]:
    """Split an attack field into its expression and ordered variable list.

    ``"1d20+X%%X=1d4"`` yields ``("1d20+X", [Variable("X", "1d4")])``.

    Raises
    ------
    ExpressionError
        If a variable segment lacks ``=``, or its name is not an identifier or
        would be read as dice notation (``d6``, ``d20cs``).
    """

    segments = text.split(VARIABLE_DELIMITER)
    expression = segments[0].strip()
    variables: list[Variable] = []
    for segment in segments[1:]:
        stripped = segment.strip()
        if not stripped:
            continue
        name, separator, raw_expression = stripped.partition(VARIABLE_ASSIGNMENT)
        name = name.strip()
        if not separator:
            raise ExpressionError(f"Variable definition '{stripped}' must look like name=expression", text)
        if not _NAME_PATTERN.fullmatch(name):
            raise ExpressionError(f"Invalid variable name '{name}'", text)
        if is_dice_term(name):
            raise ExpressionError(f"Variable name '{name}' reads as a dice term", text)
        variables.append(Variable(name=name, raw_expression=raw_expression.strip()))
    return expression, variables


class VariableResolver:
    """Roll each variable in declared order, exposing only earlier ones to it."""

    def __init__(self, variables: Sequence[Variable], compiler: ExpressionCompiler) -> None:
        self.variables = list(variables)
        self._compiled: list[tuple[str, CompiledExpression]] = [
            (variable.name, compiler.compile(variable.raw_expression))
            for variable in self.variables
        ]

    def __bool__(self) -> bool:
        return bool(self._compiled)

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self._compiled]

    def resolve(self, rng: random.Random) -> Environment:
        """Return the resolved value of every variable for one trial.

        Raises
        ------
        UnboundVariableError
            If a variable references itself, a later variable, or an unknown name.
        """

        env: Environment = {}
        for name, compiled in self._compiled:
            # Evaluated before assignment: a variable is never in its own scope.
            env[name] = compiled.roll(rng, env).value
        return env
