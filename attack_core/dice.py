"""Dice-notation compiler and evaluator.

Grammar (whitespace insensitive)::

    expression ::= term (("+" | "-") term)*
          term ::= signed (("*" | "/") signed)*
        signed ::= ("+" | "-") signed | atom
          atom ::= dice | number | identifier | "(" expression ")"
          dice ::= [count] "d" (sides | "%") modifier*
      modifier ::= ("kh" | "kl" | "cs" | "cf") [integer]

``khN``/``klN`` keep the highest/lowest N dice (default 1). ``csN`` flags a
kept die rolling N or more as a critical success and ``cfN`` flags one rolling
N or less as a critical failure. A d20 term without explicit modifiers behaves
as ``d20cs20cf1``.

Identifiers compile to variable references that are bound through an
environment mapping when the expression is evaluated.
"""

from __future__ import annotations

import operator
import random
import re
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pyparsing import (
    Forward,
    ParseException,
    ParserElement,
    Regex,
    Suppress,
    ZeroOrMore,
    one_of,
)

from .data import D20_SIDES, MAX_DICE_PER_TERM, PERCENTILE_SIDES
from .errors import ExpressionError, UnboundVariableError


class CriticalClass(Enum):
    """Critical classification of an evaluated roll."""

    SUCCESS = "success"
    FAILURE = "failure"
    NONE = "none"


# ---- Expression tree ---------------------------------------------------------


@dataclass(frozen=True)
class Number:
    value: Union[int, float]


@dataclass(frozen=True)
class VariableRef:
    name: str


@dataclass(frozen=True)
class Dice:
    count: int
    sides: int
    keep: Optional[tuple[str, int]] = None
    crit_success: Optional[int] = None
    crit_failure: Optional[int] = None


@dataclass(frozen=True)
class Group:
    inner: Node


@dataclass(frozen=True)
class Negate:
    operand: Node


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Node
    right: Node


Node = Union[Number, VariableRef, Dice, Group, Negate, BinaryOp]


# ---- Roll tree ---------------------------------------------------------------


@dataclass(frozen=True)
class DiceRoll:
    """Every die rolled by one dice term, with the dice that were kept."""

    sides: int
    rolls: tuple[int, ...]
    kept: tuple[bool, ...]
    value: int
    critical: CriticalClass


@dataclass(frozen=True)
class GroupRoll:
    """Composite result: a parenthesised group, a sign flip or an operation."""

    children: tuple[RollNode, ...]
    value: float


@dataclass(frozen=True)
class BaseRoll:
    """A constant or a bound variable."""

    value: float


RollNode = Union[DiceRoll, GroupRoll, BaseRoll]


def critical_class(node: RollNode) -> CriticalClass:
    """Return the classification of the first flagged die, left to right."""

    if isinstance(node, DiceRoll):
        return node.critical
    if isinstance(node, GroupRoll):
        for child in node.children:
            found = critical_class(child)
            if found is not CriticalClass.NONE:
                return found
        return CriticalClass.NONE
    if isinstance(node, BaseRoll):
        return CriticalClass.NONE
    raise TypeError(f"Unsupported roll node: {type(node)!r}")


@dataclass(frozen=True)
class RollResult:
    value: float
    critical: CriticalClass
    tree: RollNode


@dataclass(frozen=True)
class CompiledExpression:
    """Parsed dice expression, reusable across any number of rolls."""

    source: str
    root: Node
    variables: frozenset[str]

    @property
    def has_variables(self) -> bool:
        return bool(self.variables)

    def roll(
        self,
        rng: random.Random,
        env: Optional[Mapping[str, float]] = None,
    ) -> RollResult:
        return evaluate(self, rng, env)


# ---- Grammar -----------------------------------------------------------------

_DICE_PATTERN = re.compile(
    r"(?P<count>\d*)[dD](?P<sides>\d+|%)(?P<mods>(?:(?:kh|kl|cs|cf)\d*)*)(?![A-Za-z0-9_])"
)
_MODIFIER_PATTERN = re.compile(r"(kh|kl|cs|cf)(\d*)")


def is_dice_term(text: str) -> bool:
    """Return whether ``text`` on its own would compile to a dice term."""

    return _DICE_PATTERN.fullmatch(text) is not None


_GRAMMAR_LOCK = threading.Lock()
_GRAMMAR: Optional[ParserElement] = None


def _make_dice(tokens) -> Dice:
    match = _DICE_PATTERN.fullmatch(tokens[0])
    if match is None:
        raise ParseException(tokens[0], 0, "malformed dice term")
    count = int(match.group("count")) if match.group("count") else 1
    raw_sides = match.group("sides")
    sides = PERCENTILE_SIDES if raw_sides == "%" else int(raw_sides)

    keep: Optional[tuple[str, int]] = None
    crit_success: Optional[int] = D20_SIDES if sides == D20_SIDES else None
    crit_failure: Optional[int] = 1 if sides == D20_SIDES else None
    for name, amount in _MODIFIER_PATTERN.findall(match.group("mods")):
        if name == "kh":
            keep = ("h", int(amount) if amount else 1)
        elif name == "kl":
            keep = ("l", int(amount) if amount else 1)
        elif name == "cs":
            crit_success = int(amount) if amount else sides
        else:
            crit_failure = int(amount) if amount else 1
    return Dice(
        count=count,
        sides=sides,
        keep=keep,
        crit_success=crit_success,
        crit_failure=crit_failure,
    )


def _make_number(tokens) -> Number:
    text = tokens[0]
    return Number(float(text) if "." in text else int(text))


def _make_unary(tokens) -> Node:
    sign, operand = tokens[0], tokens[1]
    return Negate(operand) if sign == "-" else operand


def _fold_binary(tokens) -> Node:
    result = tokens[0]
    for index in range(1, len(tokens), 2):
        result = BinaryOp(tokens[index], result, tokens[index + 1])
    return result


def _build_grammar() -> ParserElement:
    expression = Forward()

    dice = Regex(_DICE_PATTERN.pattern).set_parse_action(_make_dice)
    number = Regex(r"\d+(?:\.\d+)?(?![A-Za-z0-9_.])").set_parse_action(_make_number)
    identifier = Regex(r"[A-Za-z_][A-Za-z0-9_]*").set_parse_action(
        lambda tokens: VariableRef(tokens[0])
    )
    group = (Suppress("(") + expression + Suppress(")")).set_parse_action(
        lambda tokens: Group(tokens[0])
    )
    atom = dice | number | identifier | group

    signed = Forward()
    signed <<= (one_of("+ -") + signed).set_parse_action(_make_unary) | atom
    term = (signed + ZeroOrMore(one_of("* /") + signed)).set_parse_action(_fold_binary)
    expression <<= (term + ZeroOrMore(one_of("+ -") + term)).set_parse_action(_fold_binary)
    return expression


def _get_grammar() -> ParserElement:
    global _GRAMMAR
    if _GRAMMAR is None:
        _GRAMMAR = _build_grammar()
    return _GRAMMAR


def _walk(node: Node):
    yield node
    if isinstance(node, Group):
        yield from _walk(node.inner)
    elif isinstance(node, Negate):
        yield from _walk(node.operand)
    elif isinstance(node, BinaryOp):
        yield from _walk(node.left)
        yield from _walk(node.right)


def _validate(root: Node, text: str) -> None:
    for node in _walk(root):
        if not isinstance(node, Dice):
            continue
        if node.sides < 1:
            raise ExpressionError(f"Dice must have at least one side in '{text}'", text)
        if node.count > MAX_DICE_PER_TERM:
            raise ExpressionError(
                f"Cannot roll more than {MAX_DICE_PER_TERM} dice in one term of '{text}'",
                text,
            )
        if node.keep is not None and node.keep[1] < 1:
            raise ExpressionError(f"Keep modifiers must keep at least one die in '{text}'", text)


def parse(text: str) -> CompiledExpression:
    """Compile dice-notation text.

    Raises
    ------
    ExpressionError
        If the text is empty, malformed, or describes an impossible dice term.
    """

    if text is None or not str(text).strip():
        raise ExpressionError("Dice expression is empty", text)
    source = str(text).strip()
    with _GRAMMAR_LOCK:
        grammar = _get_grammar()
        try:
            root = grammar.parse_string(source, parse_all=True)[0]
        except ParseException as exc:
            raise ExpressionError(f"Cannot parse dice expression '{source}': {exc}", source) from exc
    _validate(root, source)
    variables = frozenset(node.name for node in _walk(root) if isinstance(node, VariableRef))
    return CompiledExpression(source=source, root=root, variables=variables)


# ---- Evaluation --------------------------------------------------------------

_OPERATORS: dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


def _kept_mask(rolls: tuple[int, ...], keep: Optional[tuple[str, int]]) -> tuple[bool, ...]:
    if keep is None:
        return tuple(True for _ in rolls)
    direction, amount = keep
    order = sorted(range(len(rolls)), key=lambda idx: rolls[idx], reverse=direction == "h")
    chosen = set(order[:amount])
    return tuple(idx in chosen for idx in range(len(rolls)))


def _roll_dice(node: Dice, rng: random.Random) -> DiceRoll:
    rolls = tuple(rng.randint(1, node.sides) for _ in range(node.count))
    kept = _kept_mask(rolls, node.keep)
    critical = CriticalClass.NONE
    for value, is_kept in zip(rolls, kept):
        if not is_kept:
            continue
        if node.crit_success is not None and value >= node.crit_success:
            critical = CriticalClass.SUCCESS
            break
        if node.crit_failure is not None and value <= node.crit_failure:
            critical = CriticalClass.FAILURE
            break
    total = sum(value for value, is_kept in zip(rolls, kept) if is_kept)
    return DiceRoll(sides=node.sides, rolls=rolls, kept=kept, value=total, critical=critical)


def _evaluate_node(
    node: Node,
    rng: random.Random,
    env: Mapping[str, float],
    source: str,
) -> RollNode:
    if isinstance(node, Number):
        return BaseRoll(node.value)
    if isinstance(node, VariableRef):
        try:
            return BaseRoll(env[node.name])
        except KeyError as exc:
            raise UnboundVariableError(node.name, source) from exc
    if isinstance(node, Dice):
        return _roll_dice(node, rng)
    if isinstance(node, Group):
        inner = _evaluate_node(node.inner, rng, env, source)
        return GroupRoll((inner,), inner.value)
    if isinstance(node, Negate):
        inner = _evaluate_node(node.operand, rng, env, source)
        return GroupRoll((inner,), -inner.value)
    if isinstance(node, BinaryOp):
        left = _evaluate_node(node.left, rng, env, source)
        right = _evaluate_node(node.right, rng, env, source)
        try:
            value = _OPERATORS[node.op](left.value, right.value)
        except ZeroDivisionError as exc:
            raise ExpressionError(f"Division by zero while evaluating '{source}'", source) from exc
        return GroupRoll((left, right), value)
    raise TypeError(f"Unsupported expression node: {type(node)!r}")


def evaluate(
    compiled: CompiledExpression,
    rng: random.Random,
    env: Optional[Mapping[str, float]] = None,
) -> RollResult:
    """Roll ``compiled`` once, binding variable references through ``env``."""

    tree = _evaluate_node(compiled.root, rng, env or {}, compiled.source)
    return RollResult(value=tree.value, critical=critical_class(tree), tree=tree)


# ---- Shape helpers -----------------------------------------------------------


def _strip_groups(node: Node) -> Node:
    while isinstance(node, Group):
        node = node.inner
    return node


def constant_value(compiled: CompiledExpression) -> Optional[float]:
    """Return the value of an expression with no dice and no variables."""

    if any(isinstance(node, (Dice, VariableRef)) for node in _walk(compiled.root)):
        return None
    return evaluate(compiled, random.Random(0)).value


def flat_dice_terms(compiled: CompiledExpression) -> Optional[tuple[int, int, int]]:
    """Return ``(n, s, mod)`` when the expression is plain ``NdS`` plus an integer.

    Keep and critical modifiers do not change a damage total, so only keep
    modifiers disqualify a term.
    """

    found = flat_dice_term(compiled)
    if found is None:
        return None
    dice_node, modifier = found
    return dice_node.count, dice_node.sides, modifier


def flat_dice_term(compiled: CompiledExpression) -> Optional[tuple[Dice, int]]:
    """Return the single dice node and integer modifier of an ``NdS + M`` expression."""

    root = _strip_groups(compiled.root)
    modifier = 0
    dice_node: Node = root
    if isinstance(root, BinaryOp) and root.op in ("+", "-"):
        left = _strip_groups(root.left)
        right = _strip_groups(root.right)
        if isinstance(left, Dice) and isinstance(right, Number) and isinstance(right.value, int):
            dice_node = left
            modifier = right.value if root.op == "+" else -right.value
        elif (
            root.op == "+"
            and isinstance(right, Dice)
            and isinstance(left, Number)
            and isinstance(left.value, int)
        ):
            dice_node = right
            modifier = left.value
        else:
            return None
    if not isinstance(dice_node, Dice) or dice_node.keep is not None or dice_node.count < 1:
        return None
    return dice_node, modifier
