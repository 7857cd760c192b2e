"""Dataclasses shared across the simulation, exact and protocol modules."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .data import ADVANTAGE_MODES


class AdvantageMode(str, Enum):
    """How many attack checks are rolled and which one is kept."""

    NORMAL = "normal"
    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"

    @classmethod
    def parse(cls, value: str | AdvantageMode) -> AdvantageMode:
        """Return the mode for ``value``, raising ``ValueError`` for unknown names."""

        if isinstance(value, AdvantageMode):
            return value
        normalized = str(value).strip().lower()
        if normalized not in ADVANTAGE_MODES:
            raise ValueError(
                f"Unknown advantage mode '{value}', expected one of {', '.join(ADVANTAGE_MODES)}"
            )
        return cls(normalized)


class AttackState(Enum):
    """Lifecycle of a single attack instance."""

    PENDING = "pending"
    ATTACK_ROLLED = "attack_rolled"
    MISS = "miss"
    HIT_NORMAL = "hit_normal"
    HIT_CRIT = "hit_crit"

    @property
    def is_hit(self) -> bool:
        return self in (AttackState.HIT_NORMAL, AttackState.HIT_CRIT)


@dataclass(frozen=True)
class CritRules:
    """Which critical classifications change the outcome of an attack."""

    fails_miss: bool = True
    successes_hit: bool = True
    successes_crit: bool = True

    def to_message(self) -> dict[str, bool]:
        return {
            "failsMiss": self.fails_miss,
            "successesHit": self.successes_hit,
            "successesCrit": self.successes_crit,
        }

    @classmethod
    def from_message(cls, payload: Optional[Mapping[str, Any]]) -> CritRules:
        if not payload:
            return cls()
        return cls(
            fails_miss=bool(payload.get("failsMiss", True)),
            successes_hit=bool(payload.get("successesHit", True)),
            successes_crit=bool(payload.get("successesCrit", True)),
        )


@dataclass(frozen=True)
class AttackSetup:
    """Configuration for one attack sequence.

    The ``attack`` field may carry variable definitions after a ``%%``
    delimiter, e.g. ``"1d20+X%%X=1d4"``.
    """

    attack: str
    damage: str
    versus: str = "10"
    advantage: AdvantageMode = AdvantageMode.NORMAL
    num_attacks: str = "1"
    crits: CritRules = field(default_factory=CritRules)
    cost: Optional[str] = None
    reduction: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "advantage", AdvantageMode.parse(self.advantage))
        object.__setattr__(self, "versus", str(self.versus))
        object.__setattr__(self, "num_attacks", str(self.num_attacks))
        # Blank optional fields behave exactly like missing ones.
        if self.cost is not None and not str(self.cost).strip():
            object.__setattr__(self, "cost", None)
        if self.reduction is not None and not str(self.reduction).strip():
            object.__setattr__(self, "reduction", None)

    def to_message(self) -> dict[str, Any]:
        """Return the camelCase mapping used on the computation boundary."""

        return {
            "attack": self.attack,
            "damage": self.damage,
            "versus": self.versus,
            "advantage": self.advantage.value,
            "numAttacks": self.num_attacks,
            "crits": self.crits.to_message(),
            "cost": self.cost,
            "reduction": self.reduction,
        }

    @classmethod
    def from_message(cls, payload: Mapping[str, Any]) -> AttackSetup:
        """Build a setup from its boundary mapping.

        Raises
        ------
        ValueError
            If a required field is missing or the advantage mode is unknown.
        """

        try:
            attack = str(payload["attack"])
            damage = str(payload["damage"])
        except KeyError as exc:
            raise ValueError(f"Attack setup is missing required field {exc.args[0]!r}") from exc
        cost = payload.get("cost")
        reduction = payload.get("reduction")
        return cls(
            attack=attack,
            damage=damage,
            versus=str(payload.get("versus", "10")),
            advantage=AdvantageMode.parse(payload.get("advantage", "normal")),
            num_attacks=str(payload.get("numAttacks", "1")),
            crits=CritRules.from_message(payload.get("crits")),
            cost=None if cost is None else str(cost),
            reduction=None if reduction is None else str(reduction),
        )


@dataclass(frozen=True)
class AttackOutcome:
    """Result of resolving one attack instance."""

    damage: int
    hit: bool
    cost: float
    state: AttackState


@dataclass
class TrialResult:
    """Sum over every attack instance of one trial."""

    total_damage: int = 0
    attacks_resolved: int = 0
    hits: int = 0
    total_cost: float = 0.0

    def add(self, outcome: AttackOutcome) -> None:
        self.total_damage += outcome.damage
        self.attacks_resolved += 1
        if outcome.hit:
            self.hits += 1
        self.total_cost += outcome.cost


@dataclass
class Bucket:
    """Observations that landed on a single damage value."""

    count: int = 0
    cost_total: float = 0.0
    attack_count_total: int = 0


@dataclass
class DamageSummary:
    """Aggregated Monte Carlo metrics for display."""

    total_trials: int
    mean_damage: float
    hit_rate: float
    mean_cost: float
    mean_attacks: float
    min_damage: int
    max_damage: int
