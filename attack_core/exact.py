"""Closed-form damage distributions for flat-modifier dice sums."""

from __future__ import annotations

import math
from collections.abc import Mapping
from fractions import Fraction
from typing import Optional

import numpy as np

from .data import D20_SIDES, DamageDistribution
from .models import AdvantageMode, CritRules

DistributionKey = tuple[tuple[int, float], ...]


class ExactDamageEngine:
    """Analytic engine for ``n`` dice of ``s`` sides plus a flat modifier.

    Binomial coefficients and multi-hit convolution tables are cached on the
    instance, so engines running on different threads never share state.
    """

    def __init__(self) -> None:
        self._binomials: list[list[int]] = [[1]]
        self._convolutions: dict[DistributionKey, tuple[int, list[np.ndarray]]] = {}

    # ---- Combinatorics -------------------------------------------------------

    def _expand_to(self, n: int) -> None:
        """Grow Pascal's triangle until row ``n`` exists."""

        rows = self._binomials
        while n >= len(rows):
            previous = rows[-1]
            size = len(rows)
            next_row = [1] * (size + 1)
            for i in range(1, size):
                next_row[i] = previous[i - 1] + previous[i]
            rows.append(next_row)

    def binomial(self, n: int, k: int) -> int:
        """Return ``C(n, k)`` as an exact integer.

        ``k`` outside ``[0, n]`` yields 0.

        Raises
        ------
        ValueError
            If ``n`` is negative; such lookups have no defined value.
        """

        if n < 0:
            raise ValueError(f"Binomial coefficient undefined for n={n}")
        if k < 0 or k > n:
            return 0
        self._expand_to(n)
        return self._binomials[n][k]

    # ---- Single hit ----------------------------------------------------------

    def probability_of_total(self, output: int, n: int, s: int, mod: int) -> float:
        """Return ``P(sum of n s-sided dice + mod == output)``.

        The alternating sum is evaluated on exact integers and narrowed to a
        float once. Totals below ``n + mod`` produce an empty sum and therefore
        zero. ``s`` must be positive; zero-sided dice are not checked.

        Parameters
        ----------
        output:
            Target total including the modifier.
        n:
            Number of dice, at least one.
        s:
            Sides per die.
        mod:
            Flat modifier added to the dice sum.
        """

        target = output - mod
        k_max = (target - n) // s
        total = 0
        for k in range(k_max + 1):
            remaining = target - s * k
            term = self.binomial(n, k) * self.binomial(remaining - 1, remaining - n)
            total += -term if k % 2 else term
        return float(Fraction(total, s**n))

    def single_hit_distribution(self, n: int, s: int, mod: int) -> DamageDistribution:
        """Return the full distribution of one damage roll ``nds + mod``."""

        return {
            output: self.probability_of_total(output, n, s, mod)
            for output in range(n + mod, n * s + mod + 1)
        }

    # ---- Several attacks -----------------------------------------------------

    def hit_count_probability(self, p_hit: float, hits: int, attacks: int) -> float:
        """Return ``P(exactly hits of attacks connect)`` for independent attacks.

        The product is formed in log space; ``C(attacks, hits)`` alone
        exceeds the float range past roughly a thousand attacks.

        Raises
        ------
        ValueError
            If ``p_hit`` lies outside ``[0, 1]``.
        """

        if not 0.0 <= p_hit <= 1.0:
            raise ValueError("Hit probability must be between 0 and 1.")
        if hits < 0 or hits > attacks:
            return 0.0
        misses = attacks - hits
        if p_hit == 0.0:
            return 1.0 if hits == 0 else 0.0
        if p_hit == 1.0:
            return 1.0 if misses == 0 else 0.0
        log_weight = (
            math.log(self.binomial(attacks, hits))
            + hits * math.log(p_hit)
            + misses * math.log1p(-p_hit)
        )
        return math.exp(log_weight)

    def _convolution_table(self, single: Mapping[int, float], hits: int) -> tuple[int, list[np.ndarray]]:
        """Return the lowest single-hit total and the m-fold tables up to ``hits``."""

        key: DistributionKey = tuple(sorted(single.items()))
        cached = self._convolutions.get(key)
        if cached is None:
            low = min(single)
            high = max(single)
            base = np.zeros(high - low + 1, dtype=float)
            for damage, probability in single.items():
                base[damage - low] = probability
            cached = (low, [np.ones(1, dtype=float), base])
            self._convolutions[key] = cached
        low, tables = cached
        base = tables[1]
        while len(tables) <= hits:
            tables.append(np.convolve(tables[-1], base))
        return low, tables

    def multi_hit_distribution(self, single: Mapping[int, float], hits: int) -> DamageDistribution:
        """Return the distribution of the summed damage of ``hits`` hits.

        Zero hits is the point mass at zero damage.
        """

        if hits < 0:
            raise ValueError(f"Number of hits must be non-negative, received {hits}")
        if hits == 0 or not single:
            return {0: 1.0}
        low, tables = self._convolution_table(single, hits)
        offset = low * hits
        return {offset + index: float(value) for index, value in enumerate(tables[hits])}

    def damage_distribution(
        self,
        n: int,
        s: int,
        mod: int,
        num_attacks: int,
        p_hit: float,
    ) -> DamageDistribution:
        """Return ``P(total damage = X)`` over every reachable ``X``.

        Combines the binomial hit-count model with the m-fold convolution of
        the single-hit distribution.
        """

        single = self.single_hit_distribution(n, s, mod)
        if not single:
            return {0: 1.0}
        low, tables = self._convolution_table(single, num_attacks)
        high = max(single)
        first = min(0, low * num_attacks)
        size = max(0, high * num_attacks) - first + 1
        totals = np.zeros(size, dtype=float)
        reached = np.zeros(size, dtype=bool)
        for hits in range(num_attacks + 1):
            weight = self.hit_count_probability(p_hit, hits, num_attacks)
            if weight == 0.0:
                continue
            start = low * hits - first
            table = tables[hits]
            totals[start : start + len(table)] += weight * table
            reached[start : start + len(table)] = True
        return {int(first + index): float(totals[index]) for index in np.flatnonzero(reached)}

    def probability_of_damage(
        self,
        damage: int,
        n: int,
        s: int,
        mod: int,
        num_attacks: int,
        p_hit: float,
    ) -> float:
        return self.damage_distribution(n, s, mod, num_attacks, p_hit).get(damage, 0.0)

    # ---- Attack checks -------------------------------------------------------

    @staticmethod
    def d20_hit_probability(
        attack_bonus: int,
        versus: float,
        mode: AdvantageMode = AdvantageMode.NORMAL,
        crits: Optional[CritRules] = None,
    ) -> float:
        """Return the chance that ``1d20 + attack_bonus`` beats ``versus``.

        A natural 20 hits when ``successes_hit`` is set and a natural 1 misses
        when ``fails_miss`` is set. Under advantage the attack hits unless both
        checks miss; under disadvantage both checks must hit.
        """

        rules = crits or CritRules()
        hitting_faces = 0
        for face in range(1, D20_SIDES + 1):
            if face == D20_SIDES and rules.successes_hit:
                hitting_faces += 1
            elif face == 1 and rules.fails_miss:
                continue
            elif face + attack_bonus > versus:
                hitting_faces += 1
        single = hitting_faces / D20_SIDES
        mode = AdvantageMode.parse(mode)
        if mode is AdvantageMode.ADVANTAGE:
            return 1.0 - (1.0 - single) ** 2
        if mode is AdvantageMode.DISADVANTAGE:
            return single**2
        return single
