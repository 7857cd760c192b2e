"""Sparse damage histogram built from Monte Carlo trials."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

import pandas as pd

from .data import DamageDistribution
from .models import Bucket, DamageSummary, TrialResult


class Histogram:
    """Mapping from total damage to observation counts with running totals."""

    def __init__(self) -> None:
        self.buckets: dict[int, Bucket] = {}
        self.num_trials = 0
        self.num_hit = 0
        self.num_attacks = 0

    def add(self, trial: TrialResult) -> None:
        """Fold one trial into the bucket keyed by its total damage."""

        bucket = self.buckets.get(trial.total_damage)
        if bucket is None:
            bucket = Bucket()
            self.buckets[trial.total_damage] = bucket
        bucket.count += 1
        bucket.cost_total += trial.total_cost
        bucket.attack_count_total += trial.attacks_resolved
        self.num_trials += 1
        self.num_hit += trial.hits
        self.num_attacks += trial.attacks_resolved

    def extend(self, trials: Iterable[TrialResult]) -> None:
        for trial in trials:
            self.add(trial)

    def merge(self, other: Histogram) -> None:
        """Add every bucket and total of ``other`` into this histogram."""

        for damage, incoming in other.buckets.items():
            bucket = self.buckets.setdefault(damage, Bucket())
            bucket.count += incoming.count
            bucket.cost_total += incoming.cost_total
            bucket.attack_count_total += incoming.attack_count_total
        self.num_trials += other.num_trials
        self.num_hit += other.num_hit
        self.num_attacks += other.num_attacks

    def __len__(self) -> int:
        return len(self.buckets)

    def __iter__(self) -> Iterator[tuple[int, Bucket]]:
        return iter(sorted(self.buckets.items()))

    @property
    def total_count(self) -> int:
        return sum(bucket.count for bucket in self.buckets.values())

    @property
    def total_cost(self) -> float:
        return sum(bucket.cost_total for bucket in self.buckets.values())

    def probabilities(self) -> DamageDistribution:
        """Return the observed frequency of every damage value."""

        if self.num_trials <= 0:
            return {}
        return {damage: bucket.count / self.num_trials for damage, bucket in self}

    def mean_damage(self) -> float:
        if self.num_trials <= 0:
            return 0.0
        return sum(damage * bucket.count for damage, bucket in self.buckets.items()) / self.num_trials

    def summary(self) -> DamageSummary:
        trials = self.num_trials
        if trials <= 0:
            return DamageSummary(
                total_trials=0,
                mean_damage=0.0,
                hit_rate=0.0,
                mean_cost=0.0,
                mean_attacks=0.0,
                min_damage=0,
                max_damage=0,
            )
        return DamageSummary(
            total_trials=trials,
            mean_damage=self.mean_damage(),
            hit_rate=self.num_hit / self.num_attacks if self.num_attacks > 0 else 0.0,
            mean_cost=self.total_cost / trials,
            mean_attacks=self.num_attacks / trials,
            min_damage=min(self.buckets),
            max_damage=max(self.buckets),
        )

    def to_frame(self) -> pd.DataFrame:
        """Return one row per damage value, sorted by damage."""

        rows = [
            {
                "damage": damage,
                "count": bucket.count,
                "probability": bucket.count / self.num_trials if self.num_trials else 0.0,
                "cost_total": bucket.cost_total,
                "attack_count_total": bucket.attack_count_total,
            }
            for damage, bucket in self
        ]
        frame = pd.DataFrame(
            rows,
            columns=["damage", "count", "probability", "cost_total", "attack_count_total"],
        )
        frame["cumulative"] = frame["probability"].cumsum()
        return frame
