import pytest

from attack_core.histogram import Histogram
from attack_core.models import TrialResult


def trial(damage: int, attacks: int = 1, hits: int = 1, cost: float = 0.0) -> TrialResult:
    return TrialResult(total_damage=damage, attacks_resolved=attacks, hits=hits, total_cost=cost)


def sample_histogram() -> Histogram:
    histogram = Histogram()
    histogram.extend(
        [
            trial(0, attacks=2, hits=0, cost=2.0),
            trial(5, attacks=2, hits=1, cost=2.0),
            trial(5, attacks=2, hits=1, cost=2.0),
            trial(12, attacks=2, hits=2, cost=2.0),
        ]
    )
    return histogram


def test_trials_are_bucketed_by_total_damage() -> None:
    histogram = sample_histogram()
    assert len(histogram) == 3
    assert histogram.buckets[5].count == 2
    assert histogram.buckets[5].cost_total == 4.0
    assert histogram.buckets[5].attack_count_total == 4
    assert histogram.total_count == histogram.num_trials == 4
    assert histogram.num_hit == 4
    assert histogram.num_attacks == 8


def test_iteration_is_sorted_by_damage() -> None:
    histogram = Histogram()
    for damage in (9, 1, 4):
        histogram.add(trial(damage))
    assert [damage for damage, _ in histogram] == [1, 4, 9]


def test_probabilities_and_mean() -> None:
    histogram = sample_histogram()
    assert histogram.probabilities() == {0: 0.25, 5: 0.5, 12: 0.25}
    assert histogram.mean_damage() == pytest.approx(5.5)


def test_summary() -> None:
    summary = sample_histogram().summary()
    assert summary.total_trials == 4
    assert summary.hit_rate == pytest.approx(0.5)
    assert summary.mean_cost == pytest.approx(2.0)
    assert summary.mean_attacks == pytest.approx(2.0)
    assert (summary.min_damage, summary.max_damage) == (0, 12)


def test_empty_histogram_reports_zeros() -> None:
    histogram = Histogram()
    assert histogram.probabilities() == {}
    assert histogram.mean_damage() == 0.0
    summary = histogram.summary()
    assert summary.total_trials == 0
    assert summary.hit_rate == 0.0
    assert histogram.to_frame().empty


def test_merge_adds_buckets_and_totals() -> None:
    merged = sample_histogram()
    other = Histogram()
    other.add(trial(5, cost=1.5))
    other.add(trial(7))
    merged.merge(other)
    assert merged.num_trials == 6
    assert merged.buckets[5].count == 3
    assert merged.buckets[5].cost_total == pytest.approx(5.5)
    assert merged.buckets[7].count == 1
    assert merged.num_attacks == 10


def test_to_frame() -> None:
    frame = sample_histogram().to_frame()
    assert list(frame.columns) == [
        "damage",
        "count",
        "probability",
        "cost_total",
        "attack_count_total",
        "cumulative",
    ]
    assert frame["damage"].tolist() == [0, 5, 12]
    assert frame["count"].tolist() == [1, 2, 1]
    assert frame["cumulative"].iloc[-1] == pytest.approx(1.0)
