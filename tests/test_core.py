"""
Unit tests for the forest training engine.

Tests numerical correctness of:
- Sums arithmetic and node range bookkeeping
- Range-local reordering in the example store
- Best-first scheduling order
- Bias, termination and degenerate-data behaviour of the trainer
- The four-example end-to-end split
"""

import logging
import math

import numpy as np
import pytest

import sys
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from boostforest.config import TrainerConfig
from boostforest.examples import ExampleStore, examples_from_arrays
from boostforest.exceptions import ConfigurationError, InvalidTrainingData
from boostforest.forest import Forest
from boostforest.scheduler import SplitCandidate, SplitScheduler
from boostforest.stats import NodeRanges, NodeStats, Sums
from boostforest.strategies import (
    Booster, ConstantEdgePredictorFactory, SquaredErrorBooster,
    ThresholdRule, ThresholdSplitFinder
)
from boostforest.trainer import ForestTrainer, LoggingObserver, TrainingObserver


def make_trainer(num_rounds=1, min_split_gain=0.0, max_splits_per_round=1, **kwargs):
    booster = kwargs.pop("booster", SquaredErrorBooster())
    return ForestTrainer(
        booster=booster,
        finder=ThresholdSplitFinder(),
        edge_predictor_factory=ConstantEdgePredictorFactory(),
        config=TrainerConfig(
            num_rounds=num_rounds,
            min_split_gain=min_split_gain,
            max_splits_per_round=max_splits_per_round,
        ),
        **kwargs
    )


def four_examples(labels=(0.0, 0.0, 1.0, 1.0)):
    X = np.array([[0.0], [1.0], [2.0], [3.0]])
    return examples_from_arrays(X, np.array(labels))


class RecordingObserver(TrainingObserver):
    def __init__(self):
        self.events = []

    def on_split(self, event):
        self.events.append(event)


# =========================
# Test Sums and ranges
# =========================

def test_sums_from_arrays():
    """Sums accumulate Σw and Σw·y."""
    sums = Sums.from_arrays(np.array([1.0, 2.0, 0.5]), np.array([3.0, -1.0, 4.0]))

    assert sums.sum_weights == pytest.approx(3.5)
    assert sums.sum_weighted_labels == pytest.approx(3.0 - 2.0 + 2.0)


def test_sums_difference_recovers_sibling():
    """Parent minus one child gives the other child."""
    left = Sums(2.0, 1.5)
    right = Sums(3.0, -0.5)
    parent = left + right

    assert (parent - left).isclose(right)
    assert (parent - right).isclose(left)


def test_sums_mean_of_empty_set_is_zero():
    assert Sums().mean == 0.0
    assert Sums(4.0, 2.0).mean == pytest.approx(0.5)


def test_node_ranges_children_partition_parent():
    """Child ranges are adjacent, disjoint and cover the parent."""
    ranges = NodeRanges(first=5, size=10, size0=4)
    left, right = ranges.child(0), ranges.child(1)

    assert left.first == 5 and left.size == 4
    assert right.first == left.stop
    assert left.size + right.size == ranges.size
    assert right.stop == ranges.stop


def test_node_ranges_reject_invalid_boundary():
    with pytest.raises(ValueError):
        NodeRanges(first=0, size=3, size0=4)
    with pytest.raises(ValueError):
        NodeRanges(first=0, size=3, size0=1).child(2)


def test_node_stats_derives_right_child():
    stats = NodeStats.from_total_and_left(Sums(4.0, 2.0), Sums(2.0, 0.0))

    assert stats.children[1].isclose(Sums(2.0, 2.0))
    assert stats.is_conserved()


# =========================
# Test ExampleStore reordering
# =========================

def _store(n=8):
    X = np.arange(n, dtype=float).reshape(-1, 1)
    y = np.arange(n, dtype=float) * 10
    return ExampleStore.from_examples(examples_from_arrays(X, y))


def test_partition_moves_true_rows_first():
    store = _store()
    node_range = NodeRanges(0, 8)

    size0 = store.partition(lambda block: block[:, 0] % 2 == 1, node_range)

    assert size0 == 4
    np.testing.assert_array_equal(store.features[:4, 0], [1, 3, 5, 7])
    np.testing.assert_array_equal(store.features[4:, 0], [0, 2, 4, 6])
    # Metadata travels with its row
    np.testing.assert_array_equal(store.strong_labels, store.features[:, 0] * 10)


def test_partition_only_touches_its_range():
    store = _store()
    before = store.features.copy()

    store.partition(lambda block: block[:, 0] > 4, NodeRanges(2, 4))

    np.testing.assert_array_equal(store.features[:2], before[:2])
    np.testing.assert_array_equal(store.features[6:], before[6:])
    np.testing.assert_array_equal(store.features[2:6, 0], [5, 2, 3, 4])


def test_partition_is_idempotent():
    """Partitioning twice with the same predicate keeps the same boundary."""
    store = _store()
    node_range = NodeRanges(1, 6)
    predicate = lambda block: block[:, 0] >= 4

    first = store.partition(predicate, node_range)
    after_once = store.features.copy()
    second = store.partition(predicate, node_range)

    assert first == second
    np.testing.assert_array_equal(store.features, after_once)


def test_sort_orders_range_by_key():
    store = _store()

    store.sort(lambda block: -block[:, 0], NodeRanges(2, 5))

    np.testing.assert_array_equal(store.features[:, 0], [0, 1, 6, 5, 4, 3, 2, 7])
    np.testing.assert_array_equal(store.original_index, [0, 1, 6, 5, 4, 3, 2, 7])


def test_from_examples_rejects_empty_source():
    with pytest.raises(InvalidTrainingData):
        ExampleStore.from_examples(iter([]))


def test_from_examples_rejects_ragged_features():
    with pytest.raises(InvalidTrainingData):
        ExampleStore.from_examples([([1.0, 2.0], 1.0, 0.0), ([1.0], 1.0, 1.0)])


# =========================
# Test SplitScheduler
# =========================

def _candidate(node_id, gain):
    stats = NodeStats.from_total_and_left(Sums(2.0, 1.0), Sums(1.0, 0.0))
    return SplitCandidate(node_id, gain, NodeRanges(0, 2, 1), stats, ThresholdRule(0, 0.5))


def test_scheduler_pops_highest_gain_first():
    scheduler = SplitScheduler()
    for node_id, gain in [(0, 0.5), (1, 2.0), (2, 1.0), (3, 0.1)]:
        scheduler.push(_candidate(node_id, gain))

    gains = [scheduler.pop().gain for _ in range(4)]

    assert gains == [2.0, 1.0, 0.5, 0.1]
    assert not scheduler


def test_scheduler_equal_gain_lowest_node_id_wins():
    scheduler = SplitScheduler()
    scheduler.push(_candidate(7, 1.0))
    scheduler.push(_candidate(3, 1.0))
    scheduler.push(_candidate(5, 1.0))

    assert [scheduler.pop().node_id for _ in range(3)] == [3, 5, 7]


def test_scheduler_candidates_do_not_mutate_queue():
    scheduler = SplitScheduler()
    scheduler.push(_candidate(0, 0.3))
    scheduler.push(_candidate(1, 0.9))

    listed = [c.node_id for c in scheduler.candidates()]

    assert listed == [1, 0]
    assert len(scheduler) == 2
    assert scheduler.peek().node_id == 1


def test_scheduler_reset_and_empty_pop():
    scheduler = SplitScheduler()
    scheduler.push(_candidate(0, 1.0))
    scheduler.reset()

    assert len(scheduler) == 0
    with pytest.raises(IndexError):
        scheduler.pop()


# =========================
# Test configuration
# =========================

@pytest.mark.parametrize("kwargs", [
    {"num_rounds": 0},
    {"num_rounds": -3},
    {"min_split_gain": -0.1},
    {"min_split_gain": float("nan")},
    {"max_splits_per_round": -1},
    {"max_splits_per_round": 2.0},
    {"num_rounds": True},
    {"min_split_gain": None},
    {"min_split_gain": "0.1"},
])
def test_config_rejected_at_construction(kwargs):
    with pytest.raises(ConfigurationError):
        make_trainer(**kwargs)


def test_config_accepts_infinite_gain_and_zero_splits():
    make_trainer(min_split_gain=math.inf, max_splits_per_round=0)


def test_config_accepts_numpy_scalars():
    trainer = make_trainer(
        num_rounds=np.int64(2), min_split_gain=np.float64(0.0), max_splits_per_round=np.int32(1)
    )
    forest = trainer.train(four_examples())

    assert forest.num_splits >= 1


# =========================
# Test ForestTrainer
# =========================

def test_bias_after_first_round():
    """Labels {1,1,0,0} with unit weights give a first-round bias of 0.5."""
    trainer = make_trainer(max_splits_per_round=0)
    forest = trainer.train(four_examples(labels=(1.0, 1.0, 0.0, 0.0)))

    assert trainer.history_[0].bias == pytest.approx(0.5)
    assert forest.bias == pytest.approx(0.5)
    np.testing.assert_allclose(trainer.train_outputs_, 0.5)


def test_end_to_end_single_root_split():
    """One split at the root separates {0, 1} from {2, 3}."""
    observer = RecordingObserver()
    trainer = make_trainer(num_rounds=1, min_split_gain=0.0, max_splits_per_round=1,
                           observers=[observer])
    forest = trainer.train(four_examples())

    assert forest.num_splits == 1
    root = forest.roots[0]
    interior = forest.interior(0)
    assert interior.node_id == root
    assert isinstance(interior.rule, ThresholdRule)
    assert interior.rule.feature == 0
    assert 1.0 <= interior.rule.threshold < 2.0

    event = observer.events[0]
    assert event.node_range.size0 == 2
    np.testing.assert_array_equal(
        np.sort(trainer.store_.original_index[:2]), [0, 1]
    )

    # Each side moves from the 0.5 bias to its label mean
    outputs = trainer.train_outputs_
    np.testing.assert_allclose(outputs, [0.0, 0.0, 1.0, 1.0], atol=1e-12)
    np.testing.assert_allclose(forest.predict(np.array([[0.0], [3.0]])), [0.0, 1.0], atol=1e-12)


def test_zero_split_cap_never_splits():
    trainer = make_trainer(num_rounds=5, max_splits_per_round=0)
    forest = trainer.train(four_examples())

    assert forest.num_splits == 0
    assert forest.depth(forest.roots[0]) == 0
    assert len(trainer.history_) == 1
    assert trainer.history_[0].stopped


def test_infinite_min_gain_stops_at_root_check():
    trainer = make_trainer(num_rounds=5, min_split_gain=math.inf, max_splits_per_round=4)
    forest = trainer.train(four_examples())

    assert forest.num_splits == 0
    assert len(trainer.history_) == 1


class ZeroWeightBooster(Booster):
    def relabel(self, strong_weights, strong_labels, outputs):
        return np.zeros_like(strong_weights), strong_labels - outputs

    def loss(self, strong_weights, strong_labels, outputs):
        return 0.0


def test_zero_weight_round_raises_and_leaves_forest_unchanged():
    forest = Forest()
    trainer = make_trainer(booster=ZeroWeightBooster(), forest=forest)

    with pytest.raises(InvalidTrainingData):
        trainer.train(four_examples())

    assert forest.num_trees == 0
    assert forest.bias == 0.0


def test_logging_observer_traces_splits(caplog):
    caplog.set_level(logging.DEBUG, logger="boostforest.trainer")
    trainer = make_trainer(observers=[LoggingObserver()])
    trainer.train(four_examples())

    assert "split node 0" in caplog.text
    assert "Round 0 done: splits=1" in caplog.text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
