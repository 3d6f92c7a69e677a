"""
Forest trainer: boosting rounds with best-first tree growth.

Each round:
  1. The booster relabels every example from its original supervision and
     current output, giving weak weights and labels.
  2. The weighted mean weak label becomes a bias that is added to the forest
     and to every example's output.
  3. A new tree is started and its root's best split is looked up. Growth
     only starts if that split reaches ``min_split_gain``.
  4. Splits are applied best-first from a priority queue. Applying a split
     regroups the node's rows into two contiguous child ranges, adds each
     child's edge output to its rows, installs the split in the forest, and
     schedules the children's own best splits.

The example store keeps each node's rows contiguous, so every split only
reorders the rows of the node being split.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
- Shi, H. (2007). Best-first decision tree learning. University of Waikato.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .config import TrainerConfig
from .examples import Example, ExampleStore
from .exceptions import InvalidTrainingData
from .forest import Forest
from .scheduler import SplitCandidate, SplitScheduler
from .stats import NodeRanges, NodeStats, Sums
from .strategies import Booster, EdgePredictorFactory, SplitRuleFinder

logger = logging.getLogger(__name__)


@dataclass
class SplitEvent:
    """What happened when one split was applied."""

    round_index: int
    node_id: int
    interior_index: int
    gain: float
    node_range: NodeRanges
    stats: NodeStats
    child_ids: Tuple[int, int]
    measured_children: Tuple[Sums, Sums]
    edge_predictors: Tuple


@dataclass
class RoundSummary:
    """Outcome of one boosting round."""

    round_index: int
    root_id: int
    bias: float
    num_splits: int
    train_loss: float
    stopped: bool = False


class TrainingObserver:
    """
    Hooks called by ``ForestTrainer`` during training.

    Subclasses override whichever hooks they need; the defaults do nothing.
    Observers may read the store and forest but must not modify them.
    """

    def on_round_start(self, round_index: int, store: ExampleStore, forest: Forest) -> None:
        pass

    def on_split(self, event: SplitEvent) -> None:
        pass

    def on_round_end(self, summary: RoundSummary) -> None:
        pass


class LoggingObserver(TrainingObserver):
    """Traces dataset and forest state through ``logging`` at DEBUG level."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log if log is not None else logger

    def on_round_start(self, round_index, store, forest):
        self.log.debug(
            f"Round {round_index}: {store.n_examples} examples, {forest.num_trees} trees, "
            f"{forest.num_splits} splits, bias={forest.bias:.6f}"
        )

    def on_split(self, event):
        r = event.node_range
        self.log.debug(
            f"Round {event.round_index}: split node {event.node_id} gain={event.gain:.6f} "
            f"rows=[{r.first}, {r.stop}) size0={r.size0} children={event.child_ids}"
        )

    def on_round_end(self, summary):
        self.log.debug(
            f"Round {summary.round_index} done: splits={summary.num_splits} "
            f"loss={summary.train_loss:.6f} stopped={summary.stopped}"
        )


class ForestTrainer:
    """
    Grows a boosted forest over an in-memory example set.

    The trainer is generic over its strategies: a ``Booster`` assigns weak
    targets, a ``SplitRuleFinder`` proposes node splits and an
    ``EdgePredictorFactory`` builds the output attached to each child.

    Parameters
    ----------
    booster : Booster
        Produces weak weights and labels every round.
    finder : SplitRuleFinder
        Proposes the best split for a node.
    edge_predictor_factory : EdgePredictorFactory
        Builds one edge predictor per child of an applied split.
    config : TrainerConfig, optional
        Round count, gain threshold and per-round split cap. Validated here.
    forest : Forest, optional
        Forest to grow. Training continues from its current predictions;
        a new empty forest is created if omitted.
    observers : sequence of TrainingObserver
        Hooks notified at round start, after every split and at round end.
    verbose : bool, default=False
        Log a summary of every round at INFO level.
    """

    def __init__(
        self,
        booster: Booster,
        finder: SplitRuleFinder,
        edge_predictor_factory: EdgePredictorFactory,
        config: Optional[TrainerConfig] = None,
        forest: Optional[Forest] = None,
        observers: Sequence[TrainingObserver] = (),
        verbose: bool = False
    ):
        self.config = config if config is not None else TrainerConfig()
        self.config.validate()

        self.booster = booster
        self.finder = finder
        self.edge_predictor_factory = edge_predictor_factory
        self.forest = forest if forest is not None else Forest()
        self.observers = list(observers)
        self.verbose = verbose

        if verbose:
            logger.setLevel(logging.INFO)

        self.scheduler = SplitScheduler()

        # Training state
        self.store_: Optional[ExampleStore] = None
        self.history_: List[RoundSummary] = []

    def _notify(self, hook: str, *args) -> None:
        for observer in self.observers:
            getattr(observer, hook)(*args)

    def train(self, example_source: Iterable[Example]) -> Forest:
        """
        Load examples once and run up to ``config.num_rounds`` boosting rounds.

        Args:
            example_source: Iterable of ``(features, weight, label)`` tuples,
                consumed exactly once.

        Returns:
            The trained forest (also available as ``self.forest``).

        Raises:
            InvalidTrainingData: If the examples are malformed, or if a round's
                total weak weight is zero. The forest keeps every split
                materialised before the failure.
        """
        store = ExampleStore.from_examples(example_source)
        # Outputs start from what the forest already predicts, not from zero
        store.outputs[:] = self.forest.predict(store.features)
        self.store_ = store
        self.history_ = []

        for round_index in range(self.config.num_rounds):
            self._notify("on_round_start", round_index, store, self.forest)
            summary = self._run_round(round_index, store)
            self.history_.append(summary)
            self._notify("on_round_end", summary)

            logger.info(
                f"Round {round_index + 1}/{self.config.num_rounds}: "
                f"bias={summary.bias:.6f}, splits={summary.num_splits}, "
                f"train_loss={summary.train_loss:.6f}"
            )
            if summary.stopped:
                logger.info(f"Stopping after round {round_index + 1}: no split reaches the minimum gain")
                break

        return self.forest

    @property
    def train_outputs_(self) -> np.ndarray:
        """Running outputs of the training examples, in source order."""
        if self.store_ is None:
            raise RuntimeError("Trainer must be trained before reading outputs")
        return self.store_.outputs_in_source_order()

    # ---------------------------
    # One boosting round
    # ---------------------------

    def _relabel(self, store: ExampleStore) -> Sums:
        weak_weights, weak_labels = self.booster.relabel(
            store.strong_weights, store.strong_labels, store.outputs
        )
        weak_weights = np.asarray(weak_weights, dtype=np.float64)
        weak_labels = np.asarray(weak_labels, dtype=np.float64)
        if weak_weights.shape != store.outputs.shape or weak_labels.shape != store.outputs.shape:
            raise ValueError(
                f"Booster returned shapes {weak_weights.shape} and {weak_labels.shape}, "
                f"expected {store.outputs.shape}"
            )

        total = Sums.from_arrays(weak_weights, weak_labels)
        if total.sum_weights == 0:
            raise InvalidTrainingData("Total weak weight is zero; cannot compute the round bias")

        store.weak_weights[:] = weak_weights
        store.weak_labels[:] = weak_labels
        return total

    def _run_round(self, round_index: int, store: ExampleStore) -> RoundSummary:
        total = self._relabel(store)

        bias = total.mean
        self.forest.add_to_bias(bias)
        store.outputs += bias

        root_id = self.forest.new_root_id()
        num_splits = self._grow_tree(round_index, store, root_id, total)

        return RoundSummary(
            round_index=round_index,
            root_id=root_id,
            bias=bias,
            num_splits=num_splits,
            train_loss=self.booster.loss(store.strong_weights, store.strong_labels, store.outputs),
            stopped=num_splits == 0,
        )

    def _grow_tree(self, round_index: int, store: ExampleStore, root_id: int, total: Sums) -> int:
        """Best-first growth from ``root_id``. Returns the number of splits applied."""
        max_splits = self.config.max_splits_per_round
        min_gain = self.config.min_split_gain
        if max_splits == 0:
            return 0

        root = self.finder.find_best_split(store, root_id, store.full_range(), total)
        if root is None or root.gain < min_gain:
            return 0

        self.scheduler.reset()
        self.scheduler.push(root)
        num_splits = 0
        while self.scheduler:
            candidate = self.scheduler.pop()
            ranges, child_ids = self._apply_split(round_index, store, candidate)
            num_splits += 1
            if num_splits >= max_splits:
                break

            for position, child_id in enumerate(child_ids):
                child = self.finder.find_best_split(
                    store, child_id, ranges.child(position), candidate.stats.children[position]
                )
                if child is not None and child.gain > min_gain:
                    self.scheduler.push(child)

        self.scheduler.reset()
        return num_splits

    def _apply_split(
        self,
        round_index: int,
        store: ExampleStore,
        candidate: SplitCandidate
    ) -> Tuple[NodeRanges, Tuple[int, int]]:
        """Reorder the node's rows, update outputs and install the split."""
        rule = candidate.rule
        if rule.num_outcomes != 2:
            raise ValueError(
                f"Only binary rules can be installed as tree splits, got {rule.num_outcomes} outcomes"
            )

        sizes = store.reorder(rule, candidate.node_range)
        ranges = candidate.node_range.with_split(sizes[0])

        parent = candidate.stats.total
        predictors = [
            self.edge_predictor_factory.build(parent, candidate.stats.children[position])
            for position in range(2)
        ]

        # Outputs change only once the forest has accepted the split
        interior_index = self.forest.split(candidate.node_id, rule, predictors)
        for position, predictor in enumerate(predictors):
            child_range = ranges.child(position)
            store.add_outputs(child_range, predictor.predict(store.features[child_range.as_slice()]))

        child_ids = (
            self.forest.child_id(interior_index, 0),
            self.forest.child_id(interior_index, 1),
        )

        if self.observers:
            self._notify("on_split", SplitEvent(
                round_index=round_index,
                node_id=candidate.node_id,
                interior_index=interior_index,
                gain=candidate.gain,
                node_range=ranges,
                stats=candidate.stats,
                child_ids=child_ids,
                measured_children=(store.sums(ranges.child(0)), store.sums(ranges.child(1))),
                edge_predictors=tuple(predictors),
            ))
        return ranges, child_ids
