"""
In-memory example store with range-local reordering.

Examples are held column-wise: a dense feature matrix plus one array per
metadata field. Reordering a range permutes every column together, so row
``i`` always describes a single example. Tree nodes refer to their examples
by contiguous row ranges; the reordering primitives only ever touch rows
inside the range they are given, which keeps sibling and ancestor ranges
valid while a tree grows.
"""

import logging
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import InvalidTrainingData
from .stats import NodeRanges, Sums

logger = logging.getLogger(__name__)

Example = Tuple[Sequence[float], float, float]


def examples_from_arrays(
    X: np.ndarray,
    y: np.ndarray,
    sample_weight: Optional[np.ndarray] = None
) -> Iterator[Example]:
    """
    Yield ``(features, weight, label)`` tuples from array-shaped data.

    Args:
        X: Features, shape (n_samples, n_features).
        y: Labels, shape (n_samples,).
        sample_weight: Optional weights, shape (n_samples,). Defaults to 1.

    Yields:
        One ``(features, weight, label)`` tuple per row.
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if X.ndim != 2:
        raise ValueError(f"X must be 2D, got shape {X.shape}")
    if y.shape != (X.shape[0],):
        raise ValueError(f"X and y have incompatible shapes: {X.shape[0]} vs {y.shape}")
    if sample_weight is None:
        sample_weight = np.ones(X.shape[0])
    sample_weight = np.asarray(sample_weight, dtype=np.float64)
    if sample_weight.shape != y.shape:
        raise ValueError(
            f"sample_weight has shape {sample_weight.shape}, expected {y.shape}"
        )
    for row, weight, label in zip(X, sample_weight, y):
        yield row, float(weight), float(label)


class ExampleStore:
    """
    Working dataset for forest training.

    Attributes
    ----------
    features : np.ndarray, shape (n_examples, n_features)
        Dense feature vectors. Never modified, only permuted.
    strong_weights, strong_labels : np.ndarray, shape (n_examples,)
        Original supervision.
    weak_weights, weak_labels : np.ndarray, shape (n_examples,)
        Per-round boosting targets assigned by the booster.
    outputs : np.ndarray, shape (n_examples,)
        Running ensemble prediction for each example.
    original_index : np.ndarray, shape (n_examples,)
        Position of each row in the example source.
    """

    _COLUMNS = (
        "features",
        "strong_weights",
        "strong_labels",
        "weak_weights",
        "weak_labels",
        "outputs",
        "original_index",
    )

    def __init__(
        self,
        features: np.ndarray,
        strong_weights: np.ndarray,
        strong_labels: np.ndarray
    ):
        features = np.asarray(features, dtype=np.float64)
        if features.ndim != 2:
            raise InvalidTrainingData(f"features must be 2D, got shape {features.shape}")
        n = features.shape[0]
        if n == 0:
            raise InvalidTrainingData("Example source is empty")
        strong_weights = np.asarray(strong_weights, dtype=np.float64)
        strong_labels = np.asarray(strong_labels, dtype=np.float64)
        if strong_weights.shape != (n,) or strong_labels.shape != (n,):
            raise InvalidTrainingData(
                f"Expected {n} weights and labels, got {strong_weights.shape} and {strong_labels.shape}"
            )
        if not (np.all(np.isfinite(features)) and np.all(np.isfinite(strong_weights))
                and np.all(np.isfinite(strong_labels))):
            raise InvalidTrainingData("Examples must not contain NaN or infinite values")
        if np.any(strong_weights < 0):
            raise InvalidTrainingData("Example weights must be non-negative")

        self.features = features
        self.strong_weights = strong_weights
        self.strong_labels = strong_labels
        self.weak_weights = np.zeros(n)
        self.weak_labels = np.zeros(n)
        self.outputs = np.zeros(n)
        self.original_index = np.arange(n)

    @classmethod
    def from_examples(cls, example_source: Iterable[Example]) -> "ExampleStore":
        """
        Build a store by consuming ``example_source`` exactly once.

        Args:
            example_source: Iterable of ``(features, weight, label)`` tuples.

        Returns:
            A new ``ExampleStore`` holding every example in source order.

        Raises:
            InvalidTrainingData: If the source is empty or feature vectors
                have inconsistent lengths.
        """
        rows: List[np.ndarray] = []
        weights: List[float] = []
        labels: List[float] = []
        for features, weight, label in example_source:
            row = np.asarray(features, dtype=np.float64).ravel()
            if rows and row.shape != rows[0].shape:
                raise InvalidTrainingData(
                    f"Example {len(rows)} has {row.size} features, expected {rows[0].size}"
                )
            rows.append(row)
            weights.append(float(weight))
            labels.append(float(label))
        if not rows:
            raise InvalidTrainingData("Example source is empty")
        store = cls(np.vstack(rows), np.asarray(weights), np.asarray(labels))
        logger.info(f"Loaded {store.n_examples} examples with {store.n_features} features")
        return store

    @property
    def n_examples(self) -> int:
        return self.features.shape[0]

    @property
    def n_features(self) -> int:
        return self.features.shape[1]

    def full_range(self) -> NodeRanges:
        return NodeRanges(0, self.n_examples)

    def sums(self, node_range: NodeRanges) -> Sums:
        """Weak-label ``Sums`` over the rows of ``node_range``."""
        rows = node_range.as_slice()
        return Sums.from_arrays(self.weak_weights[rows], self.weak_labels[rows])

    def _check_range(self, node_range: NodeRanges) -> None:
        if node_range.stop > self.n_examples:
            raise ValueError(
                f"Range [{node_range.first}, {node_range.stop}) exceeds store of "
                f"{self.n_examples} examples"
            )

    def _permute(self, node_range: NodeRanges, order: np.ndarray) -> None:
        """Apply ``order`` (relative row positions) to every column within the range."""
        rows = node_range.as_slice()
        for name in self._COLUMNS:
            column = getattr(self, name)
            column[rows] = column[rows][order]

    def partition(
        self,
        predicate: Callable[[np.ndarray], np.ndarray],
        node_range: NodeRanges
    ) -> int:
        """
        Move rows for which ``predicate`` holds to the front of ``node_range``.

        The relative order within each side is preserved. Rows outside the
        range are not touched.

        Args:
            predicate: Maps the range's feature block, shape (size, n_features),
                to a boolean mask of shape (size,).
            node_range: Rows to reorder.

        Returns:
            Number of rows for which the predicate holds.
        """
        self._check_range(node_range)
        if node_range.size == 0:
            return 0
        mask = np.asarray(predicate(self.features[node_range.as_slice()]), dtype=bool)
        if mask.shape != (node_range.size,):
            raise ValueError(f"Predicate returned shape {mask.shape}, expected ({node_range.size},)")
        order = np.concatenate([np.flatnonzero(mask), np.flatnonzero(~mask)])
        self._permute(node_range, order)
        return int(mask.sum())

    def sort(
        self,
        key_fn: Callable[[np.ndarray], np.ndarray],
        node_range: NodeRanges
    ) -> None:
        """
        Stable-sort the rows of ``node_range`` by ascending key.

        Args:
            key_fn: Maps the range's feature block to one sort key per row.
            node_range: Rows to reorder.
        """
        self._check_range(node_range)
        if node_range.size == 0:
            return
        keys = np.asarray(key_fn(self.features[node_range.as_slice()]))
        if keys.shape != (node_range.size,):
            raise ValueError(f"Key function returned shape {keys.shape}, expected ({node_range.size},)")
        self._permute(node_range, np.argsort(keys, kind="stable"))

    def reorder(self, rule, node_range: NodeRanges) -> List[int]:
        """
        Group the rows of ``node_range`` by the outcome of ``rule``.

        Two-outcome rules are handled by ``partition``; rules with more
        outcomes by ``sort``.

        Returns:
            Row count for each outcome, in outcome order.
        """
        if rule.num_outcomes == 2:
            size0 = self.partition(lambda block: rule.outcomes(block) == 0, node_range)
            return [size0, node_range.size - size0]
        self.sort(rule.outcomes, node_range)
        outcomes = rule.outcomes(self.features[node_range.as_slice()])
        return np.bincount(outcomes, minlength=rule.num_outcomes).tolist()

    def add_outputs(self, node_range: NodeRanges, values) -> None:
        """Add ``values`` (scalar or one per row) to the outputs of ``node_range``."""
        self.outputs[node_range.as_slice()] += values

    def outputs_in_source_order(self) -> np.ndarray:
        """Current outputs arranged in the order examples were loaded."""
        result = np.empty_like(self.outputs)
        result[self.original_index] = self.outputs
        return result
