"""
Pluggable strategies consumed by the forest trainer.

The trainer is generic over three capabilities:

- ``Booster``: turns the original supervision and the running prediction into
  per-example weak targets (functional-gradient boosting).
- ``SplitRuleFinder``: proposes the best binary split of a node given its rows
  and their weak-label ``Sums``.
- ``EdgePredictorFactory``: builds the predictor attached to each child of an
  applied split.

Concrete implementations are chosen when the trainer is constructed. The
reference strategies below cover squared-error and logistic boosting with
axis-aligned threshold splits and constant edge outputs.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
- Friedman, J., Hastie, T., & Tibshirani, R. (2000). Additive logistic regression
  (LogitBoost), Algorithm 3.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np

from .scheduler import SplitCandidate
from .stats import NodeRanges, NodeStats, Sums
from .utils import logistic_loss, sigmoid, squared_error_loss


# ===========================
# Boosters
# ===========================

class Booster(ABC):
    """Assigns weak weights and labels from original supervision and current outputs."""

    @abstractmethod
    def relabel(
        self,
        strong_weights: np.ndarray,
        strong_labels: np.ndarray,
        outputs: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Compute the weak targets for the next boosting round.

        Operates elementwise: entry ``i`` of each result depends only on entry
        ``i`` of each argument.

        Returns:
            ``(weak_weights, weak_labels)``, each shaped like ``outputs``.
        """
        pass

    @abstractmethod
    def loss(
        self,
        strong_weights: np.ndarray,
        strong_labels: np.ndarray,
        outputs: np.ndarray
    ) -> float:
        """Weighted training loss of ``outputs`` against the original labels."""
        pass


class SquaredErrorBooster(Booster):
    """
    Least-squares boosting.

    The negative gradient of 0.5 * (y - F)^2 is the residual y - F, so weak
    labels are residuals and weak weights are the original weights.
    """

    def relabel(self, strong_weights, strong_labels, outputs):
        return strong_weights.copy(), strong_labels - outputs

    def loss(self, strong_weights, strong_labels, outputs):
        return squared_error_loss(strong_labels, outputs, strong_weights)


class LogisticBooster(Booster):
    """
    Newton boosting for binary labels in {0, 1} (LogitBoost).

    With p = sigmoid(F), the weak weight is w * p(1-p) and the weak label is
    (y - p) / p(1-p). The weighted mean of the weak labels over a region is
    then Σ w(y - p) / Σ w p(1-p), the one-step Newton update for that region.
    """

    def __init__(self, min_hessian: float = 1e-15):
        if min_hessian <= 0:
            raise ValueError(f"min_hessian must be positive, got {min_hessian}")
        self.min_hessian = min_hessian

    def relabel(self, strong_weights, strong_labels, outputs):
        p = sigmoid(outputs)
        hessian = np.maximum(p * (1 - p), self.min_hessian)
        return strong_weights * hessian, (strong_labels - p) / hessian

    def loss(self, strong_weights, strong_labels, outputs):
        return logistic_loss(strong_labels, outputs, strong_weights)


# ===========================
# Split rules and finders
# ===========================

class SplitRule(ABC):
    """Routes each feature vector to one of ``num_outcomes`` children."""

    num_outcomes: int = 2

    @abstractmethod
    def outcomes(self, X: np.ndarray) -> np.ndarray:
        """Child position for each row of ``X``, shape (n_samples,), dtype int."""
        pass


class ThresholdRule(SplitRule):
    """Axis-aligned split: child 0 when ``x[feature] <= threshold``, else child 1."""

    num_outcomes = 2

    def __init__(self, feature: int, threshold: float):
        self.feature = int(feature)
        self.threshold = float(threshold)

    def outcomes(self, X: np.ndarray) -> np.ndarray:
        X = np.atleast_2d(X)
        return (X[:, self.feature] > self.threshold).astype(np.intp)

    def __repr__(self):
        return f"ThresholdRule(feature={self.feature}, threshold={self.threshold:.6g})"


class SplitRuleFinder(ABC):
    """Proposes the best split of one node."""

    @abstractmethod
    def find_best_split(
        self,
        store,
        node_id: int,
        node_range: NodeRanges,
        total: Sums
    ) -> Optional[SplitCandidate]:
        """
        Best split of the rows in ``node_range``.

        Args:
            store: ``ExampleStore`` holding the rows and their weak targets.
            node_id: Forest node the rows belong to.
            node_range: Rows owned by the node.
            total: Weak-label ``Sums`` over ``node_range``.

        Returns:
            A candidate whose ``node_range.size0`` is the size of child 0 and
            whose gain is on the same scale for every node, or None if the
            node admits no split at all.
        """
        pass


class ThresholdSplitFinder(SplitRuleFinder):
    """
    Exhaustive threshold search over every feature.

    For each feature the rows are sorted by value and every midpoint between
    consecutive distinct values is scored by the weighted squared-error
    reduction

        gain = S_0^2 / W_0 + S_1^2 / W_1 - S^2 / W

    where W = Σ w and S = Σ w·y over the weak targets. Ties go to the lowest
    feature index, then the lowest threshold.

    Parameters
    ----------
    min_child_weight : float, default=0.0
        Minimum weak weight required in each child.
    min_child_size : int, default=1
        Minimum number of rows required in each child.
    """

    def __init__(self, min_child_weight: float = 0.0, min_child_size: int = 1):
        if min_child_weight < 0:
            raise ValueError(f"min_child_weight must be non-negative, got {min_child_weight}")
        if min_child_size < 1:
            raise ValueError(f"min_child_size must be at least 1, got {min_child_size}")
        self.min_child_weight = min_child_weight
        self.min_child_size = min_child_size

    def find_best_split(self, store, node_id, node_range, total):
        size = node_range.size
        if size < 2 * self.min_child_size or total.sum_weights <= 0:
            return None

        rows = node_range.as_slice()
        X = store.features[rows]
        weights = store.weak_weights[rows]
        weighted_labels = weights * store.weak_labels[rows]
        parent_score = total.sum_weighted_labels ** 2 / total.sum_weights

        left_count = np.arange(1, size)
        size_ok = (left_count >= self.min_child_size) & (size - left_count >= self.min_child_size)

        best = None
        for feature in range(X.shape[1]):
            order = np.argsort(X[:, feature], kind="stable")
            values = X[order, feature]
            left_w = np.cumsum(weights[order])[:-1]
            left_wy = np.cumsum(weighted_labels[order])[:-1]
            right_w = total.sum_weights - left_w
            right_wy = total.sum_weighted_labels - left_wy

            valid = (values[:-1] < values[1:]) & size_ok
            valid &= (left_w > 0) & (right_w > 0)
            valid &= (left_w >= self.min_child_weight) & (right_w >= self.min_child_weight)
            if not valid.any():
                continue

            with np.errstate(divide="ignore", invalid="ignore"):
                gains = left_wy ** 2 / left_w + right_wy ** 2 / right_w - parent_score
            gains = np.where(valid, gains, -np.inf)
            i = int(np.argmax(gains))
            if best is None or gains[i] > best[0]:
                threshold = 0.5 * (values[i] + values[i + 1])
                # Midpoint can round up onto the next value for adjacent floats
                if threshold >= values[i + 1]:
                    threshold = values[i]
                best = (float(gains[i]), feature, float(threshold), i + 1,
                        Sums(float(left_w[i]), float(left_wy[i])))

        if best is None:
            return None

        gain, feature, threshold, size0, left = best
        return SplitCandidate(
            node_id=node_id,
            gain=gain,
            node_range=node_range.with_split(size0),
            stats=NodeStats.from_total_and_left(total, left),
            rule=ThresholdRule(feature, threshold),
        )


# ===========================
# Edge predictors
# ===========================

class EdgePredictor(ABC):
    """Output contribution attached to one child of an applied split."""

    @abstractmethod
    def predict(self, X: np.ndarray) -> np.ndarray:
        """Contribution for each row of ``X``, shape (n_samples,)."""
        pass


class ConstantEdgePredictor(EdgePredictor):
    """Adds the same value to every example routed through the edge."""

    def __init__(self, value: float):
        self.value = float(value)

    def predict(self, X: np.ndarray) -> np.ndarray:
        return np.full(np.atleast_2d(X).shape[0], self.value)

    def __repr__(self):
        return f"ConstantEdgePredictor({self.value:.6g})"


class EdgePredictorFactory(ABC):
    """Builds the edge predictor for one child of a split."""

    @abstractmethod
    def build(self, parent: Sums, child: Sums) -> EdgePredictor:
        pass


class ConstantEdgePredictorFactory(EdgePredictorFactory):
    """
    Constant edge outputs that telescope to the leaf mean.

    Each edge carries ``learning_rate * (child.mean - parent.mean)``. Summed
    along a root-to-leaf path this equals ``learning_rate`` times the gap
    between the leaf's weighted weak-label mean and the root's, and the root's
    mean is already applied as the round's bias.
    """

    def __init__(self, learning_rate: float = 1.0):
        if not 0 < learning_rate <= 1:
            raise ValueError(f"learning_rate must be in (0, 1], got {learning_rate}")
        self.learning_rate = learning_rate

    def build(self, parent, child):
        return ConstantEdgePredictor(self.learning_rate * (child.mean - parent.mean))
