"""
Aggregate statistics and row-range bookkeeping for tree nodes.

Every tree node owns one contiguous block of rows in the example store. A
split divides that block into two adjacent child blocks, and the weighted
label mass of the parent is the sum of its children's mass. These small value
types carry that bookkeeping between the split finder, the scheduler and the
trainer.
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class Sums:
    """
    Weighted label mass of a set of examples.

    Attributes
    ----------
    sum_weights : float
        Σ w_i over the examples.
    sum_weighted_labels : float
        Σ w_i * y_i over the examples.
    """

    sum_weights: float = 0.0
    sum_weighted_labels: float = 0.0

    @classmethod
    def from_arrays(cls, weights: np.ndarray, labels: np.ndarray) -> "Sums":
        """Accumulate Σw and Σw·y over matching weight and label arrays."""
        weights = np.asarray(weights, dtype=np.float64)
        labels = np.asarray(labels, dtype=np.float64)
        return cls(float(np.sum(weights)), float(np.dot(weights, labels)))

    def __add__(self, other: "Sums") -> "Sums":
        return Sums(
            self.sum_weights + other.sum_weights,
            self.sum_weighted_labels + other.sum_weighted_labels,
        )

    def __sub__(self, other: "Sums") -> "Sums":
        return Sums(
            self.sum_weights - other.sum_weights,
            self.sum_weighted_labels - other.sum_weighted_labels,
        )

    @property
    def mean(self) -> float:
        """Weighted mean label, or 0.0 for an empty (zero-weight) set."""
        if self.sum_weights == 0:
            return 0.0
        return self.sum_weighted_labels / self.sum_weights

    def isclose(self, other: "Sums", rel_tol: float = 1e-9, abs_tol: float = 1e-12) -> bool:
        """Compare both components within floating-point tolerance."""
        return math.isclose(
            self.sum_weights, other.sum_weights, rel_tol=rel_tol, abs_tol=abs_tol
        ) and math.isclose(
            self.sum_weighted_labels, other.sum_weighted_labels, rel_tol=rel_tol, abs_tol=abs_tol
        )


@dataclass(frozen=True)
class NodeRanges:
    """
    Row range of a node and how a split divides it.

    The node owns rows ``[first, first + size)``. Child 0 owns the first
    ``size0`` rows of that block and child 1 owns the rest.
    """

    first: int
    size: int
    size0: int = 0

    def __post_init__(self):
        if self.first < 0 or self.size < 0:
            raise ValueError(f"Invalid range: first={self.first}, size={self.size}")
        if not 0 <= self.size0 <= self.size:
            raise ValueError(f"size0={self.size0} outside [0, {self.size}]")

    @property
    def stop(self) -> int:
        return self.first + self.size

    @property
    def size1(self) -> int:
        return self.size - self.size0

    def as_slice(self) -> slice:
        return slice(self.first, self.stop)

    def with_split(self, size0: int) -> "NodeRanges":
        """Return the same range with the split boundary set to ``size0``."""
        return NodeRanges(self.first, self.size, size0)

    def child(self, position: int) -> "NodeRanges":
        """Range owned by child ``position`` (0 or 1), with no split recorded."""
        if position == 0:
            return NodeRanges(self.first, self.size0)
        if position == 1:
            return NodeRanges(self.first + self.size0, self.size1)
        raise ValueError(f"Binary splits only have positions 0 and 1, got {position}")


@dataclass(frozen=True)
class NodeStats:
    """Total ``Sums`` of a node together with the ``Sums`` of its two children."""

    total: Sums
    children: Tuple[Sums, Sums]

    def __post_init__(self):
        if len(self.children) != 2:
            raise ValueError(f"NodeStats holds exactly two children, got {len(self.children)}")

    @classmethod
    def from_total_and_left(cls, total: Sums, left: Sums) -> "NodeStats":
        """Derive the right child as ``total - left``."""
        return cls(total, (left, total - left))

    def is_conserved(self, rel_tol: float = 1e-9) -> bool:
        return (self.children[0] + self.children[1]).isclose(self.total, rel_tol=rel_tol)
