"""
Forest model: an arena of tree nodes addressed by integer ids.

Nodes live in one flat list and refer to each other by index, so the whole
forest is plain data. Each boosting round adds one tree by allocating a root;
splitting a node records an interior entry holding the split rule and one
edge predictor per child, and allocates the two child nodes.

A prediction is the global bias plus, for every tree, the outputs of the edge
predictors along the path from the root to the leaf the example reaches.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import numpy as np


@dataclass
class ForestNode:
    """One node of a tree. ``interior`` is None while the node is a leaf."""

    node_id: int
    depth: int
    parent: Optional[int] = None
    interior: Optional[int] = None


@dataclass
class Interior:
    """A split installed at ``node_id``."""

    node_id: int
    rule: Any
    edge_predictors: List[Any]
    children: List[int] = field(default_factory=list)


class Forest:
    """
    Boosted forest built by ``ForestTrainer``.

    Attributes
    ----------
    bias : float
        Global additive offset, accumulated over rounds.
    roots : list of int
        Root node id of each tree, in creation order.
    """

    def __init__(self):
        self.bias: float = 0.0
        self.roots: List[int] = []
        self._nodes: List[ForestNode] = []
        self._interiors: List[Interior] = []

    # ---------------------------
    # Construction
    # ---------------------------

    def _new_node(self, depth: int, parent: Optional[int]) -> int:
        node_id = len(self._nodes)
        self._nodes.append(ForestNode(node_id=node_id, depth=depth, parent=parent))
        return node_id

    def new_root_id(self) -> int:
        """Start a new tree and return the id of its root."""
        root_id = self._new_node(depth=0, parent=None)
        self.roots.append(root_id)
        return root_id

    def split(self, node_id: int, rule, edge_predictors: Sequence) -> int:
        """
        Install ``rule`` at leaf ``node_id`` and create its two children.

        Args:
            node_id: Leaf to split.
            rule: Split rule routing rows to child 0 or 1.
            edge_predictors: One predictor per child, in child order.

        Returns:
            Index of the new interior entry.
        """
        node = self._node(node_id)
        if node.interior is not None:
            raise ValueError(f"Node {node_id} is already split")
        if len(edge_predictors) != 2:
            raise ValueError(f"Expected 2 edge predictors, got {len(edge_predictors)}")

        interior_index = len(self._interiors)
        interior = Interior(node_id=node_id, rule=rule, edge_predictors=list(edge_predictors))
        for _ in range(2):
            interior.children.append(self._new_node(depth=node.depth + 1, parent=node_id))
        self._interiors.append(interior)
        node.interior = interior_index
        return interior_index

    def child_id(self, interior_index: int, position: int) -> int:
        """Node id of child ``position`` of interior entry ``interior_index``."""
        return self.interior(interior_index).children[position]

    def add_to_bias(self, value: float) -> None:
        self.bias += float(value)

    # ---------------------------
    # Inspection
    # ---------------------------

    def _node(self, node_id: int) -> ForestNode:
        if not 0 <= node_id < len(self._nodes):
            raise KeyError(f"Unknown node id {node_id}")
        return self._nodes[node_id]

    def interior(self, interior_index: int) -> Interior:
        if not 0 <= interior_index < len(self._interiors):
            raise KeyError(f"Unknown interior index {interior_index}")
        return self._interiors[interior_index]

    def is_leaf(self, node_id: int) -> bool:
        return self._node(node_id).interior is None

    def node_depth(self, node_id: int) -> int:
        return self._node(node_id).depth

    def depth(self, root_id: int) -> int:
        """Depth of the tree rooted at ``root_id`` (0 for a lone root)."""
        deepest = 0
        stack = [root_id]
        while stack:
            node = self._node(stack.pop())
            deepest = max(deepest, node.depth)
            if node.interior is not None:
                stack.extend(self._interiors[node.interior].children)
        return deepest

    @property
    def num_nodes(self) -> int:
        return len(self._nodes)

    @property
    def num_splits(self) -> int:
        return len(self._interiors)

    @property
    def num_trees(self) -> int:
        return len(self.roots)

    def copy(self) -> "Forest":
        """Independent snapshot of the forest."""
        return copy.deepcopy(self)

    # ---------------------------
    # Prediction
    # ---------------------------

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Predict raw outputs.

        Args:
            X: One feature vector, shape (n_features,), or a batch of shape
               (n_samples, n_features).

        Returns:
            A float for a single vector, otherwise an array of shape (n_samples,).
        """
        X = np.asarray(X, dtype=np.float64)
        single = X.ndim == 1
        X = np.atleast_2d(X)
        if X.ndim != 2:
            raise ValueError(f"X must be 1D or 2D, got shape {X.shape}")

        outputs = np.full(X.shape[0], self.bias)
        for root_id in self.roots:
            outputs += self._predict_tree(root_id, X)
        if single:
            return float(outputs[0])
        return outputs

    def _predict_tree(self, root_id: int, X: np.ndarray) -> np.ndarray:
        contribution = np.zeros(X.shape[0])
        stack = [(root_id, np.arange(X.shape[0]))]
        while stack:
            node_id, indices = stack.pop()
            node = self._nodes[node_id]
            if node.interior is None or indices.size == 0:
                continue
            interior = self._interiors[node.interior]
            block = X[indices]
            outcomes = interior.rule.outcomes(block)
            for position, child in enumerate(interior.children):
                mask = outcomes == position
                if not np.any(mask):
                    continue
                contribution[indices[mask]] += interior.edge_predictors[position].predict(block[mask])
                stack.append((child, indices[mask]))
        return contribution
