"""
Best-first split scheduling.

Pending splits from every open node of the current tree wait in one priority
queue and the globally highest-gain split is applied next. ``heapq`` is a
min-heap, so entries are keyed on the negated gain.
"""

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Any, List, Tuple

from .stats import NodeRanges, NodeStats


@dataclass
class SplitCandidate:
    """
    A prospective split of one node.

    Attributes
    ----------
    node_id : int
        Forest node the split would be installed at.
    gain : float
        Improvement in fit from the split; higher is better.
    node_range : NodeRanges
        Rows owned by the node. ``size0`` is the expected size of child 0.
    stats : NodeStats
        Node total and the two child ``Sums`` the split would produce.
    rule : Any
        Split rule instance deciding which child a row goes to.
    """

    node_id: int
    gain: float
    node_range: NodeRanges
    stats: NodeStats
    rule: Any = field(repr=False)

    def sort_key(self) -> Tuple[float, int]:
        """Highest gain first; equal gains go to the lowest node id."""
        return (-self.gain, self.node_id)


class SplitScheduler:
    """
    Max-priority queue of ``SplitCandidate`` ordered by gain.

    Ties on gain are resolved by lowest ``node_id``, then by push order, so
    the pop sequence is fully deterministic.
    """

    def __init__(self):
        self._heap: List[Tuple[float, int, int, SplitCandidate]] = []
        self._counter = itertools.count()

    def push(self, candidate: SplitCandidate) -> None:
        neg_gain, node_id = candidate.sort_key()
        heapq.heappush(self._heap, (neg_gain, node_id, next(self._counter), candidate))

    def pop(self) -> SplitCandidate:
        """Remove and return the highest-gain candidate."""
        if not self._heap:
            raise IndexError("pop from an empty SplitScheduler")
        return heapq.heappop(self._heap)[-1]

    def peek(self) -> SplitCandidate:
        if not self._heap:
            raise IndexError("peek into an empty SplitScheduler")
        return self._heap[0][-1]

    def reset(self) -> None:
        """Drop every pending candidate."""
        self._heap.clear()
        self._counter = itertools.count()

    def candidates(self) -> List[SplitCandidate]:
        """Pending candidates in the order they would be popped. Does not mutate the queue."""
        return [entry[-1] for entry in sorted(self._heap, key=lambda entry: entry[:3])]

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)
