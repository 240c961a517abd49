"""Strategies deciding which message the belief propagation passes next.

The schedulers only know the edges of the factor graph and the divergence reported after each
update; the messages themselves are stored by the inference engine.
"""
from __future__ import annotations

import heapq
import itertools
from abc import ABC
from abc import abstractmethod
from collections import deque
from typing import Any

import numpy as np

from protbp.config import SchedulerPolicy
from protbp.config import SchedulingType
from protbp.inference.factor_graph import FactorGraph


class Scheduler(ABC):
    """Base class of the message schedulers."""

    def __init__(
        self,
        dampening_lambda: float,
        convergence_threshold: float,
        max_nr_iterations: int,
    ) -> None:
        """Initialize the base class.

        Args:
            dampening_lambda: Weight of the previous message in the dampened update (0 = no
                dampening).
            convergence_threshold: Updates that change a message less than this value do not
                trigger updates of the dependent messages.
            max_nr_iterations: The maximum number of messages passed.
        """
        self.dampening_lambda = dampening_lambda
        self.convergence_threshold = convergence_threshold
        self.max_nr_iterations = max_nr_iterations
        self.graph: FactorGraph | None = None

    def add_ab_initio_edges(self, graph: FactorGraph) -> None:
        """Attach the scheduler to a graph and seed it with the edges that can be computed first.

        Args:
            graph: The factor graph.
        """
        self.graph = graph
        self._reset()
        for edge in graph.ab_initio_edges():
            self._schedule(edge, float("inf"))

    @abstractmethod
    def next_edge(self) -> int | None:
        """Return the next edge to update or None if there is nothing left to do."""

    def message_passed(self, edge: int, divergence: float) -> None:
        """Report the divergence between the new and the previous message on an edge.

        Args:
            edge: The updated edge.
            divergence: The change of the message.
        """
        if divergence > self.convergence_threshold:
            for dependent in self.graph.dependent_edges(edge):
                self._schedule(dependent, divergence)

    @abstractmethod
    def _reset(self) -> None:
        """Clear all scheduled edges."""

    @abstractmethod
    def _schedule(self, edge: int, priority: float) -> None:
        """Schedule an edge for an update."""


class PriorityScheduler(Scheduler):
    """Residual scheduling: the edge whose inputs changed the most is updated first.

    Edges with the same priority are updated in the order in which they were scheduled, which
    makes the inference deterministic.
    """

    _REMOVED = -1

    def _reset(self) -> None:
        self._heap: list[list[Any]] = []
        self._entries: dict[int, list[Any]] = {}
        self._counter = itertools.count()

    def _schedule(self, edge: int, priority: float) -> None:
        entry = self._entries.get(edge)
        if entry is not None:
            if -entry[0] >= priority:
                return
            entry[-1] = self._REMOVED

        entry = [-priority, next(self._counter), edge]
        self._entries[edge] = entry
        heapq.heappush(self._heap, entry)

    def next_edge(self) -> int | None:
        """Return the edge with the highest priority."""
        while self._heap:
            _, _, edge = heapq.heappop(self._heap)
            if edge != self._REMOVED:
                del self._entries[edge]
                return edge
        return None


class FIFOScheduler(Scheduler):
    """Edges are updated in the order in which they were scheduled."""

    def _reset(self) -> None:
        self._queue: deque[int] = deque()
        self._queued: set[int] = set()

    def _schedule(self, edge: int, priority: float) -> None:
        if edge not in self._queued:
            self._queued.add(edge)
            self._queue.append(edge)

    def next_edge(self) -> int | None:
        """Return the edge that has been waiting the longest."""
        if not self._queue:
            return None
        edge = self._queue.popleft()
        self._queued.discard(edge)
        return edge


class RandomSpanningTreeScheduler(Scheduler):
    """Messages are passed in sweeps along random spanning trees.

    Each sweep draws a random spanning tree of the factor graph and passes the messages from the
    leaves to the root and back. The propagation stops after a sweep in which no message changed
    by more than the convergence threshold, once every edge has been updated at least once.
    """

    def __init__(
        self,
        dampening_lambda: float,
        convergence_threshold: float,
        max_nr_iterations: int,
        random_seed: int = 0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            dampening_lambda: Weight of the previous message in the dampened update.
            convergence_threshold: Threshold on the largest change within a sweep.
            max_nr_iterations: The maximum number of messages passed.
            random_seed: The seed for drawing the spanning trees.
        """
        super().__init__(dampening_lambda, convergence_threshold, max_nr_iterations)
        self.random_seed = random_seed

    def add_ab_initio_edges(self, graph: FactorGraph) -> None:
        """Attach the scheduler to a graph, no edge is scheduled before the first sweep."""
        self.graph = graph
        self._reset()

    def _reset(self) -> None:
        self._rng = np.random.default_rng(self.random_seed)
        self._sweep: deque[int] = deque()
        self._sweep_divergence = float("inf")
        self._passed = np.zeros(self.graph.n_edges, dtype=bool)

    def _schedule(self, edge: int, priority: float) -> None:
        # the order is given by the spanning trees
        pass

    def message_passed(self, edge: int, divergence: float) -> None:
        """Record the largest change of the current sweep."""
        self._sweep_divergence = max(self._sweep_divergence, divergence)
        self._passed[edge] = True

    def next_edge(self) -> int | None:
        """Return the next edge of the current sweep, starting a new sweep if necessary."""
        if not self._sweep:
            if self._sweep_divergence <= self.convergence_threshold and self._passed.all():
                return None
            self._sweep.extend(self._random_tree_edges())
            self._sweep_divergence = 0.0

        return self._sweep.popleft() if self._sweep else None

    def _random_tree_edges(self) -> list[int]:
        """Draw a random spanning forest and return its edges, leaves to roots then back."""
        graph = self.graph
        visited = np.zeros(graph.n_nodes, dtype=bool)
        tree: list[tuple[int, int]] = []

        for root in self._rng.permutation(graph.n_nodes):
            if visited[root]:
                continue
            visited[root] = True
            queue = deque([int(root)])
            while queue:
                node = queue.popleft()
                neighbors = list(graph.neighbors[node])
                self._rng.shuffle(neighbors)
                for neighbor in neighbors:
                    if not visited[neighbor]:
                        visited[neighbor] = True
                        tree.append((node, neighbor))
                        queue.append(neighbor)

        inward = [graph.edge_ids[child, parent] for parent, child in reversed(tree)]
        outward = [graph.edge_ids[parent, child] for parent, child in tree]
        return inward + outward


def create_scheduler(policy: SchedulerPolicy, random_seed: int = 0) -> Scheduler:
    """Create the scheduler selected by the policy.

    Args:
        policy: The loopy belief propagation settings.
        random_seed: The seed used by randomized schedulers.

    Returns:
        A fresh scheduler.
    """
    args = (policy.dampening_lambda, policy.convergence_threshold, policy.max_nr_iterations)

    if policy.scheduling_type == SchedulingType.FIFO:
        return FIFOScheduler(*args)
    if policy.scheduling_type == SchedulingType.RANDOM_SPANNING_TREE:
        return RandomSpanningTreeScheduler(*args, random_seed=random_seed)
    return PriorityScheduler(*args)
