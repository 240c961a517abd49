"""Loopy belief propagation on a factor graph."""
from __future__ import annotations

from collections.abc import Hashable
from collections.abc import Iterable

import numpy as np

from protbp.inference.factor_graph import FactorGraph
from protbp.inference.pmf import message_divergence
from protbp.inference.pmf import normalize
from protbp.inference.pmf import PMF
from protbp.inference.schedulers import Scheduler
from protbp.utils import logger

log = logger.get(__name__)


class BeliefPropagationEngine:
    """Pass messages on a factor graph in the order given by a scheduler.

    Every directed edge holds the message last sent along it, a normalized array over the domain
    of the variable the edge is attached to. All messages start uniform. Updates are dampened:
    `new = lambda * old + (1 - lambda) * recomputed`.

    Stopping at the iteration cap is accepted. The marginals are then computed from the current
    (possibly not converged) messages and `converged` is False.
    """

    def __init__(self, scheduler: Scheduler, graph: FactorGraph) -> None:
        """Initialize the engine and seed the scheduler.

        Args:
            scheduler: The message scheduler, it is attached to 'graph'.
            graph: The factor graph.
        """
        self.scheduler = scheduler
        self.graph = graph

        self.messages: list[np.ndarray] = []
        for edge in range(graph.n_edges):
            first, last = graph.domains[graph.edge_variable(edge)]
            self.messages.append(PMF.uniform(first, last).table)

        self.iterations = 0
        self.converged = False
        self._propagated = False

        scheduler.add_ab_initio_edges(graph)

    def propagate(self) -> None:
        """Pass messages until the scheduler runs empty or the iteration cap is reached.

        Raises:
            NumericalError: If a message loses all its probability mass.
        """
        max_nr_iterations = self.scheduler.max_nr_iterations

        while self.iterations < max_nr_iterations:
            edge = self.scheduler.next_edge()
            if edge is None:
                self.converged = True
                break

            divergence = self._pass_message(edge)
            self.iterations += 1
            self.scheduler.message_passed(edge, divergence)

        if not self.converged:
            log.info(
                f"Belief propagation stopped after {self.iterations} iterations without "
                f"converging on {self.graph}"
            )

        self._propagated = True

    def estimate_posteriors(self, labels: Iterable[Hashable]) -> dict[Hashable, PMF]:
        """Compute the marginal distributions of the requested variables.

        Messages are propagated first if that has not been done yet.

        Args:
            labels: The variables.

        Raises:
            NumericalError: If a message or a marginal has no probability mass.

        Returns:
            Mapping from the variable labels to their normalized marginals.
        """
        if not self._propagated:
            self.propagate()

        return {label: self.marginal(label) for label in labels}

    def marginal(self, label: Hashable) -> PMF:
        """Return the normalized product of all messages sent to a variable."""
        node = self.graph.variable_node(label)
        first, _ = self.graph.domains[label]
        return PMF(first, normalize(self._product(self.graph.incoming_edges(node))))

    def _pass_message(self, edge: int) -> float:
        """Recompute, dampen and store the message on an edge, return its divergence."""
        graph = self.graph
        source, target = graph.edges[edge]

        if graph.is_factor(source):
            factor = graph.factors[source]
            target_label = graph.label(target)
            incoming = {
                label: self.messages[graph.edge_ids[graph.variable_node(label), source]]
                for label in factor.variables
                if label != target_label
            }
            recomputed = factor.message_to(target_label, incoming)
        else:
            recomputed = self._product(
                graph.edge_ids[neighbor, source]
                for neighbor in graph.neighbors[source]
                if neighbor != target
            )

        old = self.messages[edge]
        lam = self.scheduler.dampening_lambda
        new = normalize(lam * old + (1.0 - lam) * normalize(recomputed))
        self.messages[edge] = new

        return message_divergence(new, old)

    def _product(self, edges: Iterable[int]) -> np.ndarray:
        """Multiply messages over the same domain, rescaling to avoid underflow."""
        product = None
        for edge in edges:
            message = self.messages[edge]
            product = message.copy() if product is None else product * message
            scale = product.max()
            if scale > 0.0:
                product /= scale

        if product is None:
            raise ValueError("cannot multiply an empty set of messages")
        return product


def posterior_of(pmf: PMF) -> float:
    """Return the probability that a variable is non-zero.

    For binary variables this is the probability of presence, for counting variables (groups)
    the probability that at least one member is present. If 0 is outside of the support, the
    posterior is 1.
    """
    if pmf.contains(0):
        return 1.0 - pmf.probability(0)
    return 1.0
