"""Factor graph assembled from factors and the builder that owns it during construction."""
from __future__ import annotations

from collections.abc import Hashable
from collections.abc import Iterable
from types import TracebackType

from protbp.inference.factors import Domain
from protbp.inference.factors import Factor
from protbp.utils import logger
from protbp.utils.exceptions import StructuralGraphError

log = logger.get(__name__)


class FactorGraph:
    """Bipartite graph of factor nodes and variable nodes.

    Nodes are integers: the factors come first (node `i` is `factors[i]`), followed by one node per
    variable. Every undirected edge between a factor and a variable is stored as two directed
    edges that carry the messages in both directions.
    """

    def __init__(self, factors: list[Factor], domains: dict[Hashable, Domain]) -> None:
        """Initialize the graph.

        Args:
            factors: The factors.
            domains: The domain of every variable used by the factors.
        """
        self.factors = factors
        self.domains = domains
        self.variables = list(domains)

        n_factors = len(factors)
        self._variable_nodes = {label: n_factors + i for i, label in enumerate(self.variables)}
        self.n_nodes = n_factors + len(self.variables)

        self.edges: list[tuple[int, int]] = []
        self.edge_ids: dict[tuple[int, int], int] = {}
        self.neighbors: list[list[int]] = [[] for _ in range(self.n_nodes)]

        for factor_node, factor in enumerate(factors):
            for label in factor.variables:
                variable_node = self._variable_nodes[label]
                self._add_edge(factor_node, variable_node)
                self._add_edge(variable_node, factor_node)
                self.neighbors[factor_node].append(variable_node)
                self.neighbors[variable_node].append(factor_node)

        # edges that have to be recomputed when the message on an edge changes
        self._dependents = [
            [self.edge_ids[target, other] for other in self.neighbors[target] if other != source]
            for source, target in self.edges
        ]

    def _add_edge(self, source: int, target: int) -> None:
        self.edge_ids[source, target] = len(self.edges)
        self.edges.append((source, target))

    @property
    def n_edges(self) -> int:
        """The number of directed edges."""
        return len(self.edges)

    def is_factor(self, node: int) -> bool:
        """Check whether a node is a factor node."""
        return node < len(self.factors)

    def variable_node(self, label: Hashable) -> int:
        """Return the node of a variable."""
        return self._variable_nodes[label]

    def label(self, node: int) -> Hashable:
        """Return the label of a variable node."""
        return self.variables[node - len(self.factors)]

    def edge_variable(self, edge: int) -> Hashable:
        """Return the label of the variable a directed edge is attached to."""
        source, target = self.edges[edge]
        return self.label(target if self.is_factor(source) else source)

    def incoming_edges(self, node: int) -> list[int]:
        """Return the directed edges pointing to a node."""
        return [self.edge_ids[neighbor, node] for neighbor in self.neighbors[node]]

    def dependent_edges(self, edge: int) -> list[int]:
        """Return the edges leaving the target of 'edge', except the one going back."""
        return self._dependents[edge]

    def ab_initio_edges(self) -> list[int]:
        """Return the edges from factors to variables, which can be computed without input."""
        return [edge for edge, (source, _) in enumerate(self.edges) if self.is_factor(source)]

    def __repr__(self) -> str:
        return f"FactorGraph({len(self.factors)} factors, {len(self.variables)} variables)"


class FactorGraphBuilder:
    """Owning builder that collects dependencies and hands out the factor graph exactly once.

    The builder is meant to be used as a context manager. Whatever happens inside the block, the
    collected dependencies are released when it is left, so that a failing compilation never
    keeps a partially built graph alive:

        with FactorGraphBuilder() as builder:
            builder.insert_dependency(factor)
            graph = builder.to_graph()
    """

    def __init__(self) -> None:
        """Initialize the builder."""
        self._dependencies: list[Factor] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the builder has handed out its graph or was discarded."""
        return self._closed

    def insert_dependency(self, factor: Factor) -> None:
        """Add a factor to the graph under construction.

        Raises:
            RuntimeError: If the builder is already closed.
        """
        self._check_open()
        self._dependencies.append(factor)

    def to_graph(self, required_variables: Iterable[Hashable] = ()) -> FactorGraph:
        """Assemble the graph and transfer its ownership to the caller.

        Args:
            required_variables: Variables that must be attached to at least one factor, usually
                those whose posteriors are requested.

        Raises:
            RuntimeError: If the builder is already closed.
            StructuralGraphError: If there are no factors, the factors disagree on the domain of a
                variable, or a required variable is not attached to any factor.

        Returns:
            The factor graph.
        """
        self._check_open()
        factors, self._dependencies = self._dependencies, []
        self._closed = True

        if not factors:
            raise StructuralGraphError("cannot build a factor graph without factors")

        domains: dict[Hashable, Domain] = {}
        for factor in factors:
            for label, domain in factor.domains.items():
                if domains.setdefault(label, domain) != domain:
                    raise StructuralGraphError(
                        f"factors disagree on the domain of variable {label}: "
                        f"{domains[label]} vs. {domain}"
                    )

        missing = [label for label in required_variables if label not in domains]
        if missing:
            raise StructuralGraphError(f"variables {missing} are not attached to any factor")

        return FactorGraph(factors, domains)

    def discard(self) -> None:
        """Release the collected dependencies without building a graph."""
        if self._closed:
            return

        if self._dependencies:
            log.debug(f"Discarding {len(self._dependencies)} dependencies of an unfinished graph")
        self._dependencies = []
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("the factor graph builder has already been finalized")

    def __enter__(self) -> FactorGraphBuilder:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.discard()
