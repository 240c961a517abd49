"""Compile a connected component of the evidence graph into a factor graph."""
from __future__ import annotations

from dataclasses import dataclass

import networkx as nx

from protbp.graph.evidence_graph import evidence
from protbp.graph.evidence_graph import EvidenceNode
from protbp.graph.evidence_graph import EvidenceNodeVisitor
from protbp.graph.evidence_graph import sorted_vertices
from protbp.graph.evidence_graph import upstream_neighbors
from protbp.inference.factor_graph import FactorGraph
from protbp.inference.factor_graph import FactorGraphBuilder
from protbp.inference.factors import BINARY_DOMAIN
from protbp.inference.factors import Domain
from protbp.inference.factors import FactorFactory
from protbp.models.identifications import PeptideHit
from protbp.models.identifications import ProteinHit
from protbp.utils.exceptions import StructuralGraphError


@dataclass
class CompiledComponent:
    """A factor graph and the variables whose posteriors are requested."""

    graph: FactorGraph
    posterior_variables: list[int]


class FactorGraphCompiler:
    """Translate connected components into factor graphs for fixed model parameters.

    Variables are the vertices of the component. Proteins and PSMs are binary, groups count the
    number of their present upstream members.
    """

    def __init__(
        self,
        factory: FactorFactory,
        user_defined_priors: bool = False,
        annotate_group_probabilities: bool = False,
        update_psm_probabilities: bool = False,
    ) -> None:
        """Initialize the compiler.

        Args:
            factory: Creates the factors for the current hyperparameters.
            user_defined_priors: Use the prior stored on each protein hit instead of gamma.
            annotate_group_probabilities: Request the posteriors of the protein groups.
            update_psm_probabilities: Request the posteriors of the PSMs.
        """
        self.factory = factory
        self.user_defined_priors = user_defined_priors
        self.annotate_group_probabilities = annotate_group_probabilities
        self.update_psm_probabilities = update_psm_probabilities

    def compile(self, component: nx.Graph) -> CompiledComponent:
        """Create the factor graph of a component.

        The component is not modified.

        Args:
            component: A connected component with nodes of at least two kinds.

        Raises:
            StructuralGraphError: If a dependency is malformed, e.g., a PSM without exactly one
                upstream node, or a score or prior is not a probability.

        Returns:
            The factor graph and the requested posterior variables.
        """
        with FactorGraphBuilder() as builder:
            visitor = _ComponentVisitor(self, component, builder)
            for vertex in sorted_vertices(component):
                visitor.vertex = vertex
                evidence(component, vertex).accept(visitor)

            graph = builder.to_graph(required_variables=visitor.posterior_variables)

        return CompiledComponent(graph, visitor.posterior_variables)


class _ComponentVisitor(EvidenceNodeVisitor[None]):
    """Insert the factors of one node after the other into a builder.

    Vertices must be visited in ascending kind rank, so that the domain of every upstream
    variable is known before it is used.
    """

    def __init__(
        self,
        compiler: FactorGraphCompiler,
        component: nx.Graph,
        builder: FactorGraphBuilder,
    ) -> None:
        self.compiler = compiler
        self.factory = compiler.factory
        self.component = component
        self.builder = builder

        self.vertex = -1
        self.domains: dict[int, Domain] = {}
        self.posterior_variables: list[int] = []

    def visit_protein(self, node: EvidenceNode) -> None:
        hit: ProteinHit = node.ref
        prior = None
        if self.compiler.user_defined_priors:
            if hit.prior is None:
                raise StructuralGraphError(f"protein {hit.accession} has no prior")
            prior = hit.prior

        self.builder.insert_dependency(self.factory.create_protein_factor(self.vertex, prior))
        self.domains[self.vertex] = BINARY_DOMAIN
        self.posterior_variables.append(self.vertex)

    def visit_protein_group(self, node: EvidenceNode) -> None:
        self._insert_adder(node)
        if self.compiler.annotate_group_probabilities:
            self.posterior_variables.append(self.vertex)

    def visit_peptide_group(self, node: EvidenceNode) -> None:
        self._insert_adder(node)

    def visit_psm(self, node: EvidenceNode) -> None:
        hit: PeptideHit = node.ref
        upstream = upstream_neighbors(self.component, self.vertex)
        if len(upstream) != 1:
            raise StructuralGraphError(
                f"PSM {node.key} must have exactly one upstream node, found {len(upstream)}"
            )

        parent = upstream[0]
        _, nr_parents = self.domains[parent]
        self.builder.insert_dependency(
            self.factory.create_sum_evidence_factor(nr_parents, parent, self.vertex)
        )
        self.builder.insert_dependency(
            self.factory.create_peptide_evidence_factor(self.vertex, hit.score)
        )
        self.domains[self.vertex] = BINARY_DOMAIN
        if self.compiler.update_psm_probabilities:
            self.posterior_variables.append(self.vertex)

    def _insert_adder(self, node: EvidenceNode) -> None:
        upstream = upstream_neighbors(self.component, self.vertex)
        if not upstream:
            raise StructuralGraphError(f"{node.kind.name.lower()} {node.key} has no upstream nodes")

        parent_domains = [self.domains[parent] for parent in upstream]
        self.builder.insert_dependency(
            self.factory.create_probabilistic_adder_factor(upstream, parent_domains, self.vertex)
        )
        self.domains[self.vertex] = (
            sum(first for first, _ in parent_domains),
            sum(last for _, last in parent_domains),
        )
