"""Write posteriors and priors back onto the domain objects of the evidence graph."""
from __future__ import annotations

import networkx as nx

from protbp.graph.evidence_graph import evidence
from protbp.graph.evidence_graph import EvidenceGraph
from protbp.graph.evidence_graph import EvidenceNode
from protbp.graph.evidence_graph import EvidenceNodeVisitor
from protbp.graph.evidence_graph import NodeKind
from protbp.models.identifications import IndistinguishableGroup
from protbp.models.identifications import ProteinIdentification


class PosteriorWriter(EvidenceNodeVisitor[None]):
    """Copy posterior probabilities onto proteins, protein groups and PSMs.

    Peptide groups have no domain-level score, their posteriors are ignored.
    """

    def __init__(self) -> None:
        """Initialize the writer."""
        self._posterior = 0.0

    def write(self, component: nx.Graph, posteriors: dict[int, float]) -> None:
        """Write the posteriors of the given vertices of a component.

        Args:
            component: The connected component.
            posteriors: Mapping from vertices to posterior probabilities.
        """
        for vertex, posterior in posteriors.items():
            self._posterior = posterior
            evidence(component, vertex).accept(self)

    def visit_protein(self, node: EvidenceNode) -> None:
        node.ref.score = self._posterior

    def visit_protein_group(self, node: EvidenceNode) -> None:
        node.ref.probability = self._posterior

    def visit_peptide_group(self, node: EvidenceNode) -> None:
        pass

    def visit_psm(self, node: EvidenceNode) -> None:
        node.ref.score = self._posterior


def write_priors(component: nx.Graph, gamma: float, user_defined_priors: bool = False) -> None:
    """Set the score of every protein of a component to its prior.

    Args:
        component: The connected component.
        gamma: The prior of protein presence.
        user_defined_priors: Use the prior stored on each protein hit (if set) instead of gamma.
    """
    for vertex in component.nodes:
        node = evidence(component, vertex)
        if node.kind == NodeKind.PROTEIN:
            hit = node.ref
            use_own_prior = user_defined_priors and hit.prior is not None
            hit.score = hit.prior if use_own_prior else gamma


def annotate_indistinguishable_groups(
    evidence_graph: EvidenceGraph,
    protein_identification: ProteinIdentification,
) -> list[IndistinguishableGroup]:
    """Rebuild the indistinguishable protein groups of a run from the protein group nodes.

    Args:
        evidence_graph: The clustered evidence graph.
        protein_identification: The run to annotate, its previous groups are replaced.

    Returns:
        The groups, ordered by component and by vertex.
    """
    groups = []
    for component in evidence_graph.components:
        for vertex in sorted(component.nodes):
            node = evidence(component, vertex)
            if node.kind != NodeKind.PROTEIN_GROUP:
                continue

            accessions = sorted(
                evidence(component, n).ref.accession
                for n in component.neighbors(vertex)
                if evidence(component, n).kind == NodeKind.PROTEIN
            )
            node.ref.accessions = tuple(accessions)
            groups.append(node.ref)

    protein_identification.indistinguishable_proteins = groups
    return groups
