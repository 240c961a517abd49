"""Evidence graph linking proteins to the peptide-spectrum matches that support them.

The graph is a `networkx.Graph` whose vertices are integers carrying an `EvidenceNode` in the
node attribute 'evidence'. After clustering, the evidence of every component flows from proteins
over (optional) protein groups and peptide groups down to the peptide-spectrum matches (PSMs):

    protein -> protein group -> peptide group -> PSM

and every PSM has exactly one upstream node (a protein, a protein group or a peptide group).
"""
from __future__ import annotations

import concurrent.futures
import itertools
from abc import ABC
from abc import abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from enum import IntEnum
from typing import Any
from typing import Callable
from typing import Generic
from typing import TypeVar

import networkx as nx

from protbp.models.identifications import IndistinguishableGroup
from protbp.models.identifications import PeptideGroup
from protbp.models.identifications import PeptideHit
from protbp.models.identifications import PeptideIdentification
from protbp.models.identifications import ProteinHit
from protbp.models.identifications import ProteinIdentification
from protbp.utils import logger

log = logger.get(__name__)

T = TypeVar("T")

EVIDENCE_ATTRIBUTE = "evidence"


class NodeKind(IntEnum):
    """The kinds of evidence nodes, ordered by their rank in the generative model."""

    PROTEIN = 0
    PROTEIN_GROUP = 1
    PEPTIDE_GROUP = 2
    PSM = 3


@dataclass(frozen=True, eq=False)
class EvidenceNode:
    """A vertex of the evidence graph with the domain object it stands for."""

    kind: NodeKind
    key: str
    ref: Any

    def accept(self, visitor: EvidenceNodeVisitor[T]) -> T:
        """Dispatch to the visitor method of this node's kind."""
        if self.kind == NodeKind.PROTEIN:
            return visitor.visit_protein(self)
        if self.kind == NodeKind.PROTEIN_GROUP:
            return visitor.visit_protein_group(self)
        if self.kind == NodeKind.PEPTIDE_GROUP:
            return visitor.visit_peptide_group(self)
        return visitor.visit_psm(self)


class EvidenceNodeVisitor(ABC, Generic[T]):
    """Operation defined for each kind of evidence node."""

    @abstractmethod
    def visit_protein(self, node: EvidenceNode) -> T:
        """Handle a protein node, 'node.ref' is a ProteinHit."""

    @abstractmethod
    def visit_protein_group(self, node: EvidenceNode) -> T:
        """Handle a protein group node, 'node.ref' is an IndistinguishableGroup."""

    @abstractmethod
    def visit_peptide_group(self, node: EvidenceNode) -> T:
        """Handle a peptide group node, 'node.ref' is a PeptideGroup."""

    @abstractmethod
    def visit_psm(self, node: EvidenceNode) -> T:
        """Handle a peptide-spectrum match node, 'node.ref' is a PeptideHit."""


def evidence(graph: nx.Graph, vertex: int) -> EvidenceNode:
    """Return the evidence node of a vertex."""
    return graph.nodes[vertex][EVIDENCE_ATTRIBUTE]


def upstream_neighbors(graph: nx.Graph, vertex: int) -> list[int]:
    """Return the neighbors with a lower kind rank, in ascending vertex order."""
    kind = evidence(graph, vertex).kind
    return sorted(n for n in graph.neighbors(vertex) if evidence(graph, n).kind < kind)


def is_single_kind(graph: nx.Graph) -> bool:
    """Check whether all nodes of a graph are of the same kind (e.g., an isolated protein)."""
    return len({evidence(graph, vertex).kind for vertex in graph.nodes}) <= 1


def sorted_vertices(graph: nx.Graph) -> list[int]:
    """Return the vertices ordered by kind rank, then by vertex id."""
    return sorted(graph.nodes, key=lambda vertex: (evidence(graph, vertex).kind, vertex))


class EvidenceGraph:
    """Graph of the protein and peptide identifications, decomposed into connected components."""

    def __init__(
        self,
        protein_identification: ProteinIdentification,
        peptide_identifications: list[PeptideIdentification],
    ) -> None:
        """Initialize the evidence graph.

        Args:
            protein_identification: The protein identification run.
            peptide_identifications: The peptide identifications (one per spectrum).
        """
        self.protein_identification = protein_identification
        self.peptide_identifications = peptide_identifications

        self.graph = nx.Graph()
        self.components: list[nx.Graph] = []
        self._vertex_ids = itertools.count()

    def build_graph(self, top_psms: int = 1) -> None:
        """Add the proteins, the PSMs and the edges between them.

        PSMs whose peptide evidences do not match any protein of the run are ignored.

        Args:
            top_psms: The number of PSMs per spectrum to consider, 0 considers all.
        """
        self.graph.clear()
        self.components = []
        self._vertex_ids = itertools.count()

        protein_vertices: dict[str, int] = {}
        for hit in self.protein_identification.hits:
            protein_vertices[hit.accession] = self._add_node(NodeKind.PROTEIN, hit.accession, hit)

        n_psms = n_orphans = 0
        for peptide_identification in self.peptide_identifications:
            for rank, hit in enumerate(peptide_identification.top_hits(top_psms)):
                parents = {
                    protein_vertices[accession]
                    for accession in hit.protein_accessions
                    if accession in protein_vertices
                }
                if not parents:
                    n_orphans += 1
                    continue

                key = f"{peptide_identification.spectrum_reference}/{rank}"
                vertex = self._add_node(NodeKind.PSM, key, hit)
                self.graph.add_edges_from((parent, vertex) for parent in sorted(parents))
                n_psms += 1

        if n_orphans:
            log.warning(f"Ignored {n_orphans} PSMs without any protein of the run")
        log.info(
            f"Built evidence graph with {len(protein_vertices)} proteins, {n_psms} PSMs and "
            f"{self.graph.number_of_edges()} edges"
        )

    def compute_connected_components(self) -> None:
        """Split the graph into its connected components, ordered by their smallest vertex."""
        self.components = [
            self.graph.subgraph(nodes).copy()
            for nodes in sorted(nx.connected_components(self.graph), key=min)
        ]
        log.info(f"Found {len(self.components)} connected components")

    def cluster_indistinguishable_nodes(self) -> None:
        """Collapse indistinguishable proteins and peptides within every component.

        Proteins supported by exactly the same PSMs are connected to a new protein group node,
        which takes over their edges to the PSMs. PSMs whose parents are identical and more than
        one are then connected to a new peptide group node taking over the edges to the parents.
        """
        if not self.components:
            self.compute_connected_components()

        n_protein_groups = n_peptide_groups = 0
        for component in self.components:
            n_protein_groups += self._cluster_proteins(component)
            n_peptide_groups += self._cluster_peptides(component)

        log.info(
            f"Clustered {n_protein_groups} indistinguishable protein groups and "
            f"{n_peptide_groups} peptide groups"
        )

    def apply_function_on_components(
        self,
        function: Callable[[nx.Graph], T],
        n_jobs: int = 1,
    ) -> list[T]:
        """Call a function on every connected component, possibly in parallel threads.

        The function must only modify the domain objects of the component it is given.

        Args:
            function: The function to call.
            n_jobs: The number of worker threads, 1 runs sequentially.

        Returns:
            The results in the order of the components.
        """
        if n_jobs <= 1:
            return self.apply_function_on_components_sequentially(function)

        with concurrent.futures.ThreadPoolExecutor(max_workers=n_jobs) as executor:
            futures = [executor.submit(function, component) for component in self.components]
            concurrent.futures.wait(futures)
            return [future.result() for future in futures]

    def apply_function_on_components_sequentially(
        self, function: Callable[[nx.Graph], T]
    ) -> list[T]:
        """Call a function on every connected component, one after the other."""
        return [function(component) for component in self.components]

    def _add_node(self, kind: NodeKind, key: str, ref: Any, graph: nx.Graph | None = None) -> int:
        vertex = next(self._vertex_ids)
        graph = self.graph if graph is None else graph
        graph.add_node(vertex, **{EVIDENCE_ATTRIBUTE: EvidenceNode(kind, key, ref)})
        return vertex

    def _cluster_proteins(self, component: nx.Graph) -> int:
        """Group the proteins of a component by their PSMs, return the number of new groups."""
        proteins_by_psms: dict[frozenset[int], list[int]] = defaultdict(list)
        for vertex in sorted(component.nodes):
            if evidence(component, vertex).kind == NodeKind.PROTEIN:
                psms = frozenset(component.neighbors(vertex))
                if psms:
                    proteins_by_psms[psms].append(vertex)

        n_groups = 0
        for psms, proteins in proteins_by_psms.items():
            if len(proteins) < 2:
                continue

            hits: list[ProteinHit] = [evidence(component, v).ref for v in proteins]
            group = IndistinguishableGroup(tuple(sorted(hit.accession for hit in hits)))
            group_vertex = self._add_node(
                NodeKind.PROTEIN_GROUP, ";".join(group.accessions), group, component
            )

            component.remove_edges_from((p, psm) for p in proteins for psm in psms)
            component.add_edges_from((p, group_vertex) for p in proteins)
            component.add_edges_from((group_vertex, psm) for psm in sorted(psms))
            n_groups += 1

        return n_groups

    def _cluster_peptides(self, component: nx.Graph) -> int:
        """Group the PSMs of a component by their parents, return the number of new groups."""
        psms_by_parents: dict[frozenset[int], list[int]] = defaultdict(list)
        for vertex in sorted(component.nodes):
            if evidence(component, vertex).kind == NodeKind.PSM:
                parents = frozenset(upstream_neighbors(component, vertex))
                if len(parents) > 1:
                    psms_by_parents[parents].append(vertex)

        for parents, psms in psms_by_parents.items():
            hits: list[PeptideHit] = [evidence(component, v).ref for v in psms]
            group = PeptideGroup(tuple(sorted({hit.sequence for hit in hits})))
            group_vertex = self._add_node(
                NodeKind.PEPTIDE_GROUP, ";".join(group.sequences), group, component
            )

            component.remove_edges_from((parent, psm) for parent in parents for psm in psms)
            component.add_edges_from((parent, group_vertex) for parent in sorted(parents))
            component.add_edges_from((group_vertex, psm) for psm in psms)

        return len(psms_by_parents)
