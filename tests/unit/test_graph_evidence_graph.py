"""Test cases for the evidence graph."""
from __future__ import annotations

import networkx as nx
import pytest

from protbp.graph.evidence_graph import evidence
from protbp.graph.evidence_graph import EvidenceGraph
from protbp.graph.evidence_graph import is_single_kind
from protbp.graph.evidence_graph import NodeKind
from protbp.graph.evidence_graph import sorted_vertices
from protbp.graph.evidence_graph import upstream_neighbors
from protbp.models.identifications import IndistinguishableGroup
from protbp.models.identifications import PeptideHit
from protbp.models.identifications import PeptideIdentification
from protbp.models.identifications import ProteinIdentification


def _keys(graph: nx.Graph, kind: NodeKind) -> set[str]:
    return {
        evidence(graph, vertex).key
        for vertex in graph.nodes
        if evidence(graph, vertex).kind == kind
    }


@pytest.fixture()
def evidence_graph(
    example_identifications: tuple[ProteinIdentification, list[PeptideIdentification]]
) -> EvidenceGraph:
    """Evidence graph of the example run, built with the best PSM per spectrum."""
    graph = EvidenceGraph(*example_identifications)
    graph.build_graph(top_psms=1)
    return graph


def test_build_graph(evidence_graph: EvidenceGraph) -> None:
    """Ensure the graph holds one node per protein and per considered PSM."""
    graph = evidence_graph.graph

    assert len(_keys(graph, NodeKind.PROTEIN)) == 7
    assert _keys(graph, NodeKind.PSM) == {f"spectrum_{i}/0" for i in range(1, 8)}
    # PEPC, PEPD and PEPE have two proteins each
    assert graph.number_of_edges() == 10


def test_build_graph_all_psms(
    example_identifications: tuple[ProteinIdentification, list[PeptideIdentification]]
) -> None:
    """Ensure top_psms = 0 considers every PSM of a spectrum."""
    evidence_graph = EvidenceGraph(*example_identifications)
    evidence_graph.build_graph(top_psms=0)
    evidence_graph.compute_connected_components()

    assert "spectrum_7/1" in _keys(evidence_graph.graph, NodeKind.PSM)
    component = evidence_graph.components[0]
    assert _keys(component, NodeKind.PROTEIN) == {"P1", "P4"}
    assert len(_keys(component, NodeKind.PSM)) == 4


def test_build_graph_ignores_orphan_psms(
    example_identifications: tuple[ProteinIdentification, list[PeptideIdentification]]
) -> None:
    """Ensure PSMs without any protein of the run are left out."""
    proteins, peptides = example_identifications
    peptides.append(
        PeptideIdentification("spectrum_8", [PeptideHit("PEPX", 0.99, ("UNKNOWN",), False)])
    )

    evidence_graph = EvidenceGraph(proteins, peptides)
    evidence_graph.build_graph()

    assert "spectrum_8/0" not in _keys(evidence_graph.graph, NodeKind.PSM)
    assert evidence_graph.graph.number_of_nodes() == 14


def test_build_graph_lower_score_better(
    example_identifications: tuple[ProteinIdentification, list[PeptideIdentification]]
) -> None:
    """Ensure the best PSM of a spectrum follows the score orientation."""
    proteins, peptides = example_identifications
    for peptide_identification in peptides:
        peptide_identification.higher_score_better = False

    evidence_graph = EvidenceGraph(proteins, peptides)
    evidence_graph.build_graph(top_psms=1)

    psm = next(
        evidence(evidence_graph.graph, v)
        for v in evidence_graph.graph.nodes
        if evidence(evidence_graph.graph, v).key == "spectrum_7/0"
    )
    assert psm.ref.sequence == "PEPH"


def test_compute_connected_components(evidence_graph: EvidenceGraph) -> None:
    """Ensure the components partition the graph and are ordered by their smallest vertex."""
    evidence_graph.compute_connected_components()
    components = evidence_graph.components

    assert [_keys(c, NodeKind.PROTEIN) for c in components] == [
        {"P1", "P4"},
        {"P2", "P3"},
        {"P5"},
        {"DECOY_D1"},
        {"DECOY_D2"},
    ]
    assert sum(c.number_of_nodes() for c in components) == evidence_graph.graph.number_of_nodes()
    assert is_single_kind(components[2])
    assert not is_single_kind(components[0])


def test_cluster_indistinguishable_nodes(evidence_graph: EvidenceGraph) -> None:
    """Ensure indistinguishable proteins and shared PSMs are grouped."""
    evidence_graph.cluster_indistinguishable_nodes()
    shared, indistinguishable = evidence_graph.components[:2]

    assert _keys(indistinguishable, NodeKind.PROTEIN_GROUP) == {"P2;P3"}
    assert _keys(indistinguishable, NodeKind.PEPTIDE_GROUP) == set()
    assert _keys(shared, NodeKind.PEPTIDE_GROUP) == {"PEPE"}
    assert _keys(shared, NodeKind.PROTEIN_GROUP) == set()

    group = next(
        evidence(indistinguishable, v).ref
        for v in indistinguishable.nodes
        if evidence(indistinguishable, v).kind == NodeKind.PROTEIN_GROUP
    )
    assert isinstance(group, IndistinguishableGroup)
    assert group.accessions == ("P2", "P3")
    assert group.probability is None


def test_every_psm_has_one_upstream_node(evidence_graph: EvidenceGraph) -> None:
    """Ensure every PSM depends on exactly one node after clustering."""
    evidence_graph.cluster_indistinguishable_nodes()

    for component in evidence_graph.components:
        for vertex in component.nodes:
            if evidence(component, vertex).kind == NodeKind.PSM:
                assert len(upstream_neighbors(component, vertex)) == 1


def test_sorted_vertices(evidence_graph: EvidenceGraph) -> None:
    """Ensure vertices are ordered by kind rank first."""
    evidence_graph.cluster_indistinguishable_nodes()
    component = evidence_graph.components[0]

    kinds = [evidence(component, v).kind for v in sorted_vertices(component)]

    assert kinds == sorted(kinds)
    assert kinds[0] == NodeKind.PROTEIN
    assert kinds[-1] == NodeKind.PSM


def test_clustering_keeps_the_full_graph(evidence_graph: EvidenceGraph) -> None:
    """Ensure the group nodes are only added to the components."""
    n_nodes = evidence_graph.graph.number_of_nodes()

    evidence_graph.cluster_indistinguishable_nodes()

    assert evidence_graph.graph.number_of_nodes() == n_nodes
    assert sum(c.number_of_nodes() for c in evidence_graph.components) == n_nodes + 2


@pytest.mark.parametrize("n_jobs", [1, 3])
def test_apply_function_on_components(evidence_graph: EvidenceGraph, n_jobs: int) -> None:
    """Ensure the results are returned in the order of the components."""
    evidence_graph.cluster_indistinguishable_nodes()

    results = evidence_graph.apply_function_on_components(nx.number_of_nodes, n_jobs=n_jobs)

    assert results == [6, 5, 1, 2, 2]
    assert results == evidence_graph.apply_function_on_components_sequentially(nx.number_of_nodes)


def test_apply_function_on_components_raises(evidence_graph: EvidenceGraph) -> None:
    """Ensure errors of the function are not swallowed by the worker threads."""
    evidence_graph.compute_connected_components()

    def fail(component: nx.Graph) -> None:
        raise RuntimeError("failure")

    with pytest.raises(RuntimeError, match="failure"):
        evidence_graph.apply_function_on_components(fail, n_jobs=2)
