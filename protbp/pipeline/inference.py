"""Bayesian protein inference: grid search and final pass over all connected components."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from time import perf_counter

import networkx as nx
import pandas as pd

from protbp.config import InferenceConfig
from protbp.constants import POSTERIOR_SCORE_TYPE
from protbp.constants import SEARCH_ENGINE_NAME
from protbp.graph.evidence_graph import EvidenceGraph
from protbp.graph.evidence_graph import is_single_kind
from protbp.inference.compiler import FactorGraphCompiler
from protbp.inference.engine import BeliefPropagationEngine
from protbp.inference.engine import posterior_of
from protbp.inference.factors import FactorFactory
from protbp.inference.schedulers import create_scheduler
from protbp.models.identifications import PeptideIdentification
from protbp.models.identifications import ProteinIdentification
from protbp.pipeline.optimizer import GridSearch
from protbp.pipeline.optimizer import HyperparameterGrid
from protbp.pipeline.optimizer import HyperparameterPoint
from protbp.pipeline.posteriors import annotate_indistinguishable_groups
from protbp.pipeline.posteriors import PosteriorWriter
from protbp.pipeline.posteriors import write_priors
from protbp.pipeline.scoring import evaluate_protein_ids
from protbp.pipeline.scoring import peptide_roc_n
from protbp.utils import logger
from protbp.utils.exceptions import ComponentInferenceError

log = logger.get(__name__)


class ComponentStatus(str, Enum):
    """Outcome of the inference on one connected component."""

    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"
    SKIPPED = "skipped"
    FAILED = "failed"


class ComponentInference:
    """Compile, propagate and write the posteriors of one connected component.

    Instances are called on every component of the evidence graph (possibly from several threads)
    and only modify the domain objects of the component they are given.
    """

    def __init__(self, config: InferenceConfig) -> None:
        """Initialize the callback.

        Args:
            config: The configuration, its model parameters must be probabilities.
        """
        self.config = config

        model = config.model
        factory = FactorFactory(
            alpha=model.alpha,
            beta=model.beta,
            gamma=model.gamma,
            p=config.scheduler.p_norm,
            pep_prior=model.pep_prior,
        )
        self.compiler = FactorGraphCompiler(
            factory,
            user_defined_priors=config.user_defined_priors,
            annotate_group_probabilities=config.annotate_group_probabilities,
            update_psm_probabilities=config.update_psm_probabilities,
        )

    def __call__(self, component: nx.Graph) -> ComponentStatus:
        """Run the inference on a component.

        Components with nodes of a single kind carry no evidence, their proteins get their prior.
        Structural and numerical errors are logged and leave the component's scores untouched.

        Args:
            component: The connected component.

        Returns:
            The outcome.
        """
        if is_single_kind(component):
            log.debug(f"Skipped component with only one type of nodes ({len(component)} nodes)")
            write_priors(component, self.config.model.gamma, self.config.user_defined_priors)
            return ComponentStatus.SKIPPED

        try:
            compiled = self.compiler.compile(component)
            scheduler = create_scheduler(self.config.scheduler, self.config.random_seed)
            engine = BeliefPropagationEngine(scheduler, compiled.graph)
            marginals = engine.estimate_posteriors(compiled.posterior_variables)
        except ComponentInferenceError as e:
            log.warning(
                "Loopy belief propagation encountered a problem in a connected component "
                f"({len(component)} nodes): {e.message}. Skipping inference there."
            )
            return ComponentStatus.FAILED

        PosteriorWriter().write(
            component, {vertex: posterior_of(pmf) for vertex, pmf in marginals.items()}
        )

        log.debug(
            f"Component with {len(component)} nodes: {engine.iterations} messages passed "
            f"({'converged' if engine.converged else 'not converged'})"
        )
        return ComponentStatus.CONVERGED if engine.converged else ComponentStatus.NOT_CONVERGED


@dataclass
class InferenceResult:
    """Summary of an inference run."""

    best_point: HyperparameterPoint
    grid_search: pd.DataFrame
    component_stats: dict[str, int] = field(default_factory=dict)
    peptide_auc_before: float = float("nan")
    peptide_auc_after: float = float("nan")


class BayesianProteinInference:
    """Estimate posterior probabilities of proteins with a Bayesian network.

    Example:
        inference = BayesianProteinInference(InferenceConfig.from_dict({"top_PSMs": 1}))
        result = inference.infer_posterior_probabilities(proteins, peptides)
    """

    def __init__(self, config: InferenceConfig | None = None) -> None:
        """Initialize the inference.

        Args:
            config: The configuration, the defaults are used if None.
        """
        self.config = config if config is not None else InferenceConfig()

    def infer_posterior_probabilities(
        self,
        protein_identification: ProteinIdentification,
        peptide_identifications: list[PeptideIdentification],
    ) -> InferenceResult:
        """Replace the protein scores by posterior probabilities.

        The protein identification is modified in place: scores, score type, search engine and
        indistinguishable protein groups. PSM scores of spectra where lower scores are better are
        read as posterior error probabilities and converted to `1 - score` first. PSM scores are
        replaced by posteriors if 'update_PSM_probabilities' is set.

        With 'user_defined_priors', proteins without a prior of their own use their input score.

        Args:
            protein_identification: The protein identification run.
            peptide_identifications: The peptide identifications.

        Returns:
            The best hyperparameters, the grid search table and the component statistics.
        """
        config = self.config
        start_time = perf_counter()

        protein_identification.score_type = POSTERIOR_SCORE_TYPE
        protein_identification.search_engine = SEARCH_ENGINE_NAME
        protein_identification.higher_score_better = True

        if config.user_defined_priors:
            for hit in protein_identification.hits:
                if hit.prior is None:
                    hit.prior = hit.score

        n_converted = sum(
            peptide_identification.convert_to_posterior_probabilities()
            for peptide_identification in peptide_identifications
        )
        if n_converted:
            log.info(
                f"Converted the PSM scores of {n_converted} spectra from posterior error "
                "probabilities to posterior probabilities"
            )

        input_scores = [hit.score for hit in protein_identification.hits]

        evidence_graph = EvidenceGraph(protein_identification, peptide_identifications)
        evidence_graph.build_graph(config.top_psms)
        evidence_graph.compute_connected_components()
        evidence_graph.cluster_indistinguishable_nodes()

        peptide_auc_before = peptide_roc_n(peptide_identifications, config.fp_cutoff)
        log.info(f"Peptide FDR AUC before protein inference: {peptide_auc_before:.6f}")

        def evaluate(point_config: InferenceConfig) -> float:
            self._run_pass(evidence_graph, point_config, input_scores)
            return evaluate_protein_ids(
                protein_identification, config.aucweight, config.fp_cutoff
            )

        search = GridSearch(HyperparameterGrid.from_config(config))
        alpha, beta, gamma = search.search(config, evaluate)

        log.info(
            f"Running with the best parameters (alpha = {alpha}, beta = {beta}, gamma = {gamma})"
        )
        statuses = self._run_pass(
            evidence_graph, config.with_hyperparameters(alpha, beta, gamma), input_scores
        )

        peptide_auc_after = peptide_roc_n(peptide_identifications, config.fp_cutoff)
        log.info(f"Peptide FDR AUC after protein inference: {peptide_auc_after:.6f}")

        groups = annotate_indistinguishable_groups(evidence_graph, protein_identification)
        log.info(f"Annotated {len(groups)} indistinguishable protein groups")

        component_stats = {status.value: 0 for status in ComponentStatus}
        component_stats.update(Counter(status.value for status in statuses))
        log.info(
            f"Finished protein inference in {perf_counter() - start_time:.4f} s "
            f"(components: {component_stats})"
        )

        return InferenceResult(
            best_point=(alpha, beta, gamma),
            grid_search=search.state.to_dataframe(),
            component_stats=component_stats,
            peptide_auc_before=peptide_auc_before,
            peptide_auc_after=peptide_auc_after,
        )

    def _run_pass(
        self,
        evidence_graph: EvidenceGraph,
        config: InferenceConfig,
        input_scores: list[float],
    ) -> list[ComponentStatus]:
        """Restore the input protein scores and run the inference on every component."""
        for hit, score in zip(evidence_graph.protein_identification.hits, input_scores):
            hit.score = score

        statuses = evidence_graph.apply_function_on_components(
            ComponentInference(config), n_jobs=config.n_jobs
        )

        n_failed = statuses.count(ComponentStatus.FAILED)
        if n_failed:
            log.warning(f"Inference failed on {n_failed} of {len(statuses)} connected components")
        n_not_converged = statuses.count(ComponentStatus.NOT_CONVERGED)
        if n_not_converged:
            log.info(
                f"Belief propagation did not converge on {n_not_converged} components within "
                f"{config.scheduler.max_nr_iterations} iterations"
            )

        return statuses
