"""Test cases for the Bayesian protein inference pipeline."""
from __future__ import annotations

from typing import Callable

import pytest

from protbp.config import InferenceConfig
from protbp.config import SchedulingType
from protbp.constants import POSTERIOR_SCORE_TYPE
from protbp.models.identifications import PeptideHit
from protbp.models.identifications import PeptideIdentification
from protbp.models.identifications import ProteinIdentification
from protbp.pipeline.inference import BayesianProteinInference
from protbp.pipeline.inference import ComponentStatus

Identifications = tuple[ProteinIdentification, list[PeptideIdentification]]

FIXED_POINT = {
    "model_parameters:pep_emission": 0.9,
    "model_parameters:pep_spurious_emission": 0.01,
    "model_parameters:prot_prior": 0.5,
}


def _scores(protein_identification: ProteinIdentification) -> dict[str, float]:
    return {hit.accession: hit.score for hit in protein_identification.hits}


def test_single_protein(
    single_protein_identifications: Identifications,
    fixed_point_config: InferenceConfig,
    expected_single_protein_posterior: float,
    expected_single_psm_posterior: float,
) -> None:
    """Ensure the posteriors of a protein with a single PSM are written back."""
    proteins, peptides = single_protein_identifications

    result = BayesianProteinInference(fixed_point_config).infer_posterior_probabilities(
        proteins, peptides
    )

    assert proteins.hits[0].score == pytest.approx(expected_single_protein_posterior, abs=1e-3)
    assert peptides[0].hits[0].score == pytest.approx(expected_single_psm_posterior, abs=1e-3)
    assert proteins.score_type == POSTERIOR_SCORE_TYPE
    assert proteins.higher_score_better
    assert peptides[0].higher_score_better
    assert result.best_point == (0.9, 0.01, 0.5)
    assert result.grid_search.empty
    assert result.component_stats[ComponentStatus.CONVERGED.value] == 1


def test_posterior_error_probabilities(
    single_protein_identifications: Identifications,
    fixed_point_config: InferenceConfig,
    expected_single_protein_posterior: float,
) -> None:
    """Ensure lower-is-better PSM scores are used as 1 - score on every hit of a spectrum."""
    proteins, peptides = single_protein_identifications
    peptides[0].higher_score_better = False
    peptides[0].hits[0].score = 0.1
    peptides[0].hits.append(PeptideHit("PEPTIDEK", 0.6, ("P",), False))

    BayesianProteinInference(fixed_point_config).infer_posterior_probabilities(proteins, peptides)

    # a PEP of 0.1 is the same evidence as a posterior probability of 0.9
    assert proteins.hits[0].score == pytest.approx(expected_single_protein_posterior, abs=1e-3)
    # the second hit is not inferred (top_PSMs = 1) but is on the same scale
    assert peptides[0].hits[1].score == pytest.approx(0.4)
    assert peptides[0].higher_score_better


def test_default_grid_search(example_identifications: Identifications) -> None:
    """Ensure the default configuration evaluates the alpha candidates."""
    proteins, peptides = example_identifications

    result = BayesianProteinInference().infer_posterior_probabilities(proteins, peptides)

    df = result.grid_search
    assert len(df) == 5
    best_row = df.loc[df["score"].idxmax()]
    assert (best_row["alpha"], best_row["beta"], best_row["gamma"]) == result.best_point
    assert result.peptide_auc_before == pytest.approx(1.0)


def test_example_run(example_identifications: Identifications) -> None:
    """Ensure the posteriors, groups and statistics of the example run."""
    proteins, peptides = example_identifications

    result = BayesianProteinInference(
        InferenceConfig.from_dict(FIXED_POINT)
    ).infer_posterior_probabilities(proteins, peptides)
    scores = _scores(proteins)

    # protein without evidence keeps the prior
    assert scores["P5"] == pytest.approx(0.5)
    # two confident PSMs beat one shared PSM
    assert scores["P1"] > scores["P4"]
    # indistinguishable proteins get the same posterior
    assert scores["P2"] == pytest.approx(scores["P3"])
    assert scores["P1"] > scores["DECOY_D1"] > scores["DECOY_D2"]
    assert all(0.0 <= score <= 1.0 for score in scores.values())

    (group,) = proteins.indistinguishable_proteins
    assert group.accessions == ("P2", "P3")
    assert group.probability >= scores["P2"]

    assert result.component_stats == {
        "converged": 4,
        "not_converged": 0,
        "skipped": 1,
        "failed": 0,
    }


def test_failure_is_confined_to_component(example_identifications: Identifications) -> None:
    """Ensure a malformed component is skipped while the others are inferred."""
    proteins, peptides = example_identifications
    peptides[5].hits[0].score = 1.5
    proteins.hits[5].score = 0.42

    result = BayesianProteinInference(
        InferenceConfig.from_dict(FIXED_POINT)
    ).infer_posterior_probabilities(proteins, peptides)
    scores = _scores(proteins)

    assert result.component_stats["failed"] == 1
    assert result.component_stats["converged"] == 3
    # the input score is kept
    assert scores["DECOY_D1"] == 0.42
    assert peptides[5].hits[0].score == 1.5
    assert scores["P1"] > 0.5


def test_user_defined_priors(make_example_identifications: Callable[[], Identifications]) -> None:
    """Ensure the input protein scores are used as priors."""
    results = []
    for prior in (0.2, 0.8):
        proteins, peptides = make_example_identifications()
        for hit in proteins.hits:
            hit.score = prior

        BayesianProteinInference(
            InferenceConfig.from_dict({**FIXED_POINT, "user_defined_priors": True})
        ).infer_posterior_probabilities(proteins, peptides)

        assert all(hit.prior == prior for hit in proteins.hits)
        results.append(_scores(proteins))

    assert results[0]["P5"] == pytest.approx(0.2)
    assert results[1]["P5"] == pytest.approx(0.8)
    for accession in results[0]:
        assert results[1][accession] > results[0][accession]


def test_user_defined_priors_keep_own_prior(
    make_example_identifications: Callable[[], Identifications]
) -> None:
    """Ensure a prior set on a protein is not replaced by its input score."""
    proteins, peptides = make_example_identifications()
    for hit in proteins.hits:
        hit.score = 0.2
    proteins.hits[4].prior = 0.7

    BayesianProteinInference(
        InferenceConfig.from_dict({**FIXED_POINT, "user_defined_priors": True})
    ).infer_posterior_probabilities(proteins, peptides)

    assert proteins.hits[4].prior == 0.7
    assert all(hit.prior == 0.2 for hit in proteins.hits if hit.accession != "P5")
    # P5 has no evidence and keeps its own prior
    assert _scores(proteins)["P5"] == pytest.approx(0.7)


def test_rerun_on_same_objects(example_identifications: Identifications) -> None:
    """Ensure running twice without PSM updates gives the same posteriors."""
    proteins, peptides = example_identifications
    inference = BayesianProteinInference(
        InferenceConfig.from_dict({**FIXED_POINT, "update_PSM_probabilities": False})
    )

    inference.infer_posterior_probabilities(proteins, peptides)
    first = _scores(proteins)
    inference.infer_posterior_probabilities(proteins, peptides)

    assert _scores(proteins) == first
    assert peptides[0].hits[0].score == 0.95


def test_posteriors_increase_with_prior(
    make_example_identifications: Callable[[], Identifications]
) -> None:
    """Ensure a higher protein prior never lowers a posterior."""
    results = []
    for gamma in (0.3, 0.7):
        proteins, peptides = make_example_identifications()
        BayesianProteinInference(
            InferenceConfig.from_dict({**FIXED_POINT, "model_parameters:prot_prior": gamma})
        ).infer_posterior_probabilities(proteins, peptides)
        results.append(_scores(proteins))

    for accession in results[0]:
        assert results[1][accession] >= results[0][accession] - 1e-9


@pytest.mark.parametrize("n_jobs", [2, 4])
def test_parallel_components(
    make_example_identifications: Callable[[], Identifications], n_jobs: int
) -> None:
    """Ensure running the components in threads gives the sequential results."""
    results = []
    for jobs in (1, n_jobs):
        proteins, peptides = make_example_identifications()
        result = BayesianProteinInference(
            InferenceConfig.from_dict({"n_jobs": jobs})
        ).infer_posterior_probabilities(proteins, peptides)
        results.append((_scores(proteins), result.best_point))

    assert results[0] == results[1]


def test_schedulers_agree(make_example_identifications: Callable[[], Identifications]) -> None:
    """Ensure all scheduling types give the same posteriors on tree-shaped components."""
    results = []
    for scheduling_type in SchedulingType:
        proteins, peptides = make_example_identifications()
        config = InferenceConfig.from_dict(
            {**FIXED_POINT, "loopy_belief_propagation:scheduling_type": scheduling_type.value}
        )
        BayesianProteinInference(config).infer_posterior_probabilities(proteins, peptides)
        results.append(_scores(proteins))

    for scores in results[1:]:
        for accession, score in scores.items():
            assert score == pytest.approx(results[0][accession], abs=1e-3)
