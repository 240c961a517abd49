"""Configuration file for shared fixtures used by pytest tests."""
from __future__ import annotations

import contextlib
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Callable

import pytest
from _pytest.monkeypatch import MonkeyPatch
from cloudpathlib import implementation_registry
from cloudpathlib.local import local_gs_implementation
from cloudpathlib.local import LocalGSClient

from protbp.config import InferenceConfig
from protbp.models.identifications import PeptideHit
from protbp.models.identifications import PeptideIdentification
from protbp.models.identifications import ProteinHit
from protbp.models.identifications import ProteinIdentification

Identifications = tuple[ProteinIdentification, list[PeptideIdentification]]


@pytest.fixture(scope="session")
def tmp_directory(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Fixture used to define a temporary directory.

    Used to store test input files.
    """
    return tmp_path_factory.mktemp("test")


@pytest.fixture(scope="session")
def cloudpathlib_cache_directory(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Fixture used to define a temporary directory for the bucket's local cache directory."""
    return tmp_path_factory.mktemp(".cache_bucket")


@contextlib.contextmanager
def gs_manager_ctx(cloudpathlib_cache_directory: Path) -> Iterator[None]:
    """Context manager to temporarily set dummy credentials and the local cache directory."""
    old_environ = dict(os.environ)
    os.environ.update(
        {
            "GOOGLE_APPLICATION_CREDENTIALS": tempfile.NamedTemporaryFile().name,
            "CLOUDPATHLIB_LOCAL_CACHE_DIR": str(cloudpathlib_cache_directory),
        }
    )
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(old_environ)


@pytest.fixture(scope="session", autouse=True)
def monkey_session() -> Iterator[MonkeyPatch]:
    """Fixture to use monkeypatch at session scope.

    Inspiration from https://stackoverflow.com/a/53963978/11194702.
    """
    monkey_patch = MonkeyPatch()
    yield monkey_patch
    monkey_patch.undo()


@pytest.fixture(scope="session", autouse=True)
def _bucket_client_mock(
    monkey_session: MonkeyPatch, cloudpathlib_cache_directory: Path
) -> Iterator[None]:
    """Fixture to mock the bucket client for all tests.

    We mock connections as advised in
    https://cloudpathlib.drivendata.org/v0.9/testing_mocked_cloudpathlib/.
    """
    monkey_session.setitem(implementation_registry, "gs", local_gs_implementation)

    try:
        with gs_manager_ctx(cloudpathlib_cache_directory):
            yield
    finally:
        LocalGSClient.reset_default_storage_dir()


def _single_protein_identifications(psm_score: float = 0.9) -> Identifications:
    proteins = ProteinIdentification(hits=[ProteinHit("P")])
    peptides = [
        PeptideIdentification("spectrum_1", [PeptideHit("PEPTIDE", psm_score, ("P",), False)])
    ]
    return proteins, peptides


def _example_identifications() -> Identifications:
    proteins = ProteinIdentification(
        hits=[
            ProteinHit("P1"),
            ProteinHit("P2"),
            ProteinHit("P3"),
            ProteinHit("P4"),
            ProteinHit("P5"),
            ProteinHit("DECOY_D1", is_decoy=True),
            ProteinHit("DECOY_D2", is_decoy=True),
        ]
    )

    hits = {
        "spectrum_1": [("PEPA", 0.95, ("P1",), False)],
        "spectrum_2": [("PEPB", 0.9, ("P1",), False)],
        "spectrum_3": [("PEPC", 0.8, ("P2", "P3"), False)],
        "spectrum_4": [("PEPD", 0.7, ("P2", "P3"), False)],
        "spectrum_5": [("PEPE", 0.6, ("P1", "P4"), False)],
        "spectrum_6": [("PEPF", 0.3, ("DECOY_D1",), True)],
        "spectrum_7": [("PEPG", 0.2, ("DECOY_D2",), True), ("PEPH", 0.1, ("P4",), False)],
    }
    peptides = [
        PeptideIdentification(spectrum, [PeptideHit(*hit) for hit in spectrum_hits])
        for spectrum, spectrum_hits in hits.items()
    ]
    return proteins, peptides


@pytest.fixture()
def single_protein_identifications() -> Identifications:
    """One protein 'P' supported by a single PSM with score 0.9."""
    return _single_protein_identifications()


@pytest.fixture()
def example_identifications() -> Identifications:
    """Small run with shared peptides, indistinguishable proteins and decoys.

    Connected components with top_PSMs=1:
    - P1, P4 and the PSMs of PEPA, PEPB, PEPE (PEPE is shared by P1 and P4)
    - P2, P3 (indistinguishable) and the PSMs of PEPC, PEPD
    - DECOY_D1 and the PSM of PEPF
    - DECOY_D2 and the PSM of PEPG
    - P5 (no PSM)

    With top_PSMs=0, the second PSM of 'spectrum_7' (PEPH) joins the component of P1 and P4.
    """
    return _example_identifications()


@pytest.fixture(scope="session")
def make_example_identifications() -> Callable[[], Identifications]:
    """Factory creating fresh copies of the example run."""
    return _example_identifications


@pytest.fixture(scope="session")
def fixed_point_config() -> InferenceConfig:
    """Configuration without grid search (alpha = 0.9, beta = 0.01, gamma = 0.5)."""
    return InferenceConfig.from_dict(
        {
            "model_parameters": {
                "pep_emission": 0.9,
                "pep_spurious_emission": 0.01,
                "prot_prior": 0.5,
            }
        }
    )


@pytest.fixture(scope="session")
def expected_single_protein_posterior() -> float:
    """Exact posterior of 'P' for alpha = 0.9, beta = 0.01, gamma = 0.5 and pep_prior = 0.5.

    P(psm = 0 | p = 0) = 0.99, P(psm = 0 | p = 1) = 0.099 and the evidence of the PSM is
    [0.1 * 0.5, 0.9 * 0.5], so that
    P(p = 1) ~ 0.5 * (0.099 * 0.05 + 0.901 * 0.45) = 0.2052
    P(p = 0) ~ 0.5 * (0.99 * 0.05 + 0.01 * 0.45) = 0.027
    """
    return 0.2052 / (0.2052 + 0.027)


@pytest.fixture(scope="session")
def expected_single_psm_posterior() -> float:
    """Exact posterior of the PSM of 'P' for the same parameters.

    P(psm = 1) ~ 0.45 * 0.5 * (0.01 + 0.901) = 0.204975
    P(psm = 0) ~ 0.05 * 0.5 * (0.99 + 0.099) = 0.027225
    """
    return 0.204975 / (0.204975 + 0.027225)
