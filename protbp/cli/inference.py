"""Command line tool for the Bayesian protein inference."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import click
from cloudpathlib import AnyPath
from cloudpathlib import CloudPath

from protbp.config import InferenceConfig
from protbp.constants import CONFIG_OUTPUT_FILE
from protbp.constants import DEFAULT_DECOY_PREFIX
from protbp.constants import GRID_SEARCH_OUTPUT_FILE
from protbp.constants import GROUPS_OUTPUT_FILE
from protbp.constants import PROTEINS_OUTPUT_FILE
from protbp.constants import PSMS_OUTPUT_FILE
from protbp.io.file import load_yml
from protbp.io.file import save_csv
from protbp.io.file import save_yml
from protbp.io.identifications import load_proteins
from protbp.io.identifications import load_psms
from protbp.io.identifications import save_protein_groups
from protbp.io.identifications import save_proteins
from protbp.io.identifications import save_psms
from protbp.pipeline.inference import BayesianProteinInference
from protbp.utils import logger
from protbp.utils.click import arguments
from protbp.utils.click import callback
from protbp.utils.exceptions import ConfigurationError

log = logger.get(__name__)


@click.command()
@click.option(
    "--proteins",
    "-p",
    "proteins_file",
    type=AnyPath,
    required=True,
    callback=callback.abort_if_not_exists,
    help="Path to the local or remote CSV file containing the proteins.",
)
@click.option(
    "--psms",
    "-s",
    "psms_file",
    type=AnyPath,
    required=True,
    callback=callback.abort_if_not_exists,
    help="Path to the local or remote CSV file containing the peptide-spectrum matches.",
)
@click.option(
    "--output_directory",
    "-o",
    type=AnyPath,
    required=True,
    help="Local or remote output directory.",
)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=AnyPath,
    required=False,
    default=None,
    callback=callback.abort_if_not_exists,
    help="Optional YAML file with the inference options.",
)
@click.option(
    "--decoy_prefix",
    type=str,
    default=DEFAULT_DECOY_PREFIX,
    help="Accession prefix of decoy proteins, used if the protein file has no 'is_decoy' column.",
)
@click.option(
    "--lower_psm_score_better",
    is_flag=True,
    help="PSM scores are posterior error probabilities (lower is better), they are converted.",
)
@arguments.model_parameters
@arguments.belief_propagation
@arguments.force
def infer(
    proteins_file: Path | CloudPath,
    psms_file: Path | CloudPath,
    output_directory: Path | CloudPath,
    config_file: Path | CloudPath | None,
    decoy_prefix: str,
    lower_psm_score_better: bool,
    pep_emission: float | None,
    pep_spurious_emission: float | None,
    prot_prior: float | None,
    scheduling_type: str | None,
    n_jobs: int | None,
    options: dict[str, Any],
    force: bool,
) -> None:
    """Estimate protein posterior probabilities with loopy belief propagation."""
    options = {
        **(load_yml(config_file) if config_file is not None else {}),
        **options,
        **_command_line_overrides(
            pep_emission, pep_spurious_emission, prot_prior, scheduling_type, n_jobs
        ),
    }
    try:
        config = InferenceConfig.from_dict(options)
    except ConfigurationError as e:
        raise click.BadParameter(e.message) from e

    output_files = _output_files(output_directory, config)
    _check_output_files(output_files, force)

    protein_identification = load_proteins(proteins_file, decoy_prefix=decoy_prefix)
    peptide_identifications = load_psms(
        psms_file, protein_identification, higher_score_better=not lower_psm_score_better
    )

    result = BayesianProteinInference(config).infer_posterior_probabilities(
        protein_identification, peptide_identifications
    )

    save_proteins(protein_identification, output_files[PROTEINS_OUTPUT_FILE], force=force)
    save_protein_groups(protein_identification, output_files[GROUPS_OUTPUT_FILE], force=force)
    save_csv(result.grid_search, output_files[GRID_SEARCH_OUTPUT_FILE], force=force)
    if PSMS_OUTPUT_FILE in output_files:
        save_psms(peptide_identifications, output_files[PSMS_OUTPUT_FILE], force=force)

    alpha, beta, gamma = result.best_point
    save_yml(
        config.with_hyperparameters(alpha, beta, gamma).to_dict(),
        output_files[CONFIG_OUTPUT_FILE],
        force=force,
    )
    log.info(f"Results written to {output_directory}")


def _command_line_overrides(
    pep_emission: float | None,
    pep_spurious_emission: float | None,
    prot_prior: float | None,
    scheduling_type: str | None,
    n_jobs: int | None,
) -> dict[str, Any]:
    """Collect the dedicated command line options that were given."""
    overrides = {
        "model_parameters:pep_emission": pep_emission,
        "model_parameters:pep_spurious_emission": pep_spurious_emission,
        "model_parameters:prot_prior": prot_prior,
        "loopy_belief_propagation:scheduling_type": scheduling_type,
        "n_jobs": n_jobs,
    }
    return {name: value for name, value in overrides.items() if value is not None}


def _output_files(
    output_directory: Path | CloudPath, config: InferenceConfig
) -> dict[str, Path | CloudPath]:
    """Return the paths of the output files, the PSMs only if their posteriors are computed."""
    names = [
        PROTEINS_OUTPUT_FILE,
        GROUPS_OUTPUT_FILE,
        GRID_SEARCH_OUTPUT_FILE,
        CONFIG_OUTPUT_FILE,
    ]
    if config.update_psm_probabilities:
        names.append(PSMS_OUTPUT_FILE)

    return {name: output_directory / name for name in names}


def _check_output_files(output_files: dict[str, Path | CloudPath], force: bool) -> None:
    """Check that no output file exists, unless it may be overwritten.

    Raises:
        FileExistsError: If an output file exists and force is False.
    """
    if force:
        return

    existing = [str(path) for path in output_files.values() if path.exists()]
    if existing:
        raise FileExistsError(
            f"the output file(s) {', '.join(existing)} already exist, use --force to overwrite"
        )
