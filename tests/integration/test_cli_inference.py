"""Test cases for the command line tool defined in protbp/cli/inference."""
from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner
from click.testing import Result
from cloudpathlib import CloudPath

from protbp.io.file import load_csv
from protbp.io.file import load_yml
from protbp.io.file import save_yml
from protbp.main import main

PROTEINS = """accession,score
P1,0.0
P2,0.0
P3,0.0
P4,0.0
DECOY_D1,0.0
"""

PSMS = """spectrum_reference,peptide,score,proteins
s1,PEPA,0.95,P1
s2,PEPB,0.9,P1
s3,PEPC,0.8,P2;P3
s4,PEPD,0.6,P1;P4
s5,PEPE,0.3,DECOY_D1
s5,PEPF,0.1,P4
"""

FIXED_POINT = ["-a", "0.9", "-b", "0.01", "-g", "0.5"]


@pytest.fixture()
def input_files(tmp_path: Path) -> tuple[Path, Path]:
    """Protein and PSM tables of a small run."""
    proteins_file = tmp_path / "proteins.csv"
    psms_file = tmp_path / "psms.csv"
    proteins_file.write_text(PROTEINS)
    psms_file.write_text(PSMS)
    return proteins_file, psms_file


def _invoke(parameters: list[str], catch_exceptions: bool = False) -> Result:
    runner = CliRunner()
    return runner.invoke(main, ["infer", *parameters], catch_exceptions=catch_exceptions)


def test_infer(input_files: tuple[Path, Path], tmp_path: Path) -> None:
    """Ensure all results are written with posterior probabilities."""
    proteins_file, psms_file = input_files
    output_directory = tmp_path / "output"

    result = _invoke(
        ["-p", str(proteins_file), "-s", str(psms_file), "-o", str(output_directory), *FIXED_POINT]
    )
    assert result.exit_code == 0

    proteins = load_csv(output_directory / "proteins.csv")
    assert proteins["accession"].tolist() == ["P1", "P2", "P3", "P4", "DECOY_D1"]
    assert proteins["is_decoy"].tolist() == [False, False, False, False, True]
    assert proteins["score"].between(0.0, 1.0).all()
    assert proteins["score"].iloc[0] > proteins["score"].iloc[4]

    groups = load_csv(output_directory / "protein_groups.csv")
    assert groups["accessions"].tolist() == ["P2;P3"]

    psms = load_csv(output_directory / "psms.csv")
    assert len(psms) == 6

    # a single parameter combination is not searched
    assert load_csv(output_directory / "grid_search.csv").empty

    config = load_yml(output_directory / "config.yml")
    assert config["model_parameters:pep_emission"] == 0.9
    assert config["loopy_belief_propagation:scheduling_type"] == "priority"


def test_infer_grid_search_with_config(input_files: tuple[Path, Path], tmp_path: Path) -> None:
    """Ensure options are read from the YAML file and the grid search is written."""
    proteins_file, psms_file = input_files
    output_directory = tmp_path / "output"
    config_file = tmp_path / "config.yml"
    save_yml(
        {
            "update_PSM_probabilities": False,
            "loopy_belief_propagation": {"scheduling_type": "fifo"},
        },
        config_file,
    )

    result = _invoke(
        [
            "-p",
            str(proteins_file),
            "-s",
            str(psms_file),
            "-o",
            str(output_directory),
            "-c",
            str(config_file),
            "-O",
            "model_parameters:pep_spurious_emission=0.01",
            "-j",
            "2",
        ]
    )
    assert result.exit_code == 0

    grid_search = load_csv(output_directory / "grid_search.csv")
    assert list(grid_search.columns) == ["alpha", "beta", "gamma", "score", "time"]
    assert len(grid_search) == 5
    assert (grid_search["beta"] == 0.01).all()
    assert not (output_directory / "psms.csv").exists()

    config = load_yml(output_directory / "config.yml")
    assert config["loopy_belief_propagation:scheduling_type"] == "fifo"
    assert config["model_parameters:pep_emission"] in grid_search["alpha"].tolist()
    assert config["n_jobs"] == 2


def test_infer_remote_output(input_files: tuple[Path, Path]) -> None:
    """Ensure results can be written to a bucket."""
    proteins_file, psms_file = input_files
    output_directory = "gs://dummy-bucket/test_cli_inference"

    result = _invoke(
        [
            "-p",
            str(proteins_file),
            "-s",
            str(psms_file),
            "-o",
            output_directory,
            *FIXED_POINT,
            "--force",
        ]
    )
    assert result.exit_code == 0
    assert (CloudPath(output_directory) / "proteins.csv").exists()


@pytest.mark.parametrize("force", [True, False])
def test_infer_existing_output(
    input_files: tuple[Path, Path], tmp_path: Path, force: bool
) -> None:
    """Ensure existing results are only overwritten with --force."""
    proteins_file, psms_file = input_files
    output_directory = tmp_path / "output"
    parameters = [
        "-p",
        str(proteins_file),
        "-s",
        str(psms_file),
        "-o",
        str(output_directory),
        *FIXED_POINT,
    ]
    assert _invoke(parameters).exit_code == 0

    if force:
        assert _invoke([*parameters, "--force"]).exit_code == 0
    else:
        with pytest.raises(FileExistsError, match="use --force to overwrite"):
            _invoke(parameters)


@pytest.mark.parametrize(
    "extra_parameters",
    [
        ["-O", "unknown_option=1"],
        ["-O", "missing_separator"],
        ["-a", "1.5"],
        ["--scheduling_type", "random"],
        ["-j", "0"],
    ],
)
def test_infer_invalid_options(
    input_files: tuple[Path, Path], tmp_path: Path, extra_parameters: list[str]
) -> None:
    """Ensure invalid options are usage errors and nothing is written."""
    proteins_file, psms_file = input_files
    output_directory = tmp_path / "output"

    result = _invoke(
        [
            "-p",
            str(proteins_file),
            "-s",
            str(psms_file),
            "-o",
            str(output_directory),
            *extra_parameters,
        ]
    )

    assert result.exit_code == 2
    assert not output_directory.exists()


def test_infer_missing_input(tmp_path: Path) -> None:
    """Ensure missing input files are usage errors."""
    result = _invoke(
        [
            "-p",
            str(tmp_path / "missing_proteins.csv"),
            "-s",
            str(tmp_path / "missing_psms.csv"),
            "-o",
            str(tmp_path / "output"),
        ]
    )

    assert result.exit_code == 2
    assert "does not exist" in result.output
