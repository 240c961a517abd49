"""Test cases for the local / remote file helpers."""
from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from protbp.io.file import load_csv
from protbp.io.file import load_yml
from protbp.io.file import save_csv
from protbp.io.file import save_yml


def _location(tmp_directory: Path, remote: bool, file_name: str) -> str:
    if remote:
        return f"gs://dummy-bucket/test_io_file/{file_name}"
    return str(tmp_directory / "test_io_file" / file_name)


@pytest.mark.parametrize("remote", [False, True])
def test_save_load_csv(tmp_directory: Path, remote: bool) -> None:
    """Ensure a dataframe is written without index and read back."""
    file_path = _location(tmp_directory, remote, f"table_{remote}.csv")
    df = pd.DataFrame({"accession": ["P1", "P2"], "score": [0.25, 0.75]})

    save_csv(df, file_path, force=True)

    pd.testing.assert_frame_equal(load_csv(file_path), df)


@pytest.mark.parametrize("remote", [False, True])
def test_save_load_yml(tmp_directory: Path, remote: bool) -> None:
    """Ensure the key order of a mapping is kept."""
    file_path = _location(tmp_directory, remote, f"config_{remote}.yml")
    options = {"top_PSMs": 1, "model_parameters:pep_emission": 0.9, "user_defined_priors": False}

    save_yml(options, file_path, force=True)

    loaded = load_yml(file_path)
    assert loaded == options
    assert list(loaded) == list(options)


def test_load_empty_yml(tmp_directory: Path) -> None:
    """Ensure an empty file gives an empty mapping."""
    file_path = tmp_directory / "empty.yml"
    file_path.touch()

    assert load_yml(file_path) == {}


@pytest.mark.parametrize("remote", [False, True])
def test_save_no_force(tmp_directory: Path, remote: bool) -> None:
    """Ensure an existing file is not overwritten without force."""
    file_path = _location(tmp_directory, remote, f"existing_{remote}.csv")
    save_csv(pd.DataFrame({"a": [1]}), file_path, force=True)

    with pytest.raises(FileExistsError, match="already exist"):
        save_csv(pd.DataFrame({"a": [2]}), file_path)


@pytest.mark.parametrize("remote", [False, True])
def test_load_not_found(tmp_directory: Path, remote: bool) -> None:
    """Ensure a FileNotFoundError is raised for missing files."""
    with pytest.raises(FileNotFoundError, match="can't be found"):
        load_csv(_location(tmp_directory, remote, "missing.csv"))


def test_compression_mismatch(tmp_directory: Path) -> None:
    """Ensure the compression has to match the file extension."""
    with pytest.raises(ValueError, match="Mismatch between 'compression=gzip'"):
        save_csv(pd.DataFrame({"a": [1]}), tmp_directory / "table.csv", compression="gzip")
