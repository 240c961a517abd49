"""Module used to define functions for common I/O operations on local or remote files."""
from __future__ import annotations

import inspect
import os
from pathlib import Path
from typing import Any
from typing import Callable
from typing import Union

import pandas as pd
import yaml
from cloudpathlib import anypath
from cloudpathlib import CloudPath


COMPRESSION2EXTENSION = {"gzip": ".gz", "bz2": ".bz2", "zip": ".zip", "xz": ".xz", "zstd": ".zst"}

Openable = Union[str, Path, CloudPath]


def load_yml(file_path: Openable, **kwargs: Any) -> dict:
    """Load a local / remote .yml file.

    Args:
        file_path: Local or remote .yml file to load.
        kwargs: Keyword arguments to forward to `yaml.safe_load`.

    Returns:
        The parsed mapping, empty if the file is empty.

    Raises:
        FileNotFoundError: The 'file_path' provided doesn't exist.
    """
    content = _load_file(file_path=file_path, load_fn=yaml.safe_load, mode="r", **kwargs)
    return content if content is not None else {}


def save_yml(dict_: dict, file_path: Openable, force: bool = False, **kwargs: Any) -> None:
    """Save a dict into a local / remote .yml file.

    Remarks:
    - by default:
        - `default_flow_style=False`
        - `sort_keys=False`
    - all keyword arguments will be forwarded to `yaml.dump` function

    Args:
        dict_: Python dictionary to save to .yml file.
        file_path: Local or remote .yml file to save `dict_`.
        force: Indicates if the file should be overwritten if it already exists.
        kwargs: Keyword arguments to forward to `yaml.dump`.

    Raises:
        FileExistsError: The file already exists and force=False.
    """
    kwargs["default_flow_style"] = kwargs.get("default_flow_style", False)
    kwargs["sort_keys"] = kwargs.get("sort_keys", False)
    _save_file(obj=dict_, file_path=file_path, save_fn=yaml.dump, force=force, mode="w", **kwargs)


def load_csv(file_path: Openable, **kwargs: Any) -> pd.DataFrame:
    """Load a local / remote .csv file with pandas.

    Args:
        file_path: Local or remote .csv to load.
        kwargs: Keyword arguments to forward to `pd.read_csv`.

    Returns:
        A pandas.DataFrame loaded from CSV file.

    Raises:
        FileNotFoundError: The 'file_path' provided doesn't exist.
        ValueError: There is a mismatch between the 'compression' provided and the file's extension.
    """
    compression = kwargs.get("compression", "infer")

    if not _is_valid_compression(file_path, compression):
        raise ValueError(
            f"Mismatch between 'compression={compression}' and file's extension {file_path}"
        )

    return _load_file(file_path=file_path, load_fn=pd.read_csv, from_file_obj=False, **kwargs)


def save_csv(
    df: pd.DataFrame,
    file_path: Openable,
    force: bool = False,
    mode: str = "w",
    **kwargs: Any,
) -> None:
    """Save a pandas dataframe to a local / remote file.

    Remarks:
    - all keyword arguments will be forwarded to `pd.DataFrame.to_csv` function
    - the index is not written unless 'index=True' is passed

    Args:
        df: A pandas.DataFrame to save.
        file_path: Path to save the pandas.DataFrame.
        force: Indicates if the file should be erased if it already exists.
        mode: Mode to open the file.
        kwargs: Keyword arguments to forward to `pd.DataFrame.to_csv`

    Raises:
        FileExistsError: The file already exists and force=False.
        ValueError: There is a mismatch between the 'compression' provided and the file's extension.
    """
    compression = kwargs.get("compression", "infer")

    if not _is_valid_compression(file_path, compression):
        raise ValueError(
            f"Mismatch between 'compression={compression}' and file's extension {file_path}"
        )

    kwargs["index"] = kwargs.get("index", False)
    _save_file(
        obj=df,
        file_path=file_path,
        save_fn=pd.DataFrame.to_csv,
        force=force,
        mode=mode,
        from_file_obj=False,
        **kwargs,
    )


def _save_file(
    obj: Any,
    file_path: Openable,
    save_fn: Callable,
    force: bool,
    mode: str,
    from_file_obj: bool = True,
    **save_fn_kwargs: Any,
) -> None:
    """Main interface to save a file locally or remotely.

    Support for remote files is done via cloudpathlib: the file is first written to the local
    cache and then uploaded.

    Args:
        obj: Python object to save.
        file_path: Path to the local or remote file.
        save_fn: Function used to save the file.
        force: Indicates if the file should be overwritten if it already exists.
        mode: mode to use to open the file.
        from_file_obj: indicates if the `save_fn` should be used on the path as string or on the
            file object.
        save_fn_kwargs: Keyword arguments to forward to `save_fn`.

    Raises:
        FileExistsError: The file already exists and force=False.
    """
    # In case of append mode, we should remove the check
    if mode == "a":
        force = True

    file_path_ = anypath.to_anypath(file_path)

    if not force and file_path_.exists():
        raise FileExistsError(
            f"The file {file_path} already exist, set force=True if you want to overwrite it."
        )

    file_path_.parent.mkdir(exist_ok=True, parents=True)

    if isinstance(file_path_, CloudPath):
        file_path_._local.parent.mkdir(exist_ok=True, parents=True)

    if from_file_obj:
        with file_path_.open(mode) as f:
            save_fn(obj, f, **save_fn_kwargs)
        return

    # useful for pd.DataFrame.to_csv which supports 'mode' as parameter
    if "mode" in inspect.signature(save_fn).parameters:
        save_fn_kwargs["mode"] = mode

    # for a CloudPath, 'os.fspath' is the path to the local cache
    save_fn(obj, os.fspath(file_path_), **save_fn_kwargs)

    if isinstance(file_path_, CloudPath):
        file_path_._upload_local_to_cloud(force_overwrite_to_cloud=force)


def _load_file(
    file_path: Openable,
    load_fn: Callable,
    mode: str | None = None,
    from_file_obj: bool = True,
    **load_fn_kwargs: Any,
) -> Any:
    """Main interface to load a local or remote file.

    Args:
        file_path: Path to the local or remote file.
        load_fn: Function used to load the file.
        mode: mode to use to open the file.
        from_file_obj: indicates if the 'load_fn' should be used on the path as string or on the
            file object. If set to False, the 'mode' parameter is ignored.
        load_fn_kwargs: Keyword arguments to forward to load_fn.

    Returns:
        Loaded file, the type depends on the 'load_fn' provided.

    Raises:
        ValueError: If 'from_file_obj=True' and 'mode' is not provided.
        FileNotFoundError: The 'file_path' provided doesn't exist.
    """
    if from_file_obj and mode is None:
        raise ValueError("If 'from_file_obj=True', you must provide 'mode' parameter.")

    file_path_ = anypath.to_anypath(file_path)

    if not file_path_.exists():
        raise FileNotFoundError(f"The file {file_path} can't be found.")

    if from_file_obj:
        with file_path_.open(mode) as f:
            return load_fn(f, **load_fn_kwargs)

    # for a CloudPath, 'os.fspath' downloads the file to the local cache first
    return load_fn(os.fspath(file_path_), **load_fn_kwargs)


def _is_valid_compression(file_path: Openable, compression: str | None) -> bool:
    """Check if there is no mismatch between file_path's extension and compression.

    Raises:
        ValueError: The 'compression' provided is not supported.
    """
    if compression == "infer":
        return True

    file_path = Path(file_path)

    # no compression: file_path must have only one suffix (e.g. .csv)
    if compression is None:
        return len(file_path.suffixes) == 1

    try:
        return COMPRESSION2EXTENSION[compression] == file_path.suffix
    except KeyError:
        raise ValueError(
            f"compression={compression} is not supported. Use one of the following "
            f"{list(COMPRESSION2EXTENSION.keys())}."
        )
