"""Define callbacks for click arguments."""
from __future__ import annotations

from pathlib import Path

import click
import yaml
from cloudpathlib import CloudPath

from protbp.config import OPTION_NAMES


def abort_if_not_exists(
    ctx: click.Context,  # noqa: U100
    param: click.Option | click.Parameter,  # noqa: U100
    value: Path | CloudPath | None,
) -> Path | CloudPath:
    """Ensure the parameter value corresponds to an existing directory/file.

    Args:
        ctx: click context. It is required by click.
        param: click parameter object. It is required by click.
        value: value associated to the parameter, it must be of type pathlib.Path or
            cloudpathlib.CloudPath

    Returns:
        local/remote path

    Raises:
        click.BadParameter: if the local/remote path does not exist
    """
    if value is not None and not value.exists():
        raise click.BadParameter(f"The provided path {value} does not exist.")

    return value


def parse_option_overrides(
    ctx: click.Context,  # noqa: U100
    param: click.Option | click.Parameter,  # noqa: U100
    value: tuple[str, ...],
) -> dict[str, object]:
    """Parse repeated 'name=value' options into a mapping.

    The values are parsed as YAML scalars, so that numbers and booleans get their natural type.

    Args:
        ctx: click context. It is required by click.
        param: click parameter object. It is required by click.
        value: the raw 'name=value' strings

    Returns:
        mapping from the flat option names to the parsed values

    Raises:
        click.BadParameter: if an entry is not of the form 'name=value' or the name is unknown
    """
    overrides = {}
    for entry in value:
        name, separator, raw_value = entry.partition("=")
        name = name.strip()
        if not separator or not name:
            raise click.BadParameter(f"expected 'name=value', got '{entry}'")
        if name not in OPTION_NAMES:
            raise click.BadParameter(
                f"unknown option '{name}', valid options are: {', '.join(OPTION_NAMES)}"
            )
        overrides[name] = yaml.safe_load(raw_value)

    return overrides
