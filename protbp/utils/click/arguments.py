"""Module used to define common arguments used for command lines.

Once defined in this module, an argument (or several arguments) can be
used as follows:

from protbp.utils.click import arguments

....

@arguments.{argument_name}
def my_cli_command(...)
"""
from __future__ import annotations

import functools
from typing import Any
from typing import Callable

import click

from protbp.config import SchedulingType
from protbp.utils.click import callback


def force(func: Callable = None, **kwargs: Any) -> Callable:
    """Decorator used to define the force flag.

    The 'help' parameter for this parameter can be overwritten by calling @force(help="My custom
    help").
    """
    kwargs["help"] = kwargs.get(
        "help",
        "Overwrite existing output files (both locally or in the cloud). This parameter should be "
        "used with caution.",
    )

    def _outer_wrapper(func: Callable) -> Callable:
        @click.option("--force", "-f", is_flag=True, **kwargs)
        @functools.wraps(func)
        def _inner_wrapper(*args: Any, **kwargs: Any) -> Any:
            return func(*args, **kwargs)

        return _inner_wrapper

    if func is None:
        return _outer_wrapper

    return _outer_wrapper(func)


def model_parameters(func: Callable) -> Callable:
    """Decorator to define the hyperparameters of the Bayesian network.

    The options default to None, i.e., the value from the configuration file (or its default) is
    kept unless the option is given.
    """

    @click.option(
        "--pep_emission",
        "-a",
        type=float,
        default=None,
        help="Alpha, the peptide emission probability. Negative values enable the grid search.",
    )
    @click.option(
        "--pep_spurious_emission",
        "-b",
        type=float,
        default=None,
        help="Beta, the spurious peptide emission probability. Negative values enable the grid "
        "search.",
    )
    @click.option(
        "--prot_prior",
        "-g",
        type=float,
        default=None,
        help="Gamma, the protein prior. Negative values enable the grid search.",
    )
    @functools.wraps(func)
    def _wrapper(*args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    return _wrapper


def belief_propagation(func: Callable) -> Callable:
    """Decorator to define the options of the loopy belief propagation and its execution."""

    @click.option(
        "--scheduling_type",
        type=click.Choice([t.value for t in SchedulingType], case_sensitive=False),
        default=None,
        help="How the next message to pass is selected.",
    )
    @click.option(
        "--n_jobs",
        "-j",
        type=click.IntRange(min=1),
        default=None,
        help="The number of threads processing the connected components.",
    )
    @click.option(
        "--option",
        "-O",
        "options",
        multiple=True,
        callback=callback.parse_option_overrides,
        help="Any other option as 'name=value' with flat option names, e.g. "
        "'loopy_belief_propagation:dampening_lambda=0.01'. Can be repeated.",
    )
    @functools.wraps(func)
    def _wrapper(*args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    return _wrapper
