"""Configuration of the Bayesian protein inference.

The configuration is immutable. The grid search derives the configurations it evaluates with
`dataclasses.replace` instead of mutating a shared parameter object.

Options can be given as nested mappings (as in a YAML file)

    model_parameters:
      pep_emission: 0.9

or with flat 'section:key' names (e.g. 'model_parameters:pep_emission').
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from enum import Enum
from typing import Any

from protbp.constants import DEFAULT_CONVERGENCE_THRESHOLD
from protbp.constants import DEFAULT_DAMPENING_LAMBDA
from protbp.constants import DEFAULT_MAX_NR_ITERATIONS
from protbp.constants import DEFAULT_P_NORM
from protbp.io.file import load_yml
from protbp.io.file import Openable
from protbp.utils.exceptions import ConfigurationError


class SchedulingType(str, Enum):
    """How the belief propagation picks the next message to pass."""

    PRIORITY = "priority"
    FIFO = "fifo"
    RANDOM_SPANNING_TREE = "random_spanning_tree"


@dataclass(frozen=True)
class ModelParameters:
    """Parameters of the Bayesian network.

    Negative values of 'pep_emission', 'pep_spurious_emission', and 'prot_prior' enable the grid
    search on the corresponding axis.
    """

    pep_emission: float = -1.0
    pep_spurious_emission: float = -1.0
    prot_prior: float = -1.0
    pep_prior: float = 0.5

    @property
    def alpha(self) -> float:
        """Probability that a present protein emits a given peptide."""
        return self.pep_emission

    @property
    def beta(self) -> float:
        """Probability of a spurious peptide identification."""
        return self.pep_spurious_emission

    @property
    def gamma(self) -> float:
        """Prior probability of protein presence."""
        return self.prot_prior

    def validate(self) -> None:
        """Check the ranges of the parameters.

        Raises:
            ConfigurationError: If a parameter is out of range.
        """
        for name in ("pep_emission", "pep_spurious_emission", "prot_prior"):
            value = getattr(self, name)
            if not -1.0 <= value <= 1.0:
                raise ConfigurationError(
                    f"'model_parameters:{name}' must be in [-1, 1] (negative values enable the "
                    f"grid search), got {value}"
                )

        if not 0.0 <= self.pep_prior <= 1.0:
            raise ConfigurationError(
                f"'model_parameters:pep_prior' must be in [0, 1], got {self.pep_prior}"
            )


@dataclass(frozen=True)
class SchedulerPolicy:
    """Settings of the loopy belief propagation."""

    scheduling_type: SchedulingType = SchedulingType.PRIORITY
    convergence_threshold: float = DEFAULT_CONVERGENCE_THRESHOLD
    dampening_lambda: float = DEFAULT_DAMPENING_LAMBDA
    max_nr_iterations: int = DEFAULT_MAX_NR_ITERATIONS
    p_norm_inference: float = DEFAULT_P_NORM

    @property
    def p_norm(self) -> float:
        """The p used for marginalization, values <= 0 mean infinity (max-product)."""
        return math.inf if self.p_norm_inference <= 0 else float(self.p_norm_inference)

    def validate(self) -> None:
        """Check the ranges of the settings.

        Raises:
            ConfigurationError: If a setting is out of range.
        """
        if not isinstance(self.scheduling_type, SchedulingType):
            raise ConfigurationError(f"invalid scheduling type {self.scheduling_type!r}")
        if not 0.0 <= self.dampening_lambda <= 1.0:
            raise ConfigurationError(
                f"'loopy_belief_propagation:dampening_lambda' must be in [0, 1], "
                f"got {self.dampening_lambda}"
            )
        if self.convergence_threshold <= 0.0:
            raise ConfigurationError(
                "'loopy_belief_propagation:convergence_threshold' must be positive, "
                f"got {self.convergence_threshold}"
            )
        if self.max_nr_iterations < 1:
            raise ConfigurationError(
                "'loopy_belief_propagation:max_nr_iterations' must be at least 1, "
                f"got {self.max_nr_iterations}"
            )
        if math.isnan(self.p_norm_inference):
            raise ConfigurationError("'loopy_belief_propagation:p_norm_inference' must be a number")


@dataclass(frozen=True)
class InferenceConfig:
    """All options of one inference run."""

    top_psms: int = 1
    update_psm_probabilities: bool = True
    annotate_group_probabilities: bool = True
    user_defined_priors: bool = False
    model: ModelParameters = field(default_factory=ModelParameters)
    scheduler: SchedulerPolicy = field(default_factory=SchedulerPolicy)
    aucweight: float = 0.2
    fp_cutoff: int = 0
    n_jobs: int = 1
    random_seed: int = 0

    def __post_init__(self) -> None:
        """Validate the configuration.

        Raises:
            ConfigurationError: If any option is out of range.
        """
        if self.top_psms < 0:
            raise ConfigurationError(f"'top_PSMs' must be non-negative, got {self.top_psms}")
        if not 0.0 <= self.aucweight <= 1.0:
            raise ConfigurationError(
                f"'param_optimize:aucweight' must be in [0, 1], got {self.aucweight}"
            )
        if self.fp_cutoff < 0:
            raise ConfigurationError(
                f"'param_optimize:fp_cutoff' must be non-negative, got {self.fp_cutoff}"
            )
        if self.n_jobs < 1:
            raise ConfigurationError(f"'n_jobs' must be at least 1, got {self.n_jobs}")

        self.model.validate()
        self.scheduler.validate()

    @classmethod
    def from_dict(cls, options: dict[str, Any] | None) -> InferenceConfig:
        """Create a configuration from nested or flat ('section:key') options.

        Args:
            options: The options, missing options take their default value.

        Raises:
            ConfigurationError: If an option is unknown or cannot be converted.

        Returns:
            The validated configuration.
        """
        top_level: dict[str, Any] = {}
        sections: dict[str, dict[str, Any]] = {"model": {}, "scheduler": {}}

        for name, value in _flatten(options or {}).items():
            if name not in _OPTIONS:
                raise ConfigurationError(f"unknown option '{name}'")

            target, attribute, converter = _OPTIONS[name]
            try:
                converted = converter(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"invalid value {value!r} for option '{name}': {e}"
                ) from e

            if target is None:
                top_level[attribute] = converted
            else:
                sections[target][attribute] = converted

        return cls(
            model=ModelParameters(**sections["model"]),
            scheduler=SchedulerPolicy(**sections["scheduler"]),
            **top_level,
        )

    def to_dict(self) -> dict[str, Any]:
        """Export the configuration with flat option names.

        Returns:
            Mapping from option names to plain Python values.
        """
        exported: dict[str, Any] = {}
        for name, (target, attribute, _) in _OPTIONS.items():
            owner = self if target is None else getattr(self, target)
            value = getattr(owner, attribute)
            exported[name] = value.value if isinstance(value, Enum) else value
        return exported

    def with_hyperparameters(self, alpha: float, beta: float, gamma: float) -> InferenceConfig:
        """Return a copy that uses the given model hyperparameters."""
        model = replace(
            self.model, pep_emission=alpha, pep_spurious_emission=beta, prot_prior=gamma
        )
        return replace(self, model=model)

    def for_grid_search(self) -> InferenceConfig:
        """Return a copy without the side computations that are not needed to score a grid point."""
        return replace(self, update_psm_probabilities=False, annotate_group_probabilities=False)


def load_config(file_path: Openable) -> InferenceConfig:
    """Load the configuration from a local / remote .yml file.

    Args:
        file_path: Path to the YAML file.

    Returns:
        The validated configuration.
    """
    return InferenceConfig.from_dict(load_yml(file_path))


def _to_bool(value: Any) -> bool:
    """Convert booleans and their usual string representations."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError("expected a boolean ('true' or 'false')")


def _to_int(value: Any) -> int:
    """Convert integers, integral floats and integer strings."""
    if isinstance(value, bool):
        raise ValueError("expected an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError("expected an integer")
    return int(value)


def _flatten(options: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested option mappings into 'section:key' names."""
    flat = {}
    for key, value in options.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{name}:"))
        else:
            flat[name] = value
    return flat


# option name -> (section attribute or None for top-level, attribute, converter)
_OPTIONS = {
    "top_PSMs": (None, "top_psms", _to_int),
    "update_PSM_probabilities": (None, "update_psm_probabilities", _to_bool),
    "annotate_group_probabilities": (None, "annotate_group_probabilities", _to_bool),
    "user_defined_priors": (None, "user_defined_priors", _to_bool),
    "model_parameters:pep_emission": ("model", "pep_emission", float),
    "model_parameters:pep_spurious_emission": ("model", "pep_spurious_emission", float),
    "model_parameters:prot_prior": ("model", "prot_prior", float),
    "model_parameters:pep_prior": ("model", "pep_prior", float),
    "loopy_belief_propagation:scheduling_type": ("scheduler", "scheduling_type", SchedulingType),
    "loopy_belief_propagation:convergence_threshold": (
        "scheduler",
        "convergence_threshold",
        float,
    ),
    "loopy_belief_propagation:dampening_lambda": ("scheduler", "dampening_lambda", float),
    "loopy_belief_propagation:max_nr_iterations": ("scheduler", "max_nr_iterations", _to_int),
    "loopy_belief_propagation:p_norm_inference": ("scheduler", "p_norm_inference", float),
    "param_optimize:aucweight": (None, "aucweight", float),
    "param_optimize:fp_cutoff": (None, "fp_cutoff", _to_int),
    "n_jobs": (None, "n_jobs", _to_int),
    "random_seed": (None, "random_seed", _to_int),
}

OPTION_NAMES = tuple(_OPTIONS)

