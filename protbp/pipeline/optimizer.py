"""Grid search over the hyperparameters alpha, beta and gamma of the Bayesian network."""
from __future__ import annotations

import itertools
from collections import defaultdict
from collections.abc import Iterator
from dataclasses import dataclass
from dataclasses import field
from time import perf_counter
from typing import Any
from typing import Callable

import pandas as pd

from protbp.config import InferenceConfig
from protbp.constants import DEFAULT_ALPHA_CANDIDATES
from protbp.constants import DEFAULT_BETA_CANDIDATES
from protbp.constants import DEFAULT_GAMMA_CANDIDATES
from protbp.utils import logger

log = logger.get(__name__)

HyperparameterPoint = tuple[float, float, float]


def expand_axis(value: float, candidates: tuple[float, ...]) -> tuple[float, ...]:
    """Return the single value if it is a probability, the default candidates otherwise."""
    return (value,) if 0.0 <= value <= 1.0 else candidates


@dataclass(frozen=True)
class HyperparameterGrid:
    """The candidate values of every axis, iterated in alpha, beta, gamma order."""

    alphas: tuple[float, ...]
    betas: tuple[float, ...]
    gammas: tuple[float, ...]

    @classmethod
    def from_config(cls, config: InferenceConfig) -> HyperparameterGrid:
        """Create the grid for the model parameters of a configuration.

        With user-defined priors, gamma is not used and its axis is never expanded.
        """
        model = config.model
        gammas = expand_axis(model.gamma, DEFAULT_GAMMA_CANDIDATES)
        if config.user_defined_priors:
            gammas = gammas[:1]

        return cls(
            alphas=expand_axis(model.alpha, DEFAULT_ALPHA_CANDIDATES),
            betas=expand_axis(model.beta, DEFAULT_BETA_CANDIDATES),
            gammas=gammas,
        )

    def __len__(self) -> int:
        return len(self.alphas) * len(self.betas) * len(self.gammas)

    def __iter__(self) -> Iterator[HyperparameterPoint]:
        return itertools.product(self.alphas, self.betas, self.gammas)


@dataclass
class GridSearchState:
    """Mutable record of the evaluated grid points."""

    best_point: HyperparameterPoint | None = None
    best_score: float = float("-inf")
    run_details: dict[str, list[Any]] = field(default_factory=lambda: defaultdict(list))

    def record(self, point: HyperparameterPoint, score: float, elapsed_time: float) -> bool:
        """Add an evaluation and return whether it is the new best one.

        Ties keep the point that was evaluated first.
        """
        alpha, beta, gamma = point
        self.run_details["alpha"].append(alpha)
        self.run_details["beta"].append(beta)
        self.run_details["gamma"].append(gamma)
        self.run_details["score"].append(score)
        self.run_details["time"].append(elapsed_time)

        if score > self.best_score:
            self.best_point = point
            self.best_score = score
            return True
        return False

    @property
    def n_evaluations(self) -> int:
        """The number of evaluated points."""
        return len(self.run_details["score"])

    def to_dataframe(self) -> pd.DataFrame:
        """Collect the evaluations into a dataframe (one row per point)."""
        columns = ["alpha", "beta", "gamma", "score", "time"]
        return pd.DataFrame({column: self.run_details[column] for column in columns})


class GridSearch:
    """Exhaustive search for the hyperparameters maximizing an objective."""

    def __init__(self, grid: HyperparameterGrid) -> None:
        """Initialize the search.

        Args:
            grid: The candidate values.
        """
        self.grid = grid
        self.state = GridSearchState()

    def search(
        self,
        config: InferenceConfig,
        evaluate: Callable[[InferenceConfig], float],
    ) -> HyperparameterPoint:
        """Evaluate every grid point and return the best one.

        Every point is evaluated with a copy of 'config' that uses the point's hyperparameters and
        disables the PSM and protein group posteriors. If the grid has a single point, nothing is
        evaluated.

        Args:
            config: The configuration of the run.
            evaluate: Runs the inference with a configuration and returns the objective.

        Returns:
            The best point, the first one in iteration order in case of ties.
        """
        self.state = GridSearchState()

        if len(self.grid) == 1:
            (point,) = self.grid
            log.info(f"Only one parameter combination {point}, skipping the grid search")
            self.state.best_point = point
            return point

        log.info(f"Starting grid search over {len(self.grid)} parameter combinations")
        search_config = config.for_grid_search()

        for i, point in enumerate(self.grid, start=1):
            alpha, beta, gamma = point
            start_time = perf_counter()
            score = evaluate(search_config.with_hyperparameters(alpha, beta, gamma))
            elapsed_time = perf_counter() - start_time

            improved = self.state.record(point, score, elapsed_time)
            log.info(
                f"Combination {i}/{len(self.grid)} (alpha = {alpha}, beta = {beta}, "
                f"gamma = {gamma}): score = {score:.6f} ({elapsed_time:.4f} s)"
                f"{' [best so far]' if improved else ''}"
            )

        log.info(
            f"Finished grid search (best: alpha = {self.state.best_point[0]}, "
            f"beta = {self.state.best_point[1]}, gamma = {self.state.best_point[2]}, "
            f"score = {self.state.best_score:.6f})"
        )
        return self.state.best_point
