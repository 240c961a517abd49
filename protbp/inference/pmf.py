"""Probability mass functions over contiguous integer supports and p-norm marginalization."""
from __future__ import annotations

import math

import numpy as np

from protbp.constants import PMF_TOLERANCE
from protbp.utils.exceptions import NumericalError


class PMF:
    """Discrete distribution over a box of integer values.

    The table entry at index `i` (a tuple for multidimensional distributions) holds the mass of the
    value `first_support + i`. The support of every dimension is contiguous:
    `[first_support[d], first_support[d] + table.shape[d] - 1]`.
    """

    def __init__(self, first_support: int | tuple[int, ...], table: np.ndarray) -> None:
        """Initialize the PMF.

        Args:
            first_support: The smallest value of each dimension.
            table: The (not necessarily normalized) non-negative masses.

        Raises:
            ValueError: If the dimensions of 'first_support' and 'table' do not match or the table
                is empty.
        """
        table = np.asarray(table, dtype=np.float64)
        first_support = (first_support,) if isinstance(first_support, int) else first_support

        if table.ndim != len(first_support):
            raise ValueError(
                f"table has {table.ndim} dimensions but first_support has {len(first_support)}"
            )
        if table.size == 0:
            raise ValueError("table must not be empty")

        self._first_support = tuple(int(s) for s in first_support)
        self._table = table

    @classmethod
    def uniform(cls, first_support: int, last_support: int) -> PMF:
        """Create the uniform distribution over `[first_support, last_support]`."""
        size = last_support - first_support + 1
        return cls(first_support, np.full(size, 1.0 / size))

    @property
    def first_support(self) -> tuple[int, ...]:
        """The smallest value of each dimension."""
        return self._first_support

    @property
    def last_support(self) -> tuple[int, ...]:
        """The largest value of each dimension."""
        return tuple(s + n - 1 for s, n in zip(self._first_support, self._table.shape))

    @property
    def table(self) -> np.ndarray:
        """The masses."""
        return self._table

    @property
    def dimension(self) -> int:
        """The number of dimensions."""
        return self._table.ndim

    def normalized(self) -> PMF:
        """Return the PMF scaled to total mass 1.

        Raises:
            NumericalError: If the table has no positive mass or contains non-finite values.
        """
        return PMF(self._first_support, normalize(self._table))

    def is_normalized(self, tolerance: float = PMF_TOLERANCE) -> bool:
        """Check whether the masses sum to 1."""
        return bool(abs(self._table.sum() - 1.0) <= tolerance)

    def contains(self, value: int | tuple[int, ...]) -> bool:
        """Check whether a value lies within the support."""
        value = (value,) if isinstance(value, int) else value
        bounds = zip(value, self.first_support, self.last_support)
        return all(first <= v <= last for v, first, last in bounds)

    def probability(self, value: int | tuple[int, ...]) -> float:
        """Return the mass of a value, 0 outside of the support."""
        value = (value,) if isinstance(value, int) else value
        if not self.contains(value):
            return 0.0
        index = tuple(v - first for v, first in zip(value, self._first_support))
        return float(self._table[index])

    def __repr__(self) -> str:
        return f"PMF(first_support={self._first_support}, table={self._table!r})"


def normalize(table: np.ndarray) -> np.ndarray:
    """Scale a table of non-negative masses to sum 1.

    Args:
        table: The masses.

    Raises:
        NumericalError: If the table has no positive mass or contains non-finite values.

    Returns:
        The normalized table.
    """
    total = table.sum()
    if not np.isfinite(total) or total <= 0.0:
        raise NumericalError(f"cannot normalize a table with total mass {total}")
    return table / total


def p_norm_reduce(table: np.ndarray, keep_axis: int, p: float) -> np.ndarray:
    """Marginalize a table onto one axis with the p-norm over all other axes.

    p = 1 is the usual sum (sum-product inference) and p = inf the maximum (max-product
    inference). The table is scaled by its maximum first to keep the powers in range.

    Args:
        table: The non-negative table.
        keep_axis: The axis that is kept.
        p: The p of the norm.

    Returns:
        One-dimensional array along 'keep_axis'.
    """
    axes = tuple(axis for axis in range(table.ndim) if axis != keep_axis)
    if not axes:
        return table.copy()

    if math.isinf(p):
        return table.max(axis=axes)

    scale = table.max()
    if scale <= 0.0:
        return np.zeros(table.shape[keep_axis])

    scaled = table / scale
    if p == 1.0:
        return scaled.sum(axis=axes) * scale
    return np.power(np.power(scaled, p).sum(axis=axes), 1.0 / p) * scale


def message_divergence(new: np.ndarray, old: np.ndarray) -> float:
    """Root mean squared difference of two messages over the same support."""
    return float(np.sqrt(np.mean(np.square(new - old))))
