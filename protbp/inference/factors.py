"""Factors of the Bayesian network and the factory creating them from the model parameters.

Variables are identified by hashable labels (the vertex ids of the evidence graph) and take values
in a contiguous integer domain `(first, last)`. Proteins and peptide-spectrum matches are binary
(absent = 0, present = 1), groups count the number of present members.

All messages exchanged with a factor are arrays over the complete domain of the variable they are
attached to.
"""
from __future__ import annotations

import math
from abc import ABC
from abc import abstractmethod
from collections.abc import Hashable
from collections.abc import Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from protbp.inference.pmf import p_norm_reduce
from protbp.inference.pmf import PMF
from protbp.utils.exceptions import StructuralGraphError

Domain = tuple[int, int]
BINARY_DOMAIN: Domain = (0, 1)


class Factor(ABC):
    """Base class for factors, i.e., the local (conditional) probability tables of the network."""

    def __init__(self, p: float) -> None:
        """Initialize the base class.

        Args:
            p: The p of the norm used for marginalization (1 = sum-product, inf = max-product).
        """
        self.p = p

    @property
    @abstractmethod
    def variables(self) -> tuple[Hashable, ...]:
        """The labels of the variables the factor depends on."""

    @property
    @abstractmethod
    def domains(self) -> dict[Hashable, Domain]:
        """The domain of each variable as implied by this factor."""

    @abstractmethod
    def message_to(self, target: Hashable, incoming: dict[Hashable, np.ndarray]) -> np.ndarray:
        """Compute the (unnormalized) message to one of the variables.

        Args:
            target: The variable receiving the message.
            incoming: The current messages of all other variables to this factor.

        Returns:
            The message over the domain of 'target'.
        """


class TableFactor(Factor):
    """Factor given by an explicit (multidimensional) table."""

    def __init__(self, variables: Sequence[Hashable], pmf: PMF, p: float) -> None:
        """Initialize the factor.

        Args:
            variables: The variable labels, one per dimension of 'pmf'.
            pmf: The table.
            p: The p of the norm used for marginalization.

        Raises:
            StructuralGraphError: If the number of variables does not match the table or a
                variable is used twice.
        """
        super().__init__(p)

        if len(variables) != pmf.dimension:
            raise StructuralGraphError(
                f"table with {pmf.dimension} dimensions cannot depend on {len(variables)} variables"
            )
        if len(set(variables)) != len(variables):
            raise StructuralGraphError(f"variables of a table factor must be unique: {variables}")

        self._variables = tuple(variables)
        self.pmf = pmf

    @property
    def variables(self) -> tuple[Hashable, ...]:
        """The labels of the variables the factor depends on."""
        return self._variables

    @property
    def domains(self) -> dict[Hashable, Domain]:
        """The domain of each variable as implied by the table's support."""
        return {
            variable: (first, last)
            for variable, first, last in zip(
                self._variables, self.pmf.first_support, self.pmf.last_support
            )
        }

    def message_to(self, target: Hashable, incoming: dict[Hashable, np.ndarray]) -> np.ndarray:
        """Multiply the table with the incoming messages and marginalize onto 'target'."""
        weighted = self.pmf.table
        target_axis = self._variables.index(target)

        for axis, variable in enumerate(self._variables):
            if axis == target_axis:
                continue
            shape = [1] * weighted.ndim
            shape[axis] = -1
            weighted = weighted * incoming[variable].reshape(shape)

        return p_norm_reduce(weighted, target_axis, self.p)

    def __repr__(self) -> str:
        return f"TableFactor(variables={self._variables}, pmf={self.pmf!r})"


class AdditiveFactor(Factor):
    """Deterministic dependency `output = sum(inputs)`.

    This is the probabilistic adder: with binary inputs, the output counts the present inputs, so
    that the output is non-zero whenever any input is present (probabilistic OR). Messages are
    computed by (p-norm) convolution, without ever building the exponentially large joint table.
    """

    def __init__(
        self,
        inputs: Sequence[Hashable],
        input_domains: Sequence[Domain],
        output: Hashable,
        p: float,
    ) -> None:
        """Initialize the factor.

        Args:
            inputs: The labels of the summed variables.
            input_domains: The domains of the summed variables.
            output: The label of the sum.
            p: The p of the norm used for marginalization.

        Raises:
            StructuralGraphError: If there are no inputs or labels are repeated.
        """
        super().__init__(p)

        if not inputs:
            raise StructuralGraphError(f"additive factor of variable {output} has no inputs")
        if len(inputs) != len(input_domains):
            raise StructuralGraphError("number of inputs and input domains differ")
        if len(set(inputs)) != len(inputs) or output in inputs:
            raise StructuralGraphError(f"variables of an additive factor must be unique: {inputs}")

        self.inputs = tuple(inputs)
        self.output = output
        self._input_domains = dict(zip(self.inputs, input_domains))
        self._output_domain = (
            sum(first for first, _ in input_domains),
            sum(last for _, last in input_domains),
        )

    @property
    def variables(self) -> tuple[Hashable, ...]:
        """The labels of the variables the factor depends on, the output last."""
        return (*self.inputs, self.output)

    @property
    def domains(self) -> dict[Hashable, Domain]:
        """The domains of the inputs and of the output (the sum of the input domains)."""
        return {**self._input_domains, self.output: self._output_domain}

    def message_to(self, target: Hashable, incoming: dict[Hashable, np.ndarray]) -> np.ndarray:
        """Compute the message to the output or to one of the inputs by convolution."""
        others = [self._power(incoming[v]) for v in self.inputs if v != target]
        partial_sum = np.ones(1)
        for message in others:
            partial_sum = self._convolve(partial_sum, message)

        if target == self.output:
            return self._root(partial_sum)

        # message to an input: correlate the output message with the sum of the other inputs
        output_message = self._power(incoming[self.output])
        if math.isinf(self.p):
            windows = sliding_window_view(output_message, len(partial_sum))
            return (windows * partial_sum).max(axis=1)
        return self._root(np.correlate(output_message, partial_sum, mode="valid"))

    def _power(self, message: np.ndarray) -> np.ndarray:
        """Map a message into the domain where the p-norm becomes a sum."""
        scale = message.max()
        scaled = message / scale if scale > 0.0 else message
        return scaled if math.isinf(self.p) or self.p == 1.0 else np.power(scaled, self.p)

    def _root(self, message: np.ndarray) -> np.ndarray:
        """Inverse of '_power' (up to scaling)."""
        if math.isinf(self.p) or self.p == 1.0:
            return message
        return np.power(np.maximum(message, 0.0), 1.0 / self.p)

    def _convolve(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Convolution for finite p and max-convolution for p = inf."""
        if not math.isinf(self.p):
            return np.convolve(a, b)

        result = np.zeros(len(a) + len(b) - 1)
        for i, value in enumerate(a):
            np.maximum(result[i : i + len(b)], value * b, out=result[i : i + len(b)])
        return result

    def __repr__(self) -> str:
        return f"AdditiveFactor(inputs={self.inputs}, output={self.output})"


class FactorFactory:
    """Create the factors of the protein inference network from the model parameters."""

    def __init__(
        self,
        alpha: float,
        beta: float,
        gamma: float,
        p: float = 1.0,
        pep_prior: float = 0.5,
    ) -> None:
        """Initialize the factory.

        Args:
            alpha: Probability that a present protein emits a given peptide.
            beta: Probability of a spurious peptide identification.
            gamma: Prior probability of protein presence.
            p: The p of the norm used for marginalization (1 = sum-product, inf = max-product).
            pep_prior: Prior probability of a peptide.
        """
        self.alpha = alpha
        self.beta = beta
        self.gamma = gamma
        self.p = p
        self.pep_prior = pep_prior

    def create_protein_factor(self, label: Hashable, prior: float | None = None) -> TableFactor:
        """Create the prior of a protein.

        Args:
            label: The protein variable.
            prior: A protein-specific prior, 'gamma' is used if None.

        Raises:
            StructuralGraphError: If the prior is not a probability.
        """
        prior = self.gamma if prior is None else prior
        _check_probability(prior, f"prior of protein {label}")
        return TableFactor([label], PMF(0, np.array([1.0 - prior, prior])), self.p)

    def create_peptide_evidence_factor(self, label: Hashable, probability: float) -> TableFactor:
        """Create the evidence of a peptide-spectrum match from its identification probability.

        Args:
            label: The PSM variable.
            probability: The score of the PSM, a probability.

        Raises:
            StructuralGraphError: If the score is not a probability.
        """
        _check_probability(probability, f"score of peptide-spectrum match {label}")
        table = np.array(
            [(1.0 - probability) * (1.0 - self.pep_prior), probability * self.pep_prior]
        )
        return TableFactor([label], PMF(0, table), self.p)

    def create_sum_evidence_factor(
        self,
        nr_parents: int,
        parent_label: Hashable,
        psm_label: Hashable,
    ) -> TableFactor:
        """Create the emission of a PSM given the number of its present parents.

        The PSM is absent only if none of the present parents emitted it and it was not a
        spurious identification: `P(psm = 0 | c) = (1 - beta) * (1 - alpha) ** c`.

        Args:
            nr_parents: The maximum number of present parents.
            parent_label: The (count or binary) variable of the parents.
            psm_label: The PSM variable.

        Raises:
            StructuralGraphError: If 'nr_parents' is smaller than 1.
        """
        if nr_parents < 1:
            raise StructuralGraphError(f"peptide-spectrum match {psm_label} has no parents")

        table = np.empty((nr_parents + 1, 2))
        for count in range(nr_parents + 1):
            absent = self._not_conditional_given_sum(count)
            table[count] = (absent, 1.0 - absent)

        return TableFactor([parent_label, psm_label], PMF((0, 0), table), self.p)

    def create_probabilistic_adder_factor(
        self,
        parents: Sequence[Hashable],
        parent_domains: Sequence[Domain],
        label: Hashable,
    ) -> AdditiveFactor:
        """Create the count of present parents of a group."""
        return AdditiveFactor(parents, parent_domains, label, self.p)

    def _not_conditional_given_sum(self, count: int) -> float:
        """Probability that a PSM is absent given 'count' present parents."""
        return (1.0 - self.beta) * (1.0 - self.alpha) ** count


def _check_probability(value: float, what: str) -> None:
    """Raise a StructuralGraphError if 'value' is not within [0, 1]."""
    if not 0.0 <= value <= 1.0:
        raise StructuralGraphError(f"{what} must be a probability, got {value}")
