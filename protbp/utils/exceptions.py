"""Definition of exceptions and errors."""
from __future__ import annotations


class ComponentInferenceError(Exception):
    """Base class of the errors confined to a single connected component.

    Errors of this type are caught at the component boundary: the component is skipped with a
    warning and the inference continues with the remaining components.
    """

    def __init__(self, message: str = "inference failed on a connected component") -> None:
        """Initialize the ComponentInferenceError.

        Args:
            message: Exception message.
        """
        self.message = message
        super().__init__(self.message)


class StructuralGraphError(ComponentInferenceError):
    """Error thrown when a factor graph cannot be assembled from a connected component."""

    def __init__(self, message: str = "malformed factor dependency") -> None:
        """Initialize the StructuralGraphError.

        Args:
            message: Exception message.
        """
        super().__init__(message)


class NumericalError(ComponentInferenceError):
    """Error thrown when a message or marginal of the belief propagation loses all its mass."""

    def __init__(self, message: str = "probability mass function has no mass") -> None:
        """Initialize the NumericalError.

        Args:
            message: Exception message.
        """
        super().__init__(message)


class ConfigurationError(ValueError):
    """Error thrown for invalid options, before any inference work is started."""

    def __init__(self, message: str = "invalid configuration") -> None:
        """Initialize the ConfigurationError.

        Args:
            message: Exception message.
        """
        self.message = message
        super().__init__(self.message)
