"""
Base transformation framework for immutable matrix operations.

Every pipeline stage that maps one CountMatrix to another (replicate
collapsing, low-count filtering, variance stabilization) is a Transform:
a named, parameterized, pure function. Parameters are JSON-serializable so
they can be recorded in the run manifest.

Examples:
    >>> from countscope.core.transform import Transform
    >>>
    >>> class Log2Transform(Transform):
    ...     def __init__(self, pseudocount: float = 1.0):
    ...         super().__init__(name="Log2Transform", params={"pseudocount": pseudocount})
    ...         self.pseudocount = pseudocount
    ...
    ...     def apply(self, matrix):
    ...         import numpy as np
    ...         return matrix.with_data(np.log2(matrix.data + self.pseudocount), kind="transformed")
    >>>
    >>> transformed = Log2Transform().apply(raw)
    >>> # raw is unchanged
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING
from datetime import datetime

if TYPE_CHECKING:
    from countscope.core.countmatrix import CountMatrix

__all__ = ['Transform']


class Transform(ABC):
    """
    Abstract base class for all matrix transformations.

    Transformations take a matrix and parameters and return a new matrix.
    The input matrix is never modified.

    Attributes:
        name: Human-readable transformation name (e.g., "LowCountFilter")
        params: Parameters used for this transformation
        timestamp: When this transform instance was created (for the manifest)
    """

    def __init__(self, name: str, params: dict[str, Any]) -> None:
        self.name = name
        self.params = params
        self.timestamp = datetime.now()

    @abstractmethod
    def apply(self, matrix: CountMatrix) -> CountMatrix:
        """
        Execute transformation and return new matrix.

        Must never modify the input matrix.

        Raises:
            ValueError: If transformation cannot be applied (check validate() first)
        """
        pass

    def validate(self, matrix: CountMatrix) -> list[str]:
        """
        Check preconditions before applying transformation.

        Subclasses should override and call super().validate() first.

        Returns:
            List of error messages (empty list = valid)
        """
        errors: list[str] = []

        if matrix.data.size == 0:
            errors.append("Cannot process empty matrix")

        return errors

    def describe(self) -> dict[str, Any]:
        """Manifest entry for this transform."""
        return {
            "name": self.name,
            "params": self.params,
            "created_at": self.timestamp.isoformat(),
        }

    def __repr__(self) -> str:
        """String like "LowCountFilter(min_count=1, min_samples=2)"."""
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"
