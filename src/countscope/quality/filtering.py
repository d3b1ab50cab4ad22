"""
Low-count gene filtering.

A gene is kept when enough samples carry more than a minimal number of
reads. The defaults (more than 1 read in at least 2 samples) are
deliberately permissive: they only remove genes with essentially no
information, so the filter cannot bias which genes look variable.

Engineering Design:
    - Transform interface: input matrix -> output matrix
    - Row order preserved, no randomness
    - Monotone: raising either threshold never adds genes back
    - Idempotent: refiltering with the same thresholds changes nothing
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Set
import numpy as np

from countscope.core.countmatrix import CountMatrix
from countscope.core.errors import EmptyAfterFiltering
from countscope.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = ['LowCountFilter', 'LowCountFilterResult']


@dataclass
class LowCountFilterResult:
    """Genes passing/failing the filter with the parameters used."""
    passed_genes: Set[str]
    failed_genes: Set[str]
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_passed(self) -> int:
        return len(self.passed_genes)

    @property
    def n_failed(self) -> int:
        return len(self.failed_genes)

    @property
    def pass_rate(self) -> float:
        total = self.n_passed + self.n_failed
        return self.n_passed / total if total > 0 else 0.0


class LowCountFilter(Transform):
    """
    Keep gene g iff at least `min_samples` samples have count > `min_count`.

    Params:
        min_count: Count a sample must strictly exceed to count as expressing
            the gene.
        min_samples: Number of expressing samples required.

    Examples:
        >>> filtered = LowCountFilter(min_count=1, min_samples=2).apply(counts)
    """

    def __init__(self, min_count: float = 1, min_samples: int = 2):
        if min_count < 0:
            raise ValueError(f"min_count must be >= 0, got {min_count}")
        if min_samples < 1:
            raise ValueError(f"min_samples must be >= 1, got {min_samples}")

        super().__init__(
            name="LowCountFilter",
            params={
                "min_count": min_count,
                "min_samples": min_samples,
            }
        )
        self.min_count = min_count
        self.min_samples = min_samples

    def _compute_keep_mask(self, matrix: CountMatrix) -> np.ndarray:
        expressed_in_samples = (matrix.data > self.min_count).sum(axis=1)
        return expressed_in_samples >= self.min_samples

    def get_passing_genes(self, matrix: CountMatrix) -> LowCountFilterResult:
        """Genes passing the filter without transforming the matrix."""
        keep_mask = self._compute_keep_mask(matrix)
        return LowCountFilterResult(
            passed_genes=set(matrix.gene_ids[keep_mask]),
            failed_genes=set(matrix.gene_ids[~keep_mask]),
            parameters=dict(self.params),
        )

    def apply(self, matrix: CountMatrix) -> CountMatrix:
        """
        Apply the filter.

        Raises:
            EmptyAfterFiltering: If no gene passes
        """
        logger.info(f"Applying LowCountFilter: count > {self.min_count} "
                    f"in >= {self.min_samples} samples")

        if self.min_samples > matrix.n_samples:
            logger.warning(
                f"min_samples={self.min_samples} exceeds the number of samples "
                f"({matrix.n_samples}); no gene can pass"
            )

        keep_mask = self._compute_keep_mask(matrix)
        n_kept = int(keep_mask.sum())
        n_removed = matrix.n_genes - n_kept

        if n_kept == 0:
            raise EmptyAfterFiltering(
                f"All {matrix.n_genes} genes removed by the low-count filter "
                f"(count > {self.min_count} in >= {self.min_samples} of "
                f"{matrix.n_samples} samples)"
            )

        logger.info(f"Filtering complete: Kept {n_kept}/{matrix.n_genes} genes "
                    f"({100*n_kept/matrix.n_genes:.1f}%), Removed {n_removed}")

        return matrix.select_genes(keep_mask)
