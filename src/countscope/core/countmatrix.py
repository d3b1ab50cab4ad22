"""
Core data structure for gene-by-sample count matrices.

CountMatrix couples the numerical counts with the sample table they were
measured on, so that covariates travel with the columns through every
pipeline stage (collapsing, filtering, normalization, transformation).

Biological Context:
    RNA-seq count matrices are the working artifact of the analysis:
    - Rows = genes (aggregated from transcript-level estimates)
    - Columns = samples (sequencing runs, later biological replicates)
    - Values = raw counts, size-factor normalized counts, or
      variance-stabilized log-scale expression

    Losing the column <-> covariate pairing silently corrupts every
    downstream comparison, so the constructor refuses any matrix whose
    sample metadata is not indexed exactly like its columns.

Engineering Design:
    - Immutable: operations return new instances
    - NumPy arrays for data, pandas for labels and covariates
    - `kind` records which stage produced the values
      ("raw", "normalized", "transformed")

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from countscope.core.countmatrix import CountMatrix
    >>>
    >>> sample_ids = pd.Index(["WT_cc12_1", "KD_cc12_1"])
    >>> matrix = CountMatrix(
    ...     data=np.array([[10, 20], [30, 40]]),
    ...     gene_ids=pd.Index(["FBgn0000001", "FBgn0000002"]),
    ...     sample_ids=sample_ids,
    ...     sample_metadata=pd.DataFrame({"genotype": ["WT", "KD"]}, index=sample_ids),
    ... )
    >>> wt = matrix.select_samples(matrix.sample_metadata["genotype"] == "WT")
"""

from __future__ import annotations

from typing import Literal
import numpy as np
import pandas as pd

__all__ = ['CountMatrix', 'MatrixKind']

MatrixKind = Literal["raw", "normalized", "transformed"]

_KINDS = ("raw", "normalized", "transformed")


class CountMatrix:
    """
    Immutable container for a genes x samples matrix plus its sample table.

    Attributes:
        data: Numerical matrix (genes x samples)
        gene_ids: Row identifiers (e.g., FlyBase gene IDs)
        sample_ids: Column identifiers (run or biological replicate IDs)
        sample_metadata: Sample covariates, indexed by sample_ids
        kind: Which stage produced the values

    Shape Invariants:
        - data.shape[0] == len(gene_ids)
        - data.shape[1] == len(sample_ids)
        - sample_metadata.index equals sample_ids
        - raw and normalized matrices are non-negative
    """

    def __init__(
        self,
        data: np.ndarray,
        gene_ids: pd.Index,
        sample_ids: pd.Index,
        sample_metadata: pd.DataFrame | None = None,
        kind: MatrixKind = "raw",
    ):
        """
        Initialize CountMatrix with validation.

        Args:
            data: Matrix (genes x samples)
            gene_ids: Row identifiers
            sample_ids: Column identifiers
            sample_metadata: DataFrame indexed by sample_ids. If None, an
                empty frame with the right index is created.
            kind: "raw", "normalized" or "transformed"

        Raises:
            TypeError: If data types are incorrect
            ValueError: If shapes are inconsistent, indices don't match,
                or counts are negative
        """
        if not isinstance(data, np.ndarray):
            raise TypeError(f"data must be np.ndarray, got {type(data)}")
        if not isinstance(gene_ids, pd.Index):
            raise TypeError(f"gene_ids must be pd.Index, got {type(gene_ids)}")
        if not isinstance(sample_ids, pd.Index):
            raise TypeError(f"sample_ids must be pd.Index, got {type(sample_ids)}")
        if sample_metadata is None:
            sample_metadata = pd.DataFrame(index=sample_ids)
        if not isinstance(sample_metadata, pd.DataFrame):
            raise TypeError(f"sample_metadata must be pd.DataFrame, got {type(sample_metadata)}")
        if kind not in _KINDS:
            raise ValueError(f"kind must be one of {_KINDS}, got {kind!r}")

        if data.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {data.shape}")

        n_genes, n_samples = data.shape
        if len(gene_ids) != n_genes:
            raise ValueError(
                f"gene_ids length ({len(gene_ids)}) must match data rows ({n_genes})"
            )
        if len(sample_ids) != n_samples:
            raise ValueError(
                f"sample_ids length ({len(sample_ids)}) must match data columns ({n_samples})"
            )
        if sample_ids.duplicated().any():
            dupes = sample_ids[sample_ids.duplicated()].unique().tolist()
            raise ValueError(f"sample_ids must be unique, duplicated: {dupes}")

        if not sample_metadata.index.equals(sample_ids):
            raise ValueError(
                "sample_metadata.index must match sample_ids exactly. "
                f"Got {len(sample_metadata.index)} metadata rows for {len(sample_ids)} samples."
            )

        if kind != "transformed" and data.size and np.nanmin(data) < 0:
            raise ValueError(f"{kind} counts must be non-negative")

        self._data = data
        self._gene_ids = gene_ids
        self._sample_ids = sample_ids
        self._sample_metadata = sample_metadata
        self._kind = kind

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        sample_metadata: pd.DataFrame | None = None,
        kind: MatrixKind = "raw",
    ) -> CountMatrix:
        """Build from a genes x samples DataFrame; metadata is aligned to its columns."""
        sample_ids = pd.Index(frame.columns)
        if sample_metadata is not None:
            sample_metadata = sample_metadata.reindex(sample_ids)
        return cls(
            data=frame.to_numpy(dtype=float),
            gene_ids=pd.Index(frame.index),
            sample_ids=sample_ids,
            sample_metadata=sample_metadata,
            kind=kind,
        )

    @property
    def data(self) -> np.ndarray:
        """Matrix values (genes x samples)."""
        return self._data

    @property
    def gene_ids(self) -> pd.Index:
        return self._gene_ids

    @property
    def sample_ids(self) -> pd.Index:
        return self._sample_ids

    @property
    def sample_metadata(self) -> pd.DataFrame:
        """Covariates for each sample."""
        return self._sample_metadata

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix dimensions (n_genes, n_samples)."""
        return self._data.shape

    @property
    def n_genes(self) -> int:
        return self._data.shape[0]

    @property
    def n_samples(self) -> int:
        return self._data.shape[1]

    def to_frame(self) -> pd.DataFrame:
        """Labelled genes x samples DataFrame view of the values."""
        return pd.DataFrame(self._data, index=self._gene_ids, columns=self._sample_ids)

    def with_data(self, data: np.ndarray, kind: MatrixKind | None = None) -> CountMatrix:
        """New matrix with the same labels and covariates but different values."""
        return CountMatrix(
            data=data,
            gene_ids=self._gene_ids,
            sample_ids=self._sample_ids,
            sample_metadata=self._sample_metadata,
            kind=kind or self._kind,
        )

    def select_samples(self, mask: np.ndarray | pd.Series) -> CountMatrix:
        """
        Subset matrix by samples (columns).

        Args:
            mask: Boolean array/Series indicating which samples to keep.
                If Series, uses values and ignores index.

        Raises:
            ValueError: If mask length doesn't match n_samples
        """
        if isinstance(mask, pd.Series):
            mask = mask.values
        mask = np.asarray(mask, dtype=bool)

        if len(mask) != self.n_samples:
            raise ValueError(
                f"mask length ({len(mask)}) must match n_samples ({self.n_samples})"
            )

        return CountMatrix(
            data=self._data[:, mask],
            gene_ids=self._gene_ids,
            sample_ids=self._sample_ids[mask],
            sample_metadata=self._sample_metadata.loc[self._sample_ids[mask]],
            kind=self._kind,
        )

    def select_genes(self, mask: np.ndarray | pd.Series) -> CountMatrix:
        """
        Subset matrix by genes (rows), preserving row order.

        Args:
            mask: Boolean array/Series indicating which genes to keep.
                If Series, uses values and ignores index.

        Raises:
            ValueError: If mask length doesn't match n_genes
        """
        if isinstance(mask, pd.Series):
            mask = mask.values
        mask = np.asarray(mask, dtype=bool)

        if len(mask) != self.n_genes:
            raise ValueError(
                f"mask length ({len(mask)}) must match n_genes ({self.n_genes})"
            )

        return CountMatrix(
            data=self._data[mask, :],
            gene_ids=self._gene_ids[mask],
            sample_ids=self._sample_ids,
            sample_metadata=self._sample_metadata,
            kind=self._kind,
        )

    def __repr__(self) -> str:
        if self.n_genes == 0 or self.n_samples == 0:
            return f"CountMatrix({self.n_genes} genes × {self.n_samples} samples, {self.kind})"
        return (
            f"CountMatrix({self.n_genes} genes × {self.n_samples} samples, {self.kind})\n"
            f"  Genes: {self.gene_ids[0]}...{self.gene_ids[-1]}\n"
            f"  Samples: {self.sample_ids[0]}...{self.sample_ids[-1]}\n"
            f"  Metadata columns: {list(self.sample_metadata.columns)}"
        )

    def __str__(self) -> str:
        return self.__repr__()
