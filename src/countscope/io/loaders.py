"""
Delimited-table readers shared by the annotation, sample and matrix loaders.

Biological Context:
    Every input to the analysis is a flat delimited file with a header row:
    annotation tables (transcript -> gene, gene -> name), the sample sheet,
    per-sample quantification tables, and previously written count matrices.
    This module centralizes path validation, delimiter detection and the
    error messages for malformed files.

Examples:
    >>> from pathlib import Path
    >>> from countscope.io.loaders import read_delimited, load_count_matrix
    >>>
    >>> table = read_delimited(Path("tx2gene.tsv"))
    >>> matrix = load_count_matrix(Path("results/counts.normalized.csv"), kind="normalized")
    >>> print(f"Loaded {matrix.n_genes} genes x {matrix.n_samples} samples")
"""

from __future__ import annotations

from pathlib import Path
import logging
import warnings
import numpy as np
import pandas as pd

from countscope.core.countmatrix import CountMatrix, MatrixKind
from countscope.io.formats import sniff_delimiter

logger = logging.getLogger(__name__)

__all__ = ['read_delimited', 'load_count_matrix']


def _validate_path(path: Path | str) -> Path:
    if not isinstance(path, Path):
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")

    return path


def read_delimited(
    path: Path | str,
    delimiter: str | None = None,
    **read_kwargs,
) -> pd.DataFrame:
    """
    Read a delimited text table with a header row.

    Args:
        path: Path to the file
        delimiter: Column delimiter. If None, sniffed from the file content.
        **read_kwargs: Extra arguments for pandas.read_csv

    Returns:
        DataFrame with the file's columns

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the file is empty or cannot be parsed
    """
    path = _validate_path(path)

    if path.stat().st_size == 0:
        raise ValueError(f"File is empty: {path}")

    if delimiter is None:
        delimiter = sniff_delimiter(path)
        logger.debug(f"Sniffed delimiter {delimiter!r} for {path.name}")

    try:
        df = pd.read_csv(path, sep=delimiter, **read_kwargs)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"File is empty: {path}") from e
    except Exception as e:
        raise ValueError(f"Failed to read {path}: {e}") from e

    if df.empty:
        raise ValueError(f"File contains no data rows: {path}")

    return df


def load_count_matrix(
    path: Path | str,
    sample_metadata: pd.DataFrame | None = None,
    kind: MatrixKind = "raw",
    delimiter: str | None = None,
) -> CountMatrix:
    """
    Load a genes x samples matrix written by `write_count_matrix`.

    Expected format:
    - First column: gene IDs
    - Remaining columns: sample IDs (headers) with numerical values

    Example:
    ```
    gene_id,WT_cc12_1,KD_cc12_1
    FBgn0000003,612,1056
    FBgn0000008,0,1
    ```

    Args:
        path: Path to CSV/TSV file
        sample_metadata: Optional sample table; rows are aligned to the
            matrix columns by sample ID
        kind: Which stage produced the values
        delimiter: Column delimiter (None = sniff)

    Returns:
        CountMatrix

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the file is malformed or samples are missing from
            the metadata
    """
    df = read_delimited(path, delimiter=delimiter, index_col=0)

    if df.shape[1] == 0:
        raise ValueError(f"Matrix contains no samples (columns): {path}")

    if df.index.duplicated().any():
        n_duplicates = df.index.duplicated().sum()
        warnings.warn(
            f"Found {n_duplicates} duplicate gene IDs. "
            "Using first occurrence of each.",
            UserWarning
        )
        df = df[~df.index.duplicated(keep='first')]

    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)

    try:
        data = df.to_numpy(dtype=float)
    except ValueError as e:
        raise ValueError(f"Matrix contains non-numeric values: {path}") from e

    if np.isinf(data).any():
        raise ValueError(
            f"Matrix contains {int(np.isinf(data).sum())} infinite values: {path}"
        )

    if sample_metadata is not None:
        missing = [s for s in df.columns if s not in sample_metadata.index]
        if missing:
            raise ValueError(f"Samples missing from metadata: {missing}")
        sample_metadata = sample_metadata.loc[df.columns]

    matrix = CountMatrix(
        data=data,
        gene_ids=pd.Index(df.index),
        sample_ids=pd.Index(df.columns),
        sample_metadata=sample_metadata,
        kind=kind,
    )
    logger.info(f"Loaded {matrix.n_genes:,} genes x {matrix.n_samples:,} samples from {path}")
    return matrix
