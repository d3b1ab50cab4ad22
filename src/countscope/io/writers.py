"""
CSV writers for pipeline artifacts.

Writes count matrices, sample tables and per-sample factors as plain CSV
so results open directly in R, Excel or pandas.

Examples:
    >>> from pathlib import Path
    >>> from countscope.io.writers import write_count_matrix
    >>> write_count_matrix(normalized, Path("results/counts.normalized.csv"))
    PosixPath('results/counts.normalized.csv')
"""

from __future__ import annotations

from pathlib import Path
import logging
import pandas as pd

from countscope.core.countmatrix import CountMatrix

logger = logging.getLogger(__name__)

__all__ = ['write_count_matrix', 'write_sample_table', 'write_factors']


def write_count_matrix(matrix: CountMatrix, path: Path | str, float_format: str | None = None) -> Path:
    """
    Write a CountMatrix to CSV.

    - First column: gene IDs (header "gene_id")
    - Remaining columns: sample IDs with numerical values

    Raises:
        TypeError: If matrix is not a CountMatrix
        ValueError: If matrix is empty

    Notes:
        Creates parent directories if they don't exist and overwrites
        existing files.
    """
    if not isinstance(matrix, CountMatrix):
        raise TypeError(f"matrix must be CountMatrix, got {type(matrix)}")

    if matrix.data.size == 0:
        raise ValueError("Cannot write empty matrix")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    df = matrix.to_frame()
    df.index.name = "gene_id"
    df.to_csv(path, float_format=float_format)

    logger.info(f"Wrote {matrix.kind} matrix ({matrix.n_genes} x {matrix.n_samples}) to {path}")
    return path


def write_sample_table(table: pd.DataFrame, path: Path | str) -> Path:
    """Write a sample table (index = sample ID) to CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    out = table.copy()
    out.index.name = out.index.name or "sample"
    out.to_csv(path)

    logger.info(f"Wrote sample table ({len(out)} rows) to {path}")
    return path


def write_factors(factors: pd.Series, path: Path | str, name: str = "size_factor") -> Path:
    """Write one value per sample (e.g. size factors) as a two-column CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    out = factors.rename(name).to_frame()
    out.index.name = "sample"
    out.to_csv(path)

    logger.info(f"Wrote {len(out)} {name} values to {path}")
    return path
