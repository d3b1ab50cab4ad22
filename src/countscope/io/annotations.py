"""
Annotation tables: transcript -> gene and gene -> name.

Biological Context:
    Quantifiers estimate abundance per transcript isoform; analysis happens
    per gene. The transcript -> gene map (many-to-one) drives aggregation in
    the importer, and the gene -> name map turns FlyBase IDs into readable
    symbols for the gene-level report.

Examples:
    >>> from countscope.io.annotations import load_transcript_gene_map, load_gene_name_map
    >>> tx2gene = load_transcript_gene_map("annotation/tx2gene.tsv")
    >>> tx2gene["FBtr0070000"]
    'FBgn0031208'
    >>> names = load_gene_name_map("annotation/gene_names.tsv")
    >>> names["FBgn0000490"]
    'dpp'
"""

from __future__ import annotations

from pathlib import Path
import logging
import warnings
import pandas as pd

from countscope.io.loaders import read_delimited

logger = logging.getLogger(__name__)

__all__ = ['load_transcript_gene_map', 'load_gene_name_map']


def _pick_columns(
    df: pd.DataFrame,
    key_col: str | None,
    value_col: str | None,
    path: Path | str,
) -> tuple[str, str]:
    if df.shape[1] < 2:
        raise ValueError(f"Annotation table needs at least two columns: {path}")

    key_col = key_col or df.columns[0]
    value_col = value_col or df.columns[1]

    missing = [c for c in (key_col, value_col) if c not in df.columns]
    if missing:
        raise ValueError(
            f"Columns {missing} not found in {path}. Available: {list(df.columns)}"
        )
    return key_col, value_col


def load_transcript_gene_map(
    path: Path | str,
    transcript_col: str | None = None,
    gene_col: str | None = None,
    delimiter: str | None = None,
) -> pd.Series:
    """
    Load the transcript -> gene mapping.

    Args:
        path: Delimited file with a header row
        transcript_col: Transcript ID column (default: first column)
        gene_col: Gene ID column (default: second column)
        delimiter: Column delimiter (None = sniff)

    Returns:
        Series indexed by transcript ID with gene IDs as values

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the table is empty or lacks the requested columns

    Notes:
        Rows with a missing transcript or gene ID are dropped. A transcript
        listed twice keeps its first gene (with a warning).
    """
    df = read_delimited(path, delimiter=delimiter, dtype=str)
    transcript_col, gene_col = _pick_columns(df, transcript_col, gene_col, path)

    df = df[[transcript_col, gene_col]].dropna()
    df[transcript_col] = df[transcript_col].str.strip()
    df[gene_col] = df[gene_col].str.strip()

    if df[transcript_col].duplicated().any():
        n_duplicates = int(df[transcript_col].duplicated().sum())
        warnings.warn(
            f"Found {n_duplicates} duplicate transcript IDs in {path}. "
            "Using first occurrence of each.",
            UserWarning
        )
        df = df[~df[transcript_col].duplicated(keep='first')]

    tx2gene = pd.Series(
        df[gene_col].to_numpy(),
        index=pd.Index(df[transcript_col].to_numpy(), name="transcript_id"),
        name="gene_id",
    )
    logger.info(
        f"Loaded {len(tx2gene):,} transcripts mapping to "
        f"{tx2gene.nunique():,} genes from {path}"
    )
    return tx2gene


def load_gene_name_map(
    path: Path | str,
    gene_col: str | None = None,
    name_col: str | None = None,
    delimiter: str | None = None,
) -> pd.Series:
    """
    Load the gene ID -> gene name mapping.

    Args:
        path: Delimited file with a header row
        gene_col: Gene ID column (default: first column)
        name_col: Gene name/symbol column (default: second column)
        delimiter: Column delimiter (None = sniff)

    Returns:
        Series indexed by gene ID with gene names as values

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If a gene ID is listed with more than one name
    """
    df = read_delimited(path, delimiter=delimiter, dtype=str)
    gene_col, name_col = _pick_columns(df, gene_col, name_col, path)

    df = df[[gene_col, name_col]].dropna()
    df[gene_col] = df[gene_col].str.strip()
    df[name_col] = df[name_col].str.strip()
    df = df.drop_duplicates()

    conflicting = df[gene_col][df[gene_col].duplicated()].unique().tolist()
    if conflicting:
        examples = conflicting[:5]
        raise ValueError(
            f"{len(conflicting)} gene IDs have more than one name in {path} "
            f"(e.g. {examples}); expected one name per ID"
        )

    names = pd.Series(
        df[name_col].to_numpy(),
        index=pd.Index(df[gene_col].to_numpy(), name="gene_id"),
        name="gene_name",
    )
    logger.info(f"Loaded {len(names):,} gene names from {path}")
    return names
