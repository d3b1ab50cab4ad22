"""
Abundance import: per-sample transcript estimates -> gene-level count matrix.

Biological Context:
    Quantifiers (salmon, kallisto) write one table per sequencing run with an
    estimated read count for every transcript isoform. Gene-level analysis
    sums isoform estimates per gene using the transcript -> gene map.

    Transcripts the map does not know (e.g. spike-ins, annotation version
    drift) cannot be attributed to a gene. They are dropped, counted and
    reported with an UnresolvedTranscript warning; the import continues.

Engineering Design:
    - Sample <-> file pairing is an explicit keyed join on the sample ID:
      every sample row is resolved to <quant_dir>/<sample dir>/<filename>
      and all files are checked for existence before any is read
    - Output columns follow the sample table's row order exactly
    - Genes absent from a sample's file are zero in that column

Examples:
    >>> from countscope.io.importer import import_abundances
    >>> counts = import_abundances(samples, "quant/", tx2gene, fmt="salmon")
    >>> counts.sample_ids.equals(samples.index)
    True
"""

from __future__ import annotations

from pathlib import Path
import logging
import warnings
import numpy as np
import pandas as pd

from countscope.core.countmatrix import CountMatrix
from countscope.core.errors import SampleFileMismatch, UnresolvedTranscript
from countscope.io.formats import QuantFormat, resolve_format
from countscope.io.loaders import read_delimited

logger = logging.getLogger(__name__)

__all__ = [
    'locate_quant_files',
    'read_quant_file',
    'aggregate_to_genes',
    'import_abundances',
]


def locate_quant_files(
    sample_table: pd.DataFrame,
    quant_dir: Path | str,
    fmt: str | QuantFormat = "salmon",
    dir_col: str | None = None,
) -> dict[str, Path]:
    """
    Resolve the quantification file of every sample.

    Args:
        sample_table: Sample sheet indexed by sample ID
        quant_dir: Directory holding one subdirectory per sample
        fmt: Format preset name or QuantFormat
        dir_col: Column naming each sample's subdirectory. If None, the
            sample ID is the subdirectory name.

    Returns:
        Mapping sample ID -> file path, in sample table order

    Raises:
        SampleFileMismatch: If any file is missing, or two samples resolve
            to the same file
    """
    fmt = resolve_format(fmt)
    quant_dir = Path(quant_dir)

    if not quant_dir.is_dir():
        raise SampleFileMismatch(f"Quantification directory not found: {quant_dir}")

    if dir_col is not None and dir_col not in sample_table.columns:
        raise SampleFileMismatch(
            f"Directory column '{dir_col}' not in sample table. "
            f"Available: {list(sample_table.columns)}"
        )

    files: dict[str, Path] = {}
    missing: list[str] = []
    for sample_id in sample_table.index:
        subdir = sample_id if dir_col is None else sample_table.at[sample_id, dir_col]
        path = quant_dir / str(subdir) / fmt.filename
        if not path.is_file():
            missing.append(f"{sample_id}: {path}")
        files[str(sample_id)] = path

    if missing:
        raise SampleFileMismatch(
            f"{len(missing)} of {len(sample_table)} samples have no "
            f"{fmt.filename} file:\n" + "\n".join(f"  - {m}" for m in missing)
        )

    resolved = pd.Series({sid: p.resolve() for sid, p in files.items()})
    shared = resolved[resolved.duplicated(keep=False)]
    if not shared.empty:
        raise SampleFileMismatch(
            f"Samples share quantification files: "
            f"{shared.groupby(shared).groups}"
        )

    known = {p.parent.name for p in files.values()}
    extra = sorted(
        d.name for d in quant_dir.iterdir()
        if d.is_dir() and (d / fmt.filename).is_file() and d.name not in known
    )
    if extra:
        logger.warning(f"Quantification directories not in sample table (ignored): {extra}")

    return files


def read_quant_file(path: Path | str, fmt: str | QuantFormat = "salmon") -> pd.Series:
    """
    Read one quantification table into transcript -> estimated count.

    Raises:
        SampleFileMismatch: If the ID or count column is missing
        ValueError: If counts are non-numeric or negative
    """
    fmt = resolve_format(fmt)
    df = read_delimited(path, delimiter=fmt.delimiter)

    missing = [c for c in (fmt.id_column, fmt.count_column) if c not in df.columns]
    if missing:
        raise SampleFileMismatch(
            f"{path} is not a {fmt.name} file: columns {missing} missing "
            f"(found {list(df.columns)})"
        )

    ids = df[fmt.id_column].astype(str).map(fmt.extract_id)
    counts = pd.to_numeric(df[fmt.count_column], errors="coerce")
    if counts.isna().any():
        raise ValueError(
            f"{int(counts.isna().sum())} non-numeric values in column "
            f"'{fmt.count_column}' of {path}"
        )
    if (counts < 0).any():
        raise ValueError(f"Negative counts in {path}")

    # Versioned IDs can collapse onto the same transcript
    return counts.groupby(ids.to_numpy(), sort=False).sum()


def aggregate_to_genes(
    transcript_counts: pd.Series,
    tx2gene: pd.Series,
) -> tuple[pd.Series, pd.Index]:
    """
    Sum transcript estimates into gene totals.

    Args:
        transcript_counts: transcript ID -> estimated count
        tx2gene: transcript ID -> gene ID

    Returns:
        (gene ID -> summed count, transcripts without a gene)
    """
    genes = tx2gene.reindex(transcript_counts.index)
    resolved = genes.notna().to_numpy()
    unresolved = transcript_counts.index[~resolved]

    gene_counts = transcript_counts[resolved].groupby(genes[resolved].to_numpy()).sum()
    return gene_counts, unresolved


def import_abundances(
    sample_table: pd.DataFrame,
    quant_dir: Path | str,
    tx2gene: pd.Series,
    fmt: str | QuantFormat = "salmon",
    dir_col: str | None = None,
) -> CountMatrix:
    """
    Build the raw genes x samples count matrix from per-sample files.

    Args:
        sample_table: Sample sheet indexed by sample ID
        quant_dir: Directory with one subdirectory per sample
        tx2gene: transcript ID -> gene ID
        fmt: Format preset name or QuantFormat
        dir_col: Sample table column naming each sample's subdirectory

    Returns:
        Raw CountMatrix whose columns equal sample_table.index, in order,
        with sample_table as its sample metadata. Rows are sorted gene IDs.

    Raises:
        SampleFileMismatch: If files are missing or malformed

    Warns:
        UnresolvedTranscript: For each sample with transcripts missing from
            tx2gene (their counts are dropped)
    """
    fmt = resolve_format(fmt)
    files = locate_quant_files(sample_table, quant_dir, fmt=fmt, dir_col=dir_col)

    logger.info(f"Importing {len(files)} {fmt.name} files from {quant_dir}")

    columns: dict[str, pd.Series] = {}
    total_unresolved = 0
    for sample_id, path in files.items():
        transcript_counts = read_quant_file(path, fmt)
        gene_counts, unresolved = aggregate_to_genes(transcript_counts, tx2gene)

        if len(unresolved):
            dropped = float(transcript_counts[unresolved].sum())
            total_unresolved += len(unresolved)
            message = (
                f"{sample_id}: {len(unresolved)} transcripts not in the "
                f"transcript-to-gene map (dropped {dropped:,.1f} reads), "
                f"e.g. {list(unresolved[:3])}"
            )
            logger.warning(message)
            warnings.warn(message, UnresolvedTranscript)

        columns[sample_id] = gene_counts
        logger.debug(
            f"{sample_id}: {len(transcript_counts):,} transcripts -> {len(gene_counts):,} genes"
        )

    frame = pd.DataFrame(columns)
    frame = frame.reindex(columns=[str(s) for s in sample_table.index])
    frame = frame.fillna(0.0).sort_index()

    if not frame.columns.equals(pd.Index([str(s) for s in sample_table.index])):
        raise SampleFileMismatch("Imported columns do not line up with the sample table")

    metadata = sample_table.copy()
    metadata.index = pd.Index([str(s) for s in sample_table.index], name=sample_table.index.name)

    matrix = CountMatrix(
        data=frame.to_numpy(dtype=float),
        gene_ids=pd.Index(frame.index.astype(str), name="gene_id"),
        sample_ids=pd.Index(frame.columns),
        sample_metadata=metadata,
        kind="raw",
    )

    logger.info(
        f"Imported {matrix.n_genes:,} genes x {matrix.n_samples} samples "
        f"({np.sum(matrix.data):,.0f} assigned reads, "
        f"{total_unresolved:,} unresolved transcript entries)"
    )
    return matrix
