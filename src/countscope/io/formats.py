"""
Format configuration for per-sample quantification files.

Each quantifier writes one table per sample with a transcript-ID column and
an abundance column, named by convention and stored in a per-sample
subdirectory. The design philosophy: **auto-detect what's safe, require
explicit config for ambiguous cases** - delimiters are sniffed, but which
column holds the estimated counts is fixed by a preset or given explicitly.

Examples:
    >>> from countscope.io.formats import QuantFormat, PRESETS
    >>>
    >>> fmt = PRESETS['salmon']
    >>> fmt.filename
    'quant.sf'
    >>>
    >>> # Custom quantifier output with versioned transcript IDs
    >>> fmt = QuantFormat(
    ...     name="Custom TSV",
    ...     filename="counts.tsv",
    ...     id_column="transcript",
    ...     count_column="reads",
    ...     id_pattern=r'^(?P<id>[^.]+)',
    ... )
"""

from __future__ import annotations

import re
import csv
from dataclasses import dataclass, field
from typing import Optional, Pattern
from pathlib import Path


__all__ = [
    'QuantFormat',
    'PRESETS',
    'resolve_format',
    'sniff_delimiter',
]


@dataclass
class QuantFormat:
    """
    Configuration for reading one quantification file per sample.

    Attributes:
        name: Human-readable format name
        filename: File name inside each per-sample directory
        id_column: Column holding transcript identifiers
        count_column: Column holding estimated counts
        abundance_column: Column holding length-normalized abundance (TPM),
            kept for reference only
        delimiter: Column delimiter (None = auto-detect)
        id_pattern: Regex with named group 'id' to extract the transcript ID
            (e.g. to strip version suffixes). If None, uses the raw value.
    """

    name: str = "Generic TSV"
    filename: str = "quant.tsv"
    id_column: str = "Name"
    count_column: str = "NumReads"
    abundance_column: Optional[str] = None
    delimiter: Optional[str] = '\t'
    id_pattern: Optional[str] = None
    _compiled_id_pattern: Optional[Pattern] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        """Compile regex pattern for efficiency."""
        if self.id_pattern:
            try:
                self._compiled_id_pattern = re.compile(self.id_pattern)
            except re.error as e:
                raise ValueError(f"Invalid id_pattern regex: {e}")
            if 'id' not in self._compiled_id_pattern.groupindex:
                raise ValueError(
                    f"id_pattern must contain named group 'id': {self.id_pattern}"
                )

    def extract_id(self, raw_id: str) -> str:
        """
        Extract transcript ID from a raw identifier.

        Returns the raw value (stripped) if no pattern is configured or the
        pattern does not match.
        """
        raw = str(raw_id).strip()
        if not self._compiled_id_pattern:
            return raw

        match = self._compiled_id_pattern.search(raw)
        if not match:
            return raw
        return match.group('id')


# =============================================================================
# Format Presets
# =============================================================================

PRESETS: dict[str, QuantFormat] = {
    # Salmon quant.sf: Name, Length, EffectiveLength, TPM, NumReads
    'salmon': QuantFormat(
        name="Salmon quant.sf",
        filename="quant.sf",
        id_column="Name",
        count_column="NumReads",
        abundance_column="TPM",
        delimiter='\t',
    ),

    # Kallisto abundance.tsv: target_id, length, eff_length, est_counts, tpm
    'kallisto': QuantFormat(
        name="Kallisto abundance.tsv",
        filename="abundance.tsv",
        id_column="target_id",
        count_column="est_counts",
        abundance_column="tpm",
        delimiter='\t',
    ),

    # Anything else: delimiter sniffed, columns overridden by the caller
    'generic': QuantFormat(
        name="Generic delimited",
        filename="quant.tsv",
        id_column="transcript_id",
        count_column="count",
        delimiter=None,
    ),
}


def resolve_format(fmt: str | QuantFormat, **overrides) -> QuantFormat:
    """
    Resolve a preset name or QuantFormat, applying field overrides.

    Raises:
        KeyError: If a preset name is not recognized
    """
    if isinstance(fmt, str):
        if fmt not in PRESETS:
            raise KeyError(
                f"Unknown quantification format: '{fmt}'. "
                f"Available: {list(PRESETS.keys())}"
            )
        fmt = PRESETS[fmt]

    overrides = {k: v for k, v in overrides.items() if v is not None}
    if not overrides:
        return fmt

    params = {
        "name": fmt.name,
        "filename": fmt.filename,
        "id_column": fmt.id_column,
        "count_column": fmt.count_column,
        "abundance_column": fmt.abundance_column,
        "delimiter": fmt.delimiter,
        "id_pattern": fmt.id_pattern,
    }
    params.update(overrides)
    return QuantFormat(**params)


# =============================================================================
# Utility Functions
# =============================================================================

def sniff_delimiter(path: Path, sample_size: int = 8192) -> str:
    """
    Auto-detect delimiter from file content.

    Uses Python's csv.Sniffer with fallback heuristics.

    Args:
        path: Path to data file
        sample_size: Bytes to sample for detection

    Returns:
        Detected delimiter character ('\t', ',', ';' or '|')

    Raises:
        ValueError: If delimiter cannot be determined
    """
    with open(path, 'r', encoding='utf-8', errors='ignore') as f:
        sample = f.read(sample_size)

    try:
        dialect = csv.Sniffer().sniff(sample, delimiters='\t,;|')
        return dialect.delimiter
    except csv.Error:
        pass

    # Fallback: count delimiter occurrences in first line
    first_line = sample.split('\n')[0]
    counts = {
        '\t': first_line.count('\t'),
        ',': first_line.count(','),
        ';': first_line.count(';'),
    }

    if max(counts.values()) == 0:
        raise ValueError(
            f"Could not detect delimiter in {path}. "
            "Please specify it explicitly"
        )

    return max(counts, key=counts.get)
