"""
I/O module: annotation tables, sample sheet, quantification import, writers.

Key Functions:
    - load_transcript_gene_map / load_gene_name_map: annotation tables
    - load_sample_table / relevel: sample sheet with reference levels
    - import_abundances: per-sample quantification files -> raw CountMatrix
    - load_count_matrix / write_count_matrix: matrix CSV round trip

Examples:
    >>> from countscope.io import load_sample_table, load_transcript_gene_map, import_abundances
    >>>
    >>> samples = load_sample_table("samples.tsv", id_col="run", factors={"genotype": "WT"})
    >>> tx2gene = load_transcript_gene_map("tx2gene.tsv")
    >>> counts = import_abundances(samples, "quant/", tx2gene, fmt="salmon")
"""

from countscope.io.formats import QuantFormat, PRESETS, resolve_format
from countscope.io.loaders import read_delimited, load_count_matrix
from countscope.io.annotations import load_transcript_gene_map, load_gene_name_map
from countscope.io.samples import load_sample_table, relevel, set_levels, apply_factors
from countscope.io.importer import (
    locate_quant_files,
    read_quant_file,
    aggregate_to_genes,
    import_abundances,
)
from countscope.io.writers import write_count_matrix, write_sample_table, write_factors

__all__ = [
    'QuantFormat',
    'PRESETS',
    'resolve_format',
    'read_delimited',
    'load_count_matrix',
    'load_transcript_gene_map',
    'load_gene_name_map',
    'load_sample_table',
    'relevel',
    'set_levels',
    'apply_factors',
    'locate_quant_files',
    'read_quant_file',
    'aggregate_to_genes',
    'import_abundances',
    'write_count_matrix',
    'write_sample_table',
    'write_factors',
]
