"""
Gene-level report: per-gene counts in long form, keyed by sample covariates.

Biological Context:
    After the global views (distances, PCA), one usually checks a handful of
    genes of interest, e.g. the knocked-down gene itself, across genotype and
    developmental stage. Sample identifiers follow a naming convention
    (`WT_cc12_1` = genotype, cell-cycle stage, replicate), so the covariates
    for plotting are decomposed from the identifier rather than joined from
    the sample sheet.

Engineering Design:
    - Genes are requested by ID or by name; names resolve through the gene
      name map and may match several IDs
    - Unknown genes fail with KeyError listing every unknown request
    - Genes known to the annotation but absent from the matrix (removed by
      filtering) report zero counts with a warning
    - Decomposed covariates are categoricals with reference levels first
    - Missing values become 0

Examples:
    >>> from countscope.report.genes import GeneReportBuilder
    >>> builder = GeneReportBuilder(
    ...     gene_names,
    ...     reference_levels={"Genotype": "WT", "Cell_Cycle": "cc12"},
    ... )
    >>> long = builder.to_long(normalized, ["zld"])
    >>> long.columns.tolist()
    ['gene_id', 'gene_name', 'sample', 'count', 'Genotype', 'Cell_Cycle', 'Replicate']
"""

from __future__ import annotations

import logging
import warnings
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from countscope.core.countmatrix import CountMatrix
from countscope.io.samples import FactorSpec, apply_factors

logger = logging.getLogger(__name__)

__all__ = ['GeneReportBuilder', 'DEFAULT_ID_FIELDS']

DEFAULT_ID_FIELDS = ("Genotype", "Cell_Cycle", "Replicate")


class GeneReportBuilder:
    """
    Extract and reshape counts for genes of interest.

    Args:
        gene_names: Series gene ID -> gene name (optional; without it genes
            must be requested by ID and names default to IDs)
        id_fields: Names of the covariates encoded in sample IDs, in order
        delimiter: Separator between fields in sample IDs
        reference_levels: field -> reference level (str) or full level
            order (list). Fields not listed keep first-seen order.
    """

    def __init__(
        self,
        gene_names: pd.Series | None = None,
        id_fields: Sequence[str] = DEFAULT_ID_FIELDS,
        delimiter: str = "_",
        reference_levels: Mapping[str, FactorSpec] | None = None,
    ):
        id_fields = tuple(id_fields)
        if not id_fields:
            raise ValueError("id_fields must name at least one field")
        if not delimiter:
            raise ValueError("delimiter must be a non-empty string")

        reference_levels = dict(reference_levels or {})
        unknown = [f for f in reference_levels if f not in id_fields]
        if unknown:
            raise ValueError(
                f"Reference levels given for {unknown}, which are not id fields {list(id_fields)}"
            )

        self.gene_names = gene_names if gene_names is not None else pd.Series(dtype=object)
        self.id_fields = id_fields
        self.delimiter = delimiter
        self.reference_levels = reference_levels

    def resolve_genes(self, matrix: CountMatrix, genes: Sequence[str]) -> list[str]:
        """
        Map requested genes (IDs or names) to gene IDs, in request order.

        Raises:
            KeyError: If any request matches neither a gene ID nor a name
        """
        known_ids = set(matrix.gene_ids) | set(self.gene_names.index)
        resolved: list[str] = []
        unknown: list[str] = []

        for gene in genes:
            if gene in known_ids:
                matches = [gene]
            else:
                matches = list(self.gene_names.index[self.gene_names == gene])
            if not matches:
                unknown.append(gene)
                continue
            if len(matches) > 1:
                logger.info(f"Gene name '{gene}' matches {len(matches)} IDs: {matches}")
            resolved.extend(m for m in matches if m not in resolved)

        if unknown:
            raise KeyError(f"Unknown genes (neither an ID nor a name): {unknown}")
        return resolved

    def extract(self, matrix: CountMatrix, genes: Sequence[str]) -> CountMatrix:
        """
        Submatrix for the requested genes, rows in request order.

        Genes absent from the matrix get all-zero rows.
        """
        gene_ids = self.resolve_genes(matrix, genes)

        absent = [g for g in gene_ids if g not in matrix.gene_ids]
        if absent:
            warnings.warn(
                f"Genes {absent} are not in the matrix (filtered out?); reporting zero counts",
                UserWarning
            )

        frame = matrix.to_frame().reindex(pd.Index(gene_ids, name=matrix.gene_ids.name))
        frame = frame.fillna(0.0)
        return CountMatrix(
            data=frame.to_numpy(dtype=float),
            gene_ids=pd.Index(frame.index),
            sample_ids=matrix.sample_ids,
            sample_metadata=matrix.sample_metadata,
            kind=matrix.kind,
        )

    def decompose_ids(self, sample_ids: Sequence[str]) -> pd.DataFrame:
        """
        Split sample IDs into the configured covariate fields.

        Returns:
            DataFrame indexed by sample ID with one categorical column per
            field, reference levels first

        Raises:
            ValueError: If an ID has fewer fields than configured
            MissingReferenceLevel: If a reference level is not observed
        """
        ids = pd.Index([str(s) for s in sample_ids], name="sample")
        n_fields = len(self.id_fields)
        parts = [s.split(self.delimiter, n_fields - 1) for s in ids]

        malformed = [s for s, p in zip(ids, parts) if len(p) != n_fields]
        if malformed:
            raise ValueError(
                f"Sample IDs {malformed} do not split into {n_fields} fields "
                f"{list(self.id_fields)} on {self.delimiter!r}"
            )

        covariates = pd.DataFrame(parts, index=ids, columns=list(self.id_fields))
        for field_name in self.id_fields:
            if field_name not in self.reference_levels:
                covariates[field_name] = pd.Categorical(
                    covariates[field_name],
                    categories=list(pd.unique(covariates[field_name])),
                )
        return apply_factors(covariates, self.reference_levels)

    def to_long(self, matrix: CountMatrix, genes: Sequence[str]) -> pd.DataFrame:
        """
        One row per (gene, sample) with decomposed covariates.

        Columns: gene_id, gene_name, sample, count, then one per id field.
        Rows are gene-major in request order, samples in matrix order.
        """
        subset = self.extract(matrix, genes)
        n_genes, n_samples = subset.shape

        names = [str(self.gene_names.get(g, g)) for g in subset.gene_ids]
        long = pd.DataFrame({
            "gene_id": np.repeat(np.asarray(subset.gene_ids, dtype=object), n_samples),
            "gene_name": np.repeat(np.asarray(names, dtype=object), n_samples),
            "sample": np.tile(np.asarray(subset.sample_ids.astype(str), dtype=object), n_genes),
            "count": subset.data.ravel(),
        })
        long["count"] = long["count"].fillna(0.0)

        covariates = self.decompose_ids(subset.sample_ids)
        for field_name in self.id_fields:
            long[field_name] = pd.Categorical(
                covariates.loc[long["sample"], field_name].to_numpy(),
                categories=covariates[field_name].cat.categories,
            )

        logger.info(f"Gene report: {n_genes} genes x {n_samples} samples -> {len(long)} rows")
        return long
