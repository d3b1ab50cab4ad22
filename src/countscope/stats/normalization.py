"""
Normalization and variance stabilization for RNA-seq counts.

Implements the DESeq2-style preprocessing used before distance, clustering
and PCA:
- Median-of-ratios size factors: one scaling factor per sample correcting
  for sequencing depth (normalized = raw / factor)
- Negative-binomial dispersion fit with shrinkage toward a mean-dispersion
  trend, under a design formula over the sample covariates
- Variance-stabilizing transform (VST): log2-like scale on which the
  variance no longer depends on the mean, so low-count genes do not
  dominate sample distances

The numerics (size factors, dispersion shrinkage, VST) are delegated to
pydeseq2. The "log1p" method is a simplified approximation,
log2(1 + size-factor-normalized counts), with no dispersion model.

The fundamental assumption underlying median-of-ratios normalization is that
most genes do not change between conditions, so the typical ratio of a
sample to the geometric-mean pseudo-reference reflects depth, not biology.
A histogram of size factors should show a mode near 1.0.

References:
    - Anders & Huber (2010) Genome Biology 11:R106 (median-of-ratios)
    - Love, Huber & Anders (2014) Genome Biology 15:550 (DESeq2)
    - Muzellec et al. (2023) Bioinformatics 39(9):btad547 (PyDESeq2)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

import numpy as np
import pandas as pd
from pydeseq2.dds import DeseqDataSet
from pydeseq2.default_inference import DefaultInference
from pydeseq2.preprocessing import deseq2_norm

from countscope.core.countmatrix import CountMatrix
from countscope.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = [
    'NormalizationMethod',
    'NormalizationResult',
    'median_of_ratios_size_factors',
    'normalize_counts',
    'summarize_size_factors',
    'build_design',
    'design_variables',
    'VarianceStabilizer',
]


class NormalizationMethod(Enum):
    """Available variance-stabilization methods."""

    VST = "vst"      # pydeseq2 variance-stabilizing transform
    LOG1P = "log1p"  # log2(1 + normalized counts), no dispersion model


@dataclass(frozen=True)
class NormalizationResult:
    """Result of normalization and variance stabilization.

    Attributes:
        transformed: Variance-stabilized matrix (kind="transformed")
        normalized: Size-factor normalized counts (kind="normalized")
        size_factors: One positive factor per sample
        method: Method used ("vst" or "log1p")
        design: Design formula used for the dispersion fit (None for log1p)
        dispersions: Shrunken per-gene dispersions (vst only)
        diagnostics: Size-factor summary and fit settings
    """

    transformed: CountMatrix
    normalized: CountMatrix
    size_factors: pd.Series
    method: str
    design: str | None = None
    dispersions: pd.Series | None = None
    diagnostics: dict = field(default_factory=dict)


def _check_raw_counts(matrix: CountMatrix) -> None:
    if matrix.kind != "raw":
        raise ValueError(f"Expected a raw count matrix, got kind={matrix.kind!r}")
    if matrix.data.size == 0:
        raise ValueError("Cannot normalize an empty matrix")
    if np.isnan(matrix.data).any():
        raise ValueError("Count matrix contains NaN values")


def median_of_ratios_size_factors(matrix: CountMatrix) -> pd.Series:
    """
    DESeq2 median-of-ratios size factors.

    Each sample's factor is the median, over genes expressed in every
    sample, of its count divided by the gene's geometric mean across
    samples.

    Args:
        matrix: Raw counts (genes x samples)

    Returns:
        Series sample ID -> size factor

    Raises:
        ValueError: If no gene has non-zero counts in every sample
    """
    _check_raw_counts(matrix)

    if not (matrix.data > 0).all(axis=1).any():
        raise ValueError(
            "No gene has non-zero counts in every sample; "
            "median-of-ratios size factors are undefined"
        )

    _, size_factors = deseq2_norm(np.asarray(matrix.data.T, dtype=float))
    return pd.Series(
        np.asarray(size_factors, dtype=float).ravel(),
        index=matrix.sample_ids,
        name="size_factor",
    )


def normalize_counts(matrix: CountMatrix, size_factors: pd.Series) -> CountMatrix:
    """
    Divide each sample's counts by its size factor.

    Raises:
        ValueError: If a sample has no factor or a factor is not positive
    """
    factors = size_factors.reindex(matrix.sample_ids)
    if factors.isna().any():
        missing = list(factors.index[factors.isna()])
        raise ValueError(f"No size factor for samples: {missing}")
    if (factors <= 0).any():
        raise ValueError("Size factors must be positive")

    normalized = matrix.data / factors.to_numpy()[np.newaxis, :]
    return matrix.with_data(normalized, kind="normalized")


def summarize_size_factors(size_factors: pd.Series) -> dict:
    """
    Summary statistics for the size-factor sanity check.

    Factors should center near 1.0; a far-off median points at a depth
    outlier or a failed library. Logged, never asserted.
    """
    values = size_factors.to_numpy(dtype=float)
    summary = {
        "min": float(values.min()),
        "median": float(np.median(values)),
        "max": float(values.max()),
        "geometric_mean": float(np.exp(np.mean(np.log(values)))),
    }
    if not 0.5 <= summary["median"] <= 2.0:
        logger.warning(
            f"Median size factor {summary['median']:.2f} is far from 1.0; "
            "check library depths"
        )
    return summary


def build_design(factors: Iterable[str], interaction: bool = True) -> str:
    """
    Design formula over sample covariates.

    Examples:
        >>> build_design(["genotype", "cell_cycle"])
        '~genotype + cell_cycle + genotype:cell_cycle'
        >>> build_design(["genotype"], interaction=False)
        '~genotype'
    """
    factors = list(factors)
    if not factors:
        return "~1"
    terms = list(factors)
    if interaction and len(factors) > 1:
        terms.append(":".join(factors))
    return "~" + " + ".join(terms)


_FORMULA_TOKEN = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")


def design_variables(design: str) -> list[str]:
    """Covariate names referenced by a formula like '~a + b + a:b'."""
    names: list[str] = []
    for token in _FORMULA_TOKEN.findall(design):
        if token not in names:
            names.append(token)
    return names


def _dds_annotation(dds: DeseqDataSet, key: str, axis: str) -> np.ndarray | None:
    # pydeseq2 keeps per-sample/per-gene fits in obs/var or obsm/varm depending on version
    frame = dds.obs if axis == "obs" else dds.var
    mapping = dds.obsm if axis == "obs" else dds.varm
    if key in frame.columns:
        return np.asarray(frame[key], dtype=float)
    if key in mapping:
        return np.asarray(mapping[key], dtype=float).ravel()
    return None


class VarianceStabilizer(Transform):
    """
    Size factors, dispersion fit and variance-stabilized matrix.

    Params:
        design: Formula over sample covariates, e.g.
            "~genotype + cell_cycle + genotype:cell_cycle". Categorical
            level order (reference first) is respected.
        method: "vst" (pydeseq2) or "log1p" (simplified approximation)
        blind: If True, the VST ignores the design (intercept-only fit), as
            recommended for exploratory QC. The dispersion model is always
            fit with the full design.
        fit_type: Dispersion trend, "parametric" or "mean"

    Examples:
        >>> stabilizer = VarianceStabilizer(design="~genotype + cell_cycle + genotype:cell_cycle")
        >>> result = stabilizer.run(filtered_counts)
        >>> result.size_factors.median()
        1.01...
        >>> transformed = result.transformed
    """

    def __init__(
        self,
        design: str = "~genotype + cell_cycle + genotype:cell_cycle",
        method: str | NormalizationMethod = NormalizationMethod.VST,
        blind: bool = True,
        fit_type: str = "parametric",
    ):
        method = NormalizationMethod(method)
        if fit_type not in ("parametric", "mean"):
            raise ValueError(f"fit_type must be 'parametric' or 'mean', got {fit_type!r}")

        super().__init__(
            name="VarianceStabilizer",
            params={
                "design": design,
                "method": method.value,
                "blind": blind,
                "fit_type": fit_type,
            }
        )
        self.design = design
        self.method = method
        self.blind = blind
        self.fit_type = fit_type

    def validate(self, matrix: CountMatrix) -> list[str]:
        errors = super().validate(matrix)
        if matrix.kind != "raw":
            errors.append(f"Expected raw counts, got kind={matrix.kind!r}")
        if np.isnan(matrix.data).any():
            errors.append("Matrix contains NaN values")
        if self.method is NormalizationMethod.VST:
            missing = [
                v for v in design_variables(self.design)
                if v not in matrix.sample_metadata.columns
            ]
            if missing:
                errors.append(
                    f"Design variables {missing} not in sample metadata "
                    f"{list(matrix.sample_metadata.columns)}"
                )
        if matrix.n_samples < 2:
            errors.append("Need at least two samples")
        return errors

    def apply(self, matrix: CountMatrix) -> CountMatrix:
        """Variance-stabilized matrix (see `run` for every artifact)."""
        return self.run(matrix).transformed

    def run(self, matrix: CountMatrix) -> NormalizationResult:
        """
        Normalize and transform a filtered raw count matrix.

        Raises:
            ValueError: If preconditions fail (see `validate`)
        """
        errors = self.validate(matrix)
        if errors:
            raise ValueError("Cannot normalize: " + "; ".join(errors))

        logger.info(
            f"Normalizing {matrix.n_genes:,} genes x {matrix.n_samples} samples "
            f"(method={self.method.value}, design={self.design!r}, blind={self.blind})"
        )

        if self.method is NormalizationMethod.VST:
            result = self._run_vst(matrix)
        else:
            result = self._run_log1p(matrix)

        summary = result.diagnostics["size_factors"]
        logger.info(
            f"Size factors: min={summary['min']:.3f}, median={summary['median']:.3f}, "
            f"max={summary['max']:.3f}"
        )
        return result

    def _run_log1p(self, matrix: CountMatrix) -> NormalizationResult:
        size_factors = median_of_ratios_size_factors(matrix)
        normalized = normalize_counts(matrix, size_factors)
        transformed = normalized.with_data(np.log2(normalized.data + 1.0), kind="transformed")

        return NormalizationResult(
            transformed=transformed,
            normalized=normalized,
            size_factors=size_factors,
            method=self.method.value,
            design=None,
            diagnostics={"size_factors": summarize_size_factors(size_factors)},
        )

    def _run_vst(self, matrix: CountMatrix) -> NormalizationResult:
        # The model sees integer counts, so normalized counts use the same integers
        rounded = matrix.with_data(np.rint(matrix.data))
        counts = pd.DataFrame(
            rounded.data.T.astype(int),
            index=matrix.sample_ids.astype(str),
            columns=matrix.gene_ids.astype(str),
        )
        metadata = matrix.sample_metadata[design_variables(self.design)].copy()
        metadata.index = counts.index
        for column in metadata.columns:
            if isinstance(metadata[column].dtype, pd.CategoricalDtype):
                metadata[column] = metadata[column].cat.remove_unused_categories()

        dds = DeseqDataSet(
            counts=counts,
            metadata=metadata,
            design=self.design,
            fit_type=self.fit_type,
            refit_cooks=True,
            inference=DefaultInference(n_cpus=1),
            quiet=True,
        )
        dds.deseq2()

        size_factors = pd.Series(
            _dds_annotation(dds, "size_factors", axis="obs"),
            index=matrix.sample_ids,
            name="size_factor",
        )
        raw_dispersions = _dds_annotation(dds, "dispersions", axis="var")
        dispersions = None
        if raw_dispersions is not None:
            dispersions = pd.Series(raw_dispersions, index=matrix.gene_ids, name="dispersion")

        dds.vst(use_design=not self.blind)
        vst_counts = np.asarray(dds.layers["vst_counts"], dtype=float).T

        normalized = normalize_counts(rounded, size_factors)
        transformed = matrix.with_data(vst_counts, kind="transformed")

        return NormalizationResult(
            transformed=transformed,
            normalized=normalized,
            size_factors=size_factors,
            method=self.method.value,
            design=self.design,
            dispersions=dispersions,
            diagnostics={
                "size_factors": summarize_size_factors(size_factors),
                "fit_type": self.fit_type,
                "blind": self.blind,
            },
        )
