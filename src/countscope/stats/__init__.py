"""
Statistical stages: normalization, variance stabilization, similarity.

Components:
    VarianceStabilizer: size factors, dispersion fit and VST (pydeseq2)
    sample_distances / cluster_samples / sort_dendrogram: sample similarity
    pca_projection: principal components over the most variable genes
"""

from countscope.stats.normalization import (
    NormalizationMethod,
    NormalizationResult,
    VarianceStabilizer,
    median_of_ratios_size_factors,
    normalize_counts,
    summarize_size_factors,
    build_design,
    design_variables,
)
from countscope.stats.similarity import (
    ClusterTree,
    ProjectionResult,
    sample_distances,
    top_variable_genes,
    cluster_samples,
    cluster_genes,
    sort_dendrogram,
    pca_projection,
)

__all__ = [
    'NormalizationMethod',
    'NormalizationResult',
    'VarianceStabilizer',
    'median_of_ratios_size_factors',
    'normalize_counts',
    'summarize_size_factors',
    'build_design',
    'design_variables',
    'ClusterTree',
    'ProjectionResult',
    'sample_distances',
    'top_variable_genes',
    'cluster_samples',
    'cluster_genes',
    'sort_dendrogram',
    'pca_projection',
]
