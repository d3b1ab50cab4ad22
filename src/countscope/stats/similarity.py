"""
Sample similarity: distances, hierarchical clustering and PCA.

Operates on the variance-stabilized matrix, where Euclidean distance between
sample columns is meaningful because low-count noise has been damped.

Clustering trees are post-processed with a leaf sort: at every merge, the
tighter subtree (smaller average merge height) is drawn first, with ties
broken by subtree size and then by the smallest leaf label. Cluster
membership is unchanged; only drawing order is fixed, so heatmaps from
repeated runs line up.

Examples:
    >>> from countscope.stats.similarity import (
    ...     sample_distances, cluster_samples, sort_dendrogram, pca_projection,
    ... )
    >>> distances = sample_distances(vst)
    >>> tree = sort_dendrogram(cluster_samples(distances))
    >>> tree.leaf_labels
    ['WT_cc12_1', 'WT_cc12_2', ...]
    >>> pca = pca_projection(vst, n_top=500)
    >>> pca.percent_variance
    PC1    61.2
    PC2    17.9
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

import numpy as np
import pandas as pd
from scipy.cluster import hierarchy
from scipy.spatial.distance import pdist, squareform
from sklearn.decomposition import PCA

from countscope.core.countmatrix import CountMatrix

logger = logging.getLogger(__name__)

__all__ = [
    'ClusterTree',
    'ProjectionResult',
    'sample_distances',
    'top_variable_genes',
    'cluster_samples',
    'cluster_genes',
    'sort_dendrogram',
    'pca_projection',
]

LinkageMethod = Literal["complete", "average", "single", "ward"]


@dataclass(frozen=True)
class ClusterTree:
    """
    Binary merge tree over labelled leaves.

    Attributes:
        linkage: scipy linkage matrix (n-1 x 4). Row i merges Z[i,0] (drawn
            first) and Z[i,1] into node n+i at height Z[i,2].
        labels: Leaf labels, position k is leaf k
        method: Linkage method used
    """

    linkage: np.ndarray
    labels: pd.Index
    method: str

    @property
    def leaf_order(self) -> np.ndarray:
        """Leaf indices in drawing order."""
        if len(self.labels) == 1:
            return np.array([0])
        return hierarchy.leaves_list(self.linkage)

    @property
    def leaf_labels(self) -> list[str]:
        """Leaf labels in drawing order."""
        return [str(self.labels[i]) for i in self.leaf_order]

    def clusters(self, n_clusters: int) -> pd.Series:
        """Flat cluster assignment when the tree is cut into n_clusters groups."""
        assignment = hierarchy.fcluster(self.linkage, t=n_clusters, criterion="maxclust")
        return pd.Series(assignment, index=self.labels, name="cluster")


@dataclass(frozen=True)
class ProjectionResult:
    """
    Principal-component projection of samples.

    Attributes:
        coordinates: samples x components (columns "PC1", "PC2", ...)
        percent_variance: Percent of the selected genes' total variance
            explained by each returned component
        genes: Genes the projection was computed on
    """

    coordinates: pd.DataFrame
    percent_variance: pd.Series
    genes: pd.Index

    def with_metadata(self, sample_metadata: pd.DataFrame) -> pd.DataFrame:
        """Coordinates joined with sample covariates (for plotting)."""
        return self.coordinates.join(sample_metadata, how="left")


def sample_distances(matrix: CountMatrix) -> pd.DataFrame:
    """
    Pairwise Euclidean distances between sample columns.

    Returns:
        Symmetric samples x samples DataFrame with a zero diagonal

    Raises:
        ValueError: If the matrix has NaN values or fewer than two samples
    """
    if matrix.n_samples < 2:
        raise ValueError("Need at least two samples for a distance matrix")
    if np.isnan(matrix.data).any():
        raise ValueError("Matrix contains NaN values")

    condensed = pdist(matrix.data.T, metric="euclidean")
    square = squareform(condensed)
    return pd.DataFrame(square, index=matrix.sample_ids, columns=matrix.sample_ids)


def top_variable_genes(matrix: CountMatrix, n_top: int) -> CountMatrix:
    """
    The n_top genes with the highest variance across samples.

    Rows are returned in decreasing variance; ties keep input order.
    """
    if n_top < 1:
        raise ValueError(f"n_top must be >= 1, got {n_top}")

    variances = np.var(matrix.data, axis=1, ddof=1) if matrix.n_samples > 1 else np.zeros(matrix.n_genes)
    order = np.argsort(-variances, kind="stable")[:min(n_top, matrix.n_genes)]

    return CountMatrix(
        data=matrix.data[order, :],
        gene_ids=matrix.gene_ids[order],
        sample_ids=matrix.sample_ids,
        sample_metadata=matrix.sample_metadata,
        kind=matrix.kind,
    )


def cluster_samples(distances: pd.DataFrame, method: LinkageMethod = "complete") -> ClusterTree:
    """
    Hierarchically cluster samples from a distance matrix.

    Args:
        distances: Symmetric samples x samples distances
        method: scipy linkage method ("ward" assumes Euclidean distances)
    """
    if distances.shape[0] != distances.shape[1]:
        raise ValueError(f"Distance matrix must be square, got {distances.shape}")
    if not distances.index.equals(distances.columns):
        raise ValueError("Distance matrix rows and columns must list the same samples")
    if distances.shape[0] < 2:
        raise ValueError("Need at least two samples to cluster")

    condensed = squareform(distances.to_numpy(), checks=False)
    linkage = hierarchy.linkage(condensed, method=method)
    return ClusterTree(linkage=linkage, labels=pd.Index(distances.index), method=method)


def cluster_genes(
    matrix: CountMatrix,
    n_top: int = 500,
    method: LinkageMethod = "complete",
    center: bool = True,
) -> tuple[ClusterTree, CountMatrix]:
    """
    Cluster the most variable genes by their profiles across samples.

    Args:
        matrix: Transformed matrix
        n_top: Number of most variable genes to cluster
        method: scipy linkage method
        center: Subtract each gene's mean before clustering (heatmap
            convention, so genes group by pattern rather than level)

    Returns:
        (tree over genes, the gene subset it was built on, centered if
        requested)
    """
    subset = top_variable_genes(matrix, n_top)
    if subset.n_genes < 2:
        raise ValueError("Need at least two genes to cluster")

    data = subset.data
    if center:
        data = data - data.mean(axis=1, keepdims=True)
        subset = subset.with_data(data)

    linkage = hierarchy.linkage(data, method=method, metric="euclidean")
    return ClusterTree(linkage=linkage, labels=subset.gene_ids, method=method), subset


def sort_dendrogram(tree: ClusterTree) -> ClusterTree:
    """
    Reorder merges so every subtree is drawn in a canonical order.

    At each merge the child with the smaller average merge height comes
    first; ties go to the smaller subtree, then to the subtree with the
    lexicographically smaller minimum leaf label. Every key depends only on
    the subtree's contents, so sorting is deterministic and idempotent.

    Returns:
        New ClusterTree with the same merges and heights
    """
    linkage = np.array(tree.linkage, dtype=float, copy=True)
    n_leaves = len(tree.labels)

    # Per node: (sum of merge heights, number of merges, size, min label)
    height_sum = {i: 0.0 for i in range(n_leaves)}
    n_merges = {i: 0 for i in range(n_leaves)}
    size = {i: 1 for i in range(n_leaves)}
    min_label = {i: str(tree.labels[i]) for i in range(n_leaves)}

    def key(node: int) -> tuple[float, int, str]:
        avg_height = height_sum[node] / n_merges[node] if n_merges[node] else 0.0
        return (avg_height, size[node], min_label[node])

    for i, row in enumerate(linkage):
        left, right, height = int(row[0]), int(row[1]), float(row[2])
        if key(right) < key(left):
            linkage[i, 0], linkage[i, 1] = right, left

        node = n_leaves + i
        height_sum[node] = height_sum[left] + height_sum[right] + height
        n_merges[node] = n_merges[left] + n_merges[right] + 1
        size[node] = size[left] + size[right]
        min_label[node] = min(min_label[left], min_label[right])

    return ClusterTree(linkage=linkage, labels=tree.labels, method=tree.method)


def pca_projection(
    matrix: CountMatrix,
    n_top: int = 3000,
    n_components: int = 2,
) -> ProjectionResult:
    """
    PCA of samples over the most variable genes.

    Genes are centered, not scaled. Percent variance is each component's
    share of the total variance of the selected genes.

    Args:
        matrix: Transformed matrix
        n_top: Number of most variable genes used
        n_components: Number of components returned

    Raises:
        ValueError: If n_components exceeds min(n_samples, n_genes used)
    """
    subset = top_variable_genes(matrix, n_top)
    max_components = min(subset.n_samples, subset.n_genes)
    if n_components > max_components:
        raise ValueError(
            f"n_components={n_components} exceeds min(n_samples, n_genes)={max_components}"
        )

    pca = PCA(n_components=max_components, svd_solver="full")
    scores = pca.fit_transform(subset.data.T)

    columns = [f"PC{k + 1}" for k in range(n_components)]
    coordinates = pd.DataFrame(scores[:, :n_components], index=matrix.sample_ids, columns=columns)
    percent_variance = pd.Series(
        100.0 * pca.explained_variance_ratio_[:n_components],
        index=columns,
        name="percent_variance",
    )

    logger.info(
        f"PCA on top {subset.n_genes:,} variable genes: "
        + ", ".join(f"{c} {v:.1f}%" for c, v in percent_variance.items())
    )
    return ProjectionResult(coordinates=coordinates, percent_variance=percent_variance, genes=subset.gene_ids)
