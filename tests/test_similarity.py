"""
Tests for sample distances, clustering, leaf sorting and PCA.
"""

import numpy as np
import pandas as pd
import pytest
from scipy.cluster import hierarchy

from countscope.stats import (
    cluster_genes,
    cluster_samples,
    pca_projection,
    sample_distances,
    sort_dendrogram,
    top_variable_genes,
)

from conftest import make_count_matrix


@pytest.fixture
def transformed():
    """Two well separated groups of samples on a log scale."""
    rng = np.random.default_rng(7)
    base = rng.normal(8, 2, size=(40, 1))
    group_a = base + rng.normal(0, 0.3, size=(40, 4))
    group_b = base + rng.normal(0, 0.3, size=(40, 4))
    group_b[:10] += 3.0
    data = np.hstack([group_a, group_b])
    sample_ids = ["A1", "A2", "A3", "A4", "B1", "B2", "B3", "B4"]
    return make_count_matrix(data, sample_ids=sample_ids, kind="transformed")


def permuted(matrix, order):
    return make_count_matrix(
        matrix.data[:, order],
        gene_ids=matrix.gene_ids,
        sample_ids=matrix.sample_ids[order],
        kind=matrix.kind,
    )


class TestSampleDistances:
    """Euclidean distances between samples."""

    def test_symmetric_zero_diagonal(self, transformed):
        distances = sample_distances(transformed)
        assert distances.shape == (8, 8)
        np.testing.assert_allclose(distances.to_numpy(), distances.to_numpy().T)
        np.testing.assert_array_equal(np.diag(distances.to_numpy()), 0.0)
        assert list(distances.index) == list(transformed.sample_ids)

    def test_values(self):
        """Test distances are Euclidean over genes."""
        matrix = make_count_matrix([[0, 3], [0, 4]], kind="transformed")
        distances = sample_distances(matrix)
        assert distances.loc["S0", "S1"] == pytest.approx(5.0)

    def test_too_few_samples(self):
        with pytest.raises(ValueError, match="two samples"):
            sample_distances(make_count_matrix([[1.0], [2.0]], kind="transformed"))

    def test_nan(self):
        with pytest.raises(ValueError, match="NaN"):
            sample_distances(make_count_matrix([[1.0, np.nan], [2.0, 3.0]], kind="transformed"))


class TestClustering:
    """Hierarchical clustering and leaf sorting."""

    def test_groups_recovered(self, transformed):
        """Test the two sample groups form the top-level split."""
        tree = cluster_samples(sample_distances(transformed))
        clusters = tree.clusters(2)
        assert clusters["A1"] == clusters["A4"]
        assert clusters["B1"] == clusters["B4"]
        assert clusters["A1"] != clusters["B1"]

    def test_sort_preserves_membership(self, transformed):
        """Test sorting changes drawing order only."""
        tree = cluster_samples(sample_distances(transformed))
        ordered = sort_dendrogram(tree)
        np.testing.assert_array_equal(ordered.linkage[:, 2:], tree.linkage[:, 2:])
        for k in (2, 3, 4):
            before = tree.clusters(k)
            after = ordered.clusters(k)
            assert pd.crosstab(before, after).astype(bool).sum(axis=1).eq(1).all()

    def test_sort_idempotent(self, transformed):
        tree = sort_dendrogram(cluster_samples(sample_distances(transformed)))
        again = sort_dendrogram(tree)
        np.testing.assert_array_equal(again.linkage, tree.linkage)

    def test_leaf_order_independent_of_input_order(self, transformed):
        """Test shuffled columns give the same sorted leaf labels."""
        reference = sort_dendrogram(cluster_samples(sample_distances(transformed))).leaf_labels
        rng = np.random.default_rng(3)
        for _ in range(5):
            order = rng.permutation(transformed.n_samples)
            tree = sort_dendrogram(cluster_samples(sample_distances(permuted(transformed, order))))
            assert tree.leaf_labels == reference

    def test_tighter_subtree_first(self):
        """Test a tight pair is drawn before a loose pair under the root."""
        matrix = make_count_matrix(
            [[0.0, 10.0, 100.0, 100.5]],
            sample_ids=["loose1", "loose2", "tight1", "tight2"],
            kind="transformed",
        )
        tree = sort_dendrogram(cluster_samples(sample_distances(matrix)))
        assert tree.leaf_labels == ["tight1", "tight2", "loose1", "loose2"]

    def test_ties_broken_by_label(self):
        """Test equidistant leaves are ordered by label."""
        matrix = make_count_matrix([[5.0, 0.0]], sample_ids=["b", "a"], kind="transformed")
        tree = sort_dendrogram(cluster_samples(sample_distances(matrix)))
        assert tree.leaf_labels == ["a", "b"]

    def test_valid_linkage(self, transformed):
        tree = sort_dendrogram(cluster_samples(sample_distances(transformed), method="average"))
        assert hierarchy.is_valid_linkage(tree.linkage)
        assert tree.method == "average"

    def test_non_square(self):
        with pytest.raises(ValueError, match="square"):
            cluster_samples(pd.DataFrame(np.zeros((2, 3))))

    def test_cluster_genes_centered(self, transformed):
        """Test the gene tree is built on centered top-variance genes."""
        tree, subset = cluster_genes(transformed, n_top=15)
        assert subset.n_genes == 15
        assert len(tree.labels) == 15
        np.testing.assert_allclose(subset.data.mean(axis=1), 0.0, atol=1e-10)
        assert set(subset.gene_ids) >= {f"G{i}" for i in range(10)}


class TestTopVariableGenes:
    """Variance ranking."""

    def test_order(self):
        matrix = make_count_matrix([[1, 1, 1], [0, 5, 10], [0, 1, 2], [3, 3, 3]], kind="transformed")
        top = top_variable_genes(matrix, 3)
        assert list(top.gene_ids) == ["G1", "G2", "G0"]

    def test_n_top_larger_than_genes(self):
        matrix = make_count_matrix([[1, 2], [3, 5]], kind="transformed")
        assert top_variable_genes(matrix, 100).n_genes == 2

    def test_invalid(self):
        with pytest.raises(ValueError):
            top_variable_genes(make_count_matrix([[1, 2]], kind="transformed"), 0)


class TestPCA:
    """Principal components of samples."""

    def test_coordinates_and_variance(self, transformed):
        projection = pca_projection(transformed, n_top=20, n_components=2)
        assert list(projection.coordinates.columns) == ["PC1", "PC2"]
        assert list(projection.coordinates.index) == list(transformed.sample_ids)
        assert len(projection.genes) == 20
        pct = projection.percent_variance
        assert pct["PC1"] >= pct["PC2"] > 0
        assert pct.sum() <= 100.0 + 1e-9

    def test_groups_separate_on_pc1(self, transformed):
        """Test the group effect is the leading component."""
        coords = pca_projection(transformed, n_top=40).coordinates["PC1"]
        a = coords[["A1", "A2", "A3", "A4"]]
        b = coords[["B1", "B2", "B3", "B4"]]
        assert (a.max() < b.min()) or (b.max() < a.min())

    def test_all_components_explain_everything(self, transformed):
        projection = pca_projection(transformed, n_top=40, n_components=8)
        assert projection.percent_variance.sum() == pytest.approx(100.0)

    def test_too_many_components(self, transformed):
        with pytest.raises(ValueError, match="n_components"):
            pca_projection(transformed, n_top=40, n_components=9)

    def test_with_metadata(self, transformed):
        meta = pd.DataFrame({"group": list("AAAABBBB")}, index=transformed.sample_ids)
        joined = pca_projection(transformed).with_metadata(meta)
        assert list(joined.columns) == ["PC1", "PC2", "group"]
