"""
Sample-level figures: size factors, distances, PCA and top-variable genes.

These answer the exploratory questions asked before any differential test:

    - Are library depths comparable? (size factors centered on 1)
    - Do replicates resemble each other more than other conditions?
      (distance heatmap with leaf-sorted dendrograms)
    - Which covariate drives the dominant variance? (PCA colored by
      genotype, marker by stage)
    - Which genes carry that variance? (top-variable-gene heatmap)
"""

from __future__ import annotations

import logging
from typing import Literal, Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from countscope.core.countmatrix import CountMatrix
from countscope.stats.similarity import ClusterTree, ProjectionResult
from countscope.viz.core import Figure
from countscope.viz.styles import PALETTES, Palette, configure_style, stage_markers

logger = logging.getLogger(__name__)

__all__ = ['SampleVisualizer']


def _levels(values: pd.Series) -> list[str]:
    if isinstance(values.dtype, pd.CategoricalDtype):
        return [str(c) for c in values.cat.categories]
    return [str(v) for v in pd.unique(values.dropna())]


class SampleVisualizer:
    """
    Figures over samples.

    Args:
        palette: Palette name or instance
        style: Target medium passed to `configure_style`
        color_by: Sample metadata column mapped to color (genotype)
        marker_by: Sample metadata column mapped to marker (stage)
    """

    def __init__(
        self,
        palette: str | Palette = "default",
        style: Literal["paper", "presentation", "notebook"] = "paper",
        color_by: Optional[str] = "genotype",
        marker_by: Optional[str] = "cell_cycle",
    ):
        if isinstance(palette, str):
            self.palette = PALETTES.get(palette, PALETTES["default"])
        else:
            self.palette = palette
        self.style = style
        self.color_by = color_by
        self.marker_by = marker_by
        configure_style(style=style, palette=self.palette)

    def _annotation_colors(self, metadata: pd.DataFrame) -> Optional[pd.DataFrame]:
        """Per-sample color strips for clustermap margins."""
        strips = {}
        if self.color_by and self.color_by in metadata.columns:
            values = metadata[self.color_by]
            colors = self.palette.for_levels(_levels(values))
            strips[self.color_by] = values.astype(str).map(colors)
        if self.marker_by and self.marker_by in metadata.columns:
            values = metadata[self.marker_by]
            colors = self.palette.for_stages(_levels(values))
            strips[self.marker_by] = values.astype(str).map(colors)
        if not strips:
            return None
        return pd.DataFrame(strips, index=metadata.index)

    def plot_size_factors(
        self,
        size_factors: pd.Series,
        figsize: tuple[float, float] = (6, 4)
    ) -> Figure:
        """
        Histogram of size factors.

        Expect a mode near 1.0; isolated bars far from 1 flag libraries
        sequenced much deeper or shallower than the rest.
        """
        values = size_factors.to_numpy(dtype=float)
        fig, ax = plt.subplots(figsize=figsize)

        n_bins = max(5, min(30, len(values)))
        ax.hist(values, bins=n_bins, color=self.palette.neutral, edgecolor="white", alpha=0.9)
        ax.axvline(1.0, color="black", linestyle="--", linewidth=1, label="1.0")
        ax.axvline(np.median(values), color=self.palette.highlight, linewidth=2,
                   label=f"Median: {np.median(values):.2f}")

        ax.set_xlabel("Size factor")
        ax.set_ylabel("Samples")
        ax.set_title(f"Size factors ({len(values)} samples)")
        ax.legend(loc="upper right")
        fig.tight_layout()

        return Figure(
            fig=fig,
            title="Size Factors",
            description=(
                f"Median-of-ratios size factors: min {values.min():.2f}, "
                f"median {np.median(values):.2f}, max {values.max():.2f}"
            ),
            metadata={"n_samples": len(values)},
        )

    def plot_sample_distances(
        self,
        distances: pd.DataFrame,
        tree: ClusterTree,
        sample_metadata: Optional[pd.DataFrame] = None,
        figsize: tuple[float, float] = (8, 8)
    ) -> Figure:
        """
        Sample-distance heatmap with the same leaf-sorted dendrogram on
        rows and columns.
        """
        if list(tree.labels) != list(distances.index):
            raise ValueError("Cluster tree leaves must match the distance matrix samples")

        row_colors = None
        if sample_metadata is not None:
            row_colors = self._annotation_colors(sample_metadata.reindex(distances.index))

        grid = sns.clustermap(
            distances,
            row_linkage=tree.linkage,
            col_linkage=tree.linkage,
            row_colors=row_colors,
            col_colors=row_colors,
            cmap=self.palette.sequential,
            figsize=figsize,
            xticklabels=True,
            yticklabels=True,
            cbar_kws={"label": "Euclidean distance"},
        )
        grid.ax_heatmap.set_xlabel("")
        grid.ax_heatmap.set_ylabel("")
        grid.figure.suptitle("Sample distances", y=1.02)

        return Figure(
            fig=grid.figure,
            title="Sample Distances",
            description=(
                f"Euclidean distances between {len(distances)} samples on the "
                f"transformed scale, {tree.method} linkage, leaf-sorted"
            ),
            metadata={"leaf_order": tree.leaf_labels, "method": tree.method},
        )

    def plot_pca(
        self,
        projection: ProjectionResult,
        sample_metadata: pd.DataFrame,
        components: tuple[str, str] = ("PC1", "PC2"),
        figsize: tuple[float, float] = (7, 5.5)
    ) -> Figure:
        """
        PCA scatter: color = genotype, marker = stage, axes labelled with
        percent variance explained.
        """
        x, y = components
        frame = projection.with_metadata(sample_metadata)

        hue = self.color_by if self.color_by in frame.columns else None
        style = self.marker_by if self.marker_by in frame.columns else None

        kwargs = {}
        if hue is not None:
            hue_order = _levels(frame[hue])
            kwargs.update(hue=frame[hue].astype(str), hue_order=hue_order,
                          palette=self.palette.for_levels(hue_order))
        if style is not None:
            style_order = _levels(frame[style])
            kwargs.update(style=frame[style].astype(str), style_order=style_order,
                          markers=stage_markers(style_order))

        fig, ax = plt.subplots(figsize=figsize)
        sns.scatterplot(
            x=frame[x], y=frame[y], ax=ax, s=90, edgecolor="white", linewidth=0.6, **kwargs
        )

        pct = projection.percent_variance
        ax.set_xlabel(f"{x}: {pct[x]:.0f}% variance")
        ax.set_ylabel(f"{y}: {pct[y]:.0f}% variance")
        ax.set_title(f"PCA, top {len(projection.genes):,} variable genes")
        if kwargs:
            ax.legend(loc="center left", bbox_to_anchor=(1.02, 0.5))
        fig.tight_layout()

        return Figure(
            fig=fig,
            title="PCA",
            description=(
                f"{x} ({pct[x]:.1f}%) vs {y} ({pct[y]:.1f}%) over "
                f"{len(projection.genes):,} most variable genes"
            ),
            metadata={"percent_variance": {k: float(v) for k, v in pct.items()}},
        )

    def plot_top_genes(
        self,
        centered: CountMatrix,
        gene_tree: ClusterTree,
        sample_tree: ClusterTree,
        gene_labels: Optional[Sequence[str]] = None,
        figsize: tuple[float, float] = (8, 10)
    ) -> Figure:
        """
        Heatmap of centered expression for the most variable genes, genes
        and samples both ordered by leaf-sorted dendrograms.

        Args:
            centered: Gene-centered transformed values (from cluster_genes)
            gene_tree: Tree over centered.gene_ids
            sample_tree: Tree over centered.sample_ids
            gene_labels: Row labels (e.g. gene names); hidden beyond 60 genes
        """
        if list(gene_tree.labels) != list(centered.gene_ids):
            raise ValueError("Gene tree leaves must match the matrix genes")
        if list(sample_tree.labels) != list(centered.sample_ids):
            raise ValueError("Sample tree leaves must match the matrix samples")

        frame = centered.to_frame()
        if gene_labels is not None:
            frame.index = pd.Index(list(gene_labels))

        limit = float(np.nanmax(np.abs(frame.to_numpy()))) or 1.0
        grid = sns.clustermap(
            frame,
            row_linkage=gene_tree.linkage,
            col_linkage=sample_tree.linkage,
            col_colors=self._annotation_colors(centered.sample_metadata),
            cmap=self.palette.diverging,
            center=0,
            vmin=-limit,
            vmax=limit,
            figsize=figsize,
            xticklabels=True,
            yticklabels=frame.shape[0] <= 60,
            cbar_kws={"label": "Centered expression"},
        )
        grid.ax_heatmap.set_xlabel("")
        grid.ax_heatmap.set_ylabel("")
        grid.figure.suptitle(f"Top {frame.shape[0]} variable genes", y=1.02)

        return Figure(
            fig=grid.figure,
            title="Top Variable Genes",
            description=(
                f"{frame.shape[0]} most variable genes, centered per gene; "
                f"{gene_tree.method} linkage on genes and samples, leaf-sorted"
            ),
            metadata={"n_genes": int(frame.shape[0])},
        )
