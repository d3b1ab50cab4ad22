"""
Per-gene comparison figures from the long-form gene report.

Two views of one gene across genotype and stage:
    - Boxplot with jittered replicate points, grouped by stage x genotype
    - Scatter across stage as an ordinal axis (1, 2, 3, ...) with a lowess
      trend per genotype
"""

from __future__ import annotations

import logging
from typing import Literal

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from statsmodels.nonparametric.smoothers_lowess import lowess

from countscope.viz.core import Figure
from countscope.viz.styles import PALETTES, Palette, configure_style, italicize_gene

logger = logging.getLogger(__name__)

__all__ = ['GeneVisualizer']


class GeneVisualizer:
    """
    Figures for single genes from `GeneReportBuilder.to_long` output.

    Args:
        palette: Palette name or instance
        style: Target medium passed to `configure_style`
        genotype_col: Long-form column mapped to color
        stage_col: Long-form column used as the (ordinal) x axis
        value_label: y-axis label
    """

    def __init__(
        self,
        palette: str | Palette = "default",
        style: Literal["paper", "presentation", "notebook"] = "paper",
        genotype_col: str = "Genotype",
        stage_col: str = "Cell_Cycle",
        value_label: str = "Normalized count",
    ):
        if isinstance(palette, str):
            self.palette = PALETTES.get(palette, PALETTES["default"])
        else:
            self.palette = palette
        self.style = style
        self.genotype_col = genotype_col
        self.stage_col = stage_col
        self.value_label = value_label
        configure_style(style=style, palette=self.palette)

    def _gene_frame(self, long: pd.DataFrame, gene: str) -> pd.DataFrame:
        frame = long[long["gene_id"] == gene]
        if frame.empty:
            by_name = long[long["gene_name"] == gene]
            if by_name.empty:
                raise KeyError(f"Gene '{gene}' not in the report")
            # a name shared by several IDs plots the first
            frame = by_name[by_name["gene_id"] == by_name["gene_id"].iloc[0]]
        for col in (self.genotype_col, self.stage_col):
            if col not in frame.columns:
                raise KeyError(f"Column '{col}' not in the report: {list(frame.columns)}")
        return frame

    def _title(self, frame: pd.DataFrame) -> str:
        gene_id = str(frame["gene_id"].iloc[0])
        name = str(frame["gene_name"].iloc[0])
        if name == gene_id:
            return gene_id
        return f"{italicize_gene(name)} ({gene_id})"

    def plot_gene_boxplot(
        self,
        long: pd.DataFrame,
        gene: str,
        figsize: tuple[float, float] = (6, 4.5)
    ) -> Figure:
        """Boxplot plus jittered points by stage, split by genotype."""
        frame = self._gene_frame(long, gene)
        genotypes = [str(c) for c in frame[self.genotype_col].cat.categories]
        stages = [str(c) for c in frame[self.stage_col].cat.categories]
        colors = self.palette.for_levels(genotypes)

        plot_data = frame.assign(**{
            self.genotype_col: frame[self.genotype_col].astype(str),
            self.stage_col: frame[self.stage_col].astype(str),
        })

        fig, ax = plt.subplots(figsize=figsize)
        sns.boxplot(
            data=plot_data, x=self.stage_col, y="count",
            hue=self.genotype_col, order=stages, hue_order=genotypes,
            palette=colors, showfliers=False, boxprops={"alpha": 0.4}, ax=ax,
        )
        sns.stripplot(
            data=plot_data, x=self.stage_col, y="count",
            hue=self.genotype_col, order=stages, hue_order=genotypes,
            palette=colors, dodge=True, jitter=0.15, size=5,
            edgecolor="white", linewidth=0.5, legend=False, ax=ax,
        )

        ax.set_xlabel(self.stage_col.replace("_", " "))
        ax.set_ylabel(self.value_label)
        ax.set_title(self._title(frame))
        ax.legend(title=self.genotype_col, loc="upper left", bbox_to_anchor=(1.02, 1.0))
        fig.tight_layout()

        return Figure(
            fig=fig,
            title=f"{frame['gene_name'].iloc[0]} by stage and genotype",
            description=f"{len(frame)} samples, boxes per {self.stage_col} x {self.genotype_col}",
            metadata={"gene_id": str(frame["gene_id"].iloc[0]), "kind": "boxplot"},
        )

    def plot_gene_trend(
        self,
        long: pd.DataFrame,
        gene: str,
        frac: float = 1.0,
        jitter: float = 0.08,
        seed: int = 0,
        figsize: tuple[float, float] = (6, 4.5)
    ) -> Figure:
        """
        Scatter across stages with a lowess trend per genotype.

        Stages are placed at 1, 2, 3, ... in category order. `frac` is the
        lowess span; with only a handful of stages the full span keeps
        every local fit supported by at least two stages.
        """
        frame = self._gene_frame(long, gene)
        genotypes = [str(c) for c in frame[self.genotype_col].cat.categories]
        stages = [str(c) for c in frame[self.stage_col].cat.categories]
        colors = self.palette.for_levels(genotypes)
        rng = np.random.default_rng(seed)

        x_all = frame[self.stage_col].cat.codes.to_numpy() + 1.0
        y_all = frame["count"].to_numpy(dtype=float)
        genotype_values = frame[self.genotype_col].astype(str).to_numpy()

        fig, ax = plt.subplots(figsize=figsize)
        for genotype in genotypes:
            mask = genotype_values == genotype
            if not mask.any():
                continue
            x, y = x_all[mask], y_all[mask]
            ax.scatter(
                x + rng.uniform(-jitter, jitter, size=len(x)), y,
                color=colors[genotype], s=30, alpha=0.8, edgecolors="white",
                linewidths=0.5, label=genotype,
            )
            if len(np.unique(x)) >= 2:
                fitted = lowess(y, x, frac=frac, return_sorted=True)
                ax.plot(fitted[:, 0], fitted[:, 1], color=colors[genotype], linewidth=2)
            else:
                logger.debug(f"No trend for {genotype}: fewer than two stages observed")

        ax.set_xticks(np.arange(1, len(stages) + 1))
        ax.set_xticklabels(stages)
        ax.set_xlabel(self.stage_col.replace("_", " "))
        ax.set_ylabel(self.value_label)
        ax.set_title(self._title(frame))
        ax.legend(title=self.genotype_col, loc="upper left", bbox_to_anchor=(1.02, 1.0))
        fig.tight_layout()

        return Figure(
            fig=fig,
            title=f"{frame['gene_name'].iloc[0]} trend across stages",
            description=f"Lowess (frac={frac}) per {self.genotype_col} across ordinal {self.stage_col}",
            metadata={"gene_id": str(frame["gene_id"].iloc[0]), "kind": "trend"},
        )
