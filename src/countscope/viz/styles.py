"""
Consistent visual styles for count-analysis figures.

Domain Conventions
------------------
- Wild type = Gray-blue (#334155), knockdown = Red (#dc2626)
- Developmental stages = sequential greens, earliest stage lightest
- Sample distances = sequential "mako_r" (dark = similar)
- Centered expression = RdBu_r diverging colormap
- All colorblind-safe palettes
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Sequence
import matplotlib.pyplot as plt
import seaborn as sns

# Marker per stage, in stage order
STAGE_MARKERS = ("o", "s", "^", "D", "v", "P", "X")


@dataclass(frozen=True)
class Palette:
    """
    Color palette for count-analysis figures.

    Attributes
    ----------
    reference : str
        Color for the reference genotype (wild type)
    perturbed : str
        Color for perturbed genotypes (knockdown)
    stages : str
        seaborn palette name for developmental stages
    highlight : str
        Color for reference lines and trends
    neutral : str
        Color for histograms and unlabelled points
    diverging : str
        Colormap for centered expression
    sequential : str
        Colormap for distances
    """
    reference: str = "#334155"    # Slate-700
    perturbed: str = "#dc2626"    # Red-600
    stages: str = "Greens"
    highlight: str = "#059669"    # Emerald-600
    neutral: str = "#6b7280"      # Gray-500
    diverging: str = "RdBu_r"
    sequential: str = "mako_r"

    def for_levels(self, levels: Sequence[str]) -> dict[str, str]:
        """
        Genotype level -> color. The first level is the reference; further
        levels get the perturbed color and then Set2 colors.
        """
        levels = list(levels)
        colors = {}
        extra = sns.color_palette("Set2", 8).as_hex()
        for i, level in enumerate(levels):
            if i == 0:
                colors[level] = self.reference
            elif i == 1:
                colors[level] = self.perturbed
            else:
                colors[level] = extra[(i - 2) % len(extra)]
        return colors

    def for_stages(self, stages: Sequence[str]) -> dict[str, str]:
        """Stage -> color, lightest for the earliest stage."""
        stages = list(stages)
        colors = sns.color_palette(self.stages, len(stages) + 1).as_hex()[1:]
        return dict(zip(stages, colors))


# Predefined palettes
PALETTES = {
    "default": Palette(),
    "colorblind": Palette(
        reference="#0077bb",   # Blue
        perturbed="#ee7733",   # Orange
        stages="viridis",
        highlight="#009988",   # Teal
        neutral="#999999",
    ),
    "print": Palette(
        reference="#1a1a1a",
        perturbed="#808080",
        stages="Greys",
        highlight="#000000",
        neutral="#808080",
        diverging="RdGy",
        sequential="Greys",
    ),
}


def stage_markers(stages: Sequence[str]) -> dict[str, str]:
    """Stage -> matplotlib marker, in stage order."""
    return {stage: STAGE_MARKERS[i % len(STAGE_MARKERS)] for i, stage in enumerate(stages)}


def configure_style(
    style: Literal["paper", "presentation", "notebook"] = "paper",
    palette: str | Palette = "default",
    font_scale: float = 1.0
) -> Palette:
    """
    Configure matplotlib and seaborn for consistent visualization style.

    Parameters
    ----------
    style : {"paper", "presentation", "notebook"}
        Target medium (font sizes, line widths, DPI)
    palette : str or Palette
        Palette name or instance. Unknown names fall back to "default".
    font_scale : float
        Multiplier for all font sizes.

    Returns
    -------
    Palette
        The configured color palette.
    """
    if isinstance(palette, str):
        palette = PALETTES.get(palette, PALETTES["default"])

    base_params = {
        "figure.facecolor": "white",
        "axes.facecolor": "white",
        "axes.edgecolor": "#333333",
        "axes.labelcolor": "#333333",
        "text.color": "#333333",
        "xtick.color": "#333333",
        "ytick.color": "#333333",
        "axes.spines.top": False,
        "axes.spines.right": False,
        "legend.frameon": False,
    }

    sizes = {
        "paper": (10, 11, 9, 300, 1.0, "paper"),
        "presentation": (14, 18, 12, 150, 2.0, "talk"),
        "notebook": (11, 12, 10, 150, 1.5, "notebook"),
    }
    font, title, ticks, dpi, linewidth, context = sizes.get(style, sizes["notebook"])
    style_params = {
        "font.size": font * font_scale,
        "axes.titlesize": title * font_scale,
        "axes.labelsize": font * font_scale,
        "xtick.labelsize": ticks * font_scale,
        "ytick.labelsize": ticks * font_scale,
        "legend.fontsize": ticks * font_scale,
        "savefig.dpi": dpi,
        "lines.linewidth": linewidth,
    }

    sns.set_theme(style="whitegrid", context=context, font_scale=font_scale)
    plt.rcParams.update({**base_params, **style_params})

    return palette


def italicize_gene(gene: str) -> str:
    """
    Format a gene symbol in italics for matplotlib text.

    Examples
    --------
    >>> italicize_gene("zld")
    '$\\\\mathit{zld}$'
    """
    gene = gene.replace("_", r"\_")
    return f"$\\mathit{{{gene}}}$"
