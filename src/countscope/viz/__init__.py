"""
Visualization module for the count-analysis pipeline.

Static matplotlib/seaborn figures for:
- Sample-level QC (size factors, sample distances, PCA, top-variable genes)
- Per-gene comparisons across genotype and stage

Examples
--------
>>> from countscope.viz import SampleVisualizer, FigureCollection
>>>
>>> viz = SampleVisualizer(color_by="genotype", marker_by="cell_cycle")
>>> collection = FigureCollection()
>>> collection.add("pca", viz.plot_pca(projection, samples))
>>> collection.save_all(Path("figures/"), format="pdf")
"""

from countscope.viz.core import Figure, FigureCollection
from countscope.viz.styles import Palette, PALETTES, configure_style
from countscope.viz.samples import SampleVisualizer
from countscope.viz.genes import GeneVisualizer

__all__ = [
    # Core
    "Figure",
    "FigureCollection",
    # Styles
    "Palette",
    "PALETTES",
    "configure_style",
    # Visualizers
    "SampleVisualizer",
    "GeneVisualizer",
]
