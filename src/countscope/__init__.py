"""
countscope - Exploratory analysis of RNA-seq count experiments

Imports per-sample transcript quantifications, aggregates them to genes,
collapses technical replicates, filters low-count genes, normalizes and
variance-stabilizes the counts, and summarizes sample similarity (distances,
clustering, PCA) and genes of interest across genotype and developmental
stage.
"""

__version__ = "0.1.0"

from countscope.core.countmatrix import CountMatrix
from countscope.core.transform import Transform
from countscope.core.errors import CountscopeError

__all__ = [
    "CountMatrix",
    "Transform",
    "CountscopeError",
]
