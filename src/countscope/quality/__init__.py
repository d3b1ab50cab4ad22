"""
Count-level quality steps applied before normalization.

Components:
    ReplicateCollapser: Sums technical replicates (lanes) per biological replicate
    LowCountFilter: Drops genes without enough reads in enough samples

Examples:
    >>> from countscope.quality import ReplicateCollapser, LowCountFilter
    >>> per_sample = ReplicateCollapser(group_col="sample", provenance_col="lane").apply(per_run)
    >>> filtered = LowCountFilter(min_count=1, min_samples=2).apply(per_sample)
"""

from countscope.quality.replicates import ReplicateCollapser
from countscope.quality.filtering import LowCountFilter, LowCountFilterResult

__all__ = [
    'ReplicateCollapser',
    'LowCountFilter',
    'LowCountFilterResult',
]
