"""
Core data structures shared by every pipeline stage.

1. CountMatrix: genes x samples matrix coupled with its sample table
2. Transform: abstract base class for immutable matrix transformations
3. Error taxonomy: fatal CountscopeError subclasses and the
   UnresolvedTranscript warning
"""

from countscope.core.countmatrix import CountMatrix
from countscope.core.transform import Transform
from countscope.core.errors import (
    CountscopeError,
    MissingReferenceLevel,
    SampleFileMismatch,
    EmptyAfterFiltering,
    UnresolvedTranscript,
)

__all__ = [
    'CountMatrix',
    'Transform',
    'CountscopeError',
    'MissingReferenceLevel',
    'SampleFileMismatch',
    'EmptyAfterFiltering',
    'UnresolvedTranscript',
]
