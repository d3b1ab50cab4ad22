"""
Error taxonomy for the count-analysis pipeline.

Fatal conditions derive from CountscopeError and abort the run at the stage
boundary where they are detected. UnresolvedTranscript is a warning: the
importer drops unmapped transcripts, logs them, and carries on.
"""

from __future__ import annotations

from typing import Iterable

__all__ = [
    'CountscopeError',
    'MissingReferenceLevel',
    'SampleFileMismatch',
    'EmptyAfterFiltering',
    'UnresolvedTranscript',
]


class CountscopeError(Exception):
    """Base class for fatal pipeline errors."""
    pass


class MissingReferenceLevel(CountscopeError):
    """Raised when a requested reference category is absent from the observed data."""

    def __init__(self, column: str, reference: str, observed: Iterable[str]):
        self.column = column
        self.reference = reference
        self.observed = list(observed)
        super().__init__(
            f"Reference level '{reference}' not found in column '{column}'. "
            f"Observed levels: {self.observed}"
        )


class SampleFileMismatch(CountscopeError):
    """Raised when per-sample quantification files cannot be paired with the sample table."""
    pass


class EmptyAfterFiltering(CountscopeError):
    """Raised when the low-count filter removes every gene."""
    pass


class UnresolvedTranscript(UserWarning):
    """Transcripts in a quantification file with no entry in the transcript-to-gene map."""
    pass
