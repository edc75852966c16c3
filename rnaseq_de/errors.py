"""
Exception types raised by the analysis pipeline.

All of them derive from ``ValueError`` as well as :class:`DESeqError`, so
callers that catch ``ValueError`` around a pipeline call keep working.
"""


class DESeqError(Exception):
    """Base class for pipeline errors."""


class SampleMismatchError(DESeqError, ValueError):
    """Sample identifiers in the count matrix and metadata do not agree."""

    def __init__(self, message, missing_in_counts=(), missing_in_metadata=()):
        super().__init__(message)
        self.missing_in_counts = list(missing_in_counts)
        self.missing_in_metadata = list(missing_in_metadata)


class CountDataError(DESeqError, ValueError):
    """The count matrix is malformed (negative, fractional, duplicated ids)."""


class DesignError(DESeqError, ValueError):
    """A formula, factor level, coefficient or contrast cannot be resolved."""


class NestedDesignError(DesignError):
    """The reduced design of a likelihood-ratio test is not nested in the full one."""


class AltHypothesisError(DESeqError, ValueError):
    """Unsupported alternative hypothesis selector."""
