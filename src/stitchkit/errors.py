"""
Exception types raised by stitchkit.

Only structural problems surface as exceptions. Out-of-bounds coordinates,
edits on locked layers and malformed stored entries are handled in place
(clipped, ignored or skipped with a logged warning) so that a single bad
record never aborts an editing session.
"""


class StitchkitError(Exception):
    """Base class for all stitchkit errors."""


class ValidationError(StitchkitError, ValueError):
    """Invalid dimensions or configuration values."""


class ProcessingError(StitchkitError, RuntimeError):
    """The conversion pipeline was given structurally invalid input."""


class ConversionCancelled(ProcessingError):
    """A running conversion was cancelled by its caller."""
