"""Exception hierarchy for the comparator."""

from __future__ import annotations


class ComparatorError(Exception):
    """Base class for all comparator errors."""


class ConfigurationError(ComparatorError):
    """Required configuration is missing or invalid. Aborts the run."""


class InputError(ComparatorError):
    """The URL list or ignore list is malformed. Aborts the run."""


class CaptureError(ComparatorError):
    """Rendering or capturing one side of a URL pair failed."""
