from __future__ import annotations


class MetricsError(Exception):
    """Base class for dataset and metric derivation failures."""


class MalformedSeriesError(MetricsError, ValueError):
    """A series does not line up with ``dates`` or holds non-numeric entries."""


class EmptyInputError(MetricsError, ValueError):
    """A computation that needs at least one value received none."""
