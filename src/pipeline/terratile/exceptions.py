"""Exception hierarchy for terratile.

Configuration errors are fatal and detected during operator setup wherever
possible. Cancellation is reported separately so callers can tell an
abandoned raster from a failed one.
"""


class TerratileError(Exception):
    """Base exception for all terratile errors."""


class ConfigurationError(TerratileError, ValueError):
    """Invalid inputs, parameters or product setup. Never retried."""


class MissingBandError(ConfigurationError):
    """A required input band is not present in the source product."""


class MissingGeoCodingError(ConfigurationError):
    """The source product has no geocoding but one is required."""


class UnsupportedSampleTypeError(ConfigurationError):
    """The source band's sample type cannot be widened to the working type."""


class ResolutionError(ConfigurationError):
    """No usable pixel spacing could be derived from the geocoding."""


class ProcessingCancelledError(TerratileError):
    """Processing was cancelled by the caller before the raster completed."""
