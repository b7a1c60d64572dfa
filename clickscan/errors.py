"""
Exception types raised by the detection pipeline.

Only failures that abort a detection cycle get a dedicated type. Empty
decode results and missing rasters are normal outcomes, not errors.
"""


class UnreachableImageError(RuntimeError):
    """The raster could not be produced.

    Raised when fetching an image URL, capturing the viewport, or decoding
    the resulting bytes into pixels fails. The cycle aborts without
    dispatching and is never retried.
    """


class InvalidPolicyValueError(ValueError):
    """A configuration value is outside its closed set of choices.

    Fatal for the cycle that reads it: nothing is dispatched rather than
    guessing a default the user did not configure.
    """
