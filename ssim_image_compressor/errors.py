# errors.py
"""Failures a compression search can report for a single file."""


class CompressionError(Exception):
    """Base class for per-file failures."""


class EncodeFailure(CompressionError):
    """The codec rejected the input (corrupt or unsupported image)."""


class DecodeFailure(CompressionError):
    """A buffer could not be decoded to a raster for comparison."""


class DimensionMismatch(CompressionError):
    """Two rasters of different sizes were compared."""


class IOFailure(CompressionError):
    """Reading the source or writing the destination failed."""


class SearchCancelled(CompressionError):
    """The search was aborted between attempts."""
