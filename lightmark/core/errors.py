"""
Watermark Errors
================
Exception hierarchy shared by the core components.

Every error carries an ErrorKind so the pipeline can report *what* went
wrong without inspecting exception types.
"""

from enum import Enum


class ErrorKind(Enum):
    """Failure categories reported at the pipeline boundary."""
    INVALID_IMAGE = "invalid_image"
    DIMENSION_TOO_SMALL = "dimension_too_small"
    UNSUPPORTED_FORMAT = "unsupported_format"
    FONT_UNAVAILABLE = "font_unavailable"
    ENCODE_FAILURE = "encode_failure"


class WatermarkError(Exception):
    """Base class for recoverable watermarking failures."""

    kind: ErrorKind = ErrorKind.INVALID_IMAGE


class InvalidImageError(WatermarkError):
    """Source or overlay is missing, corrupt or not what it claims to be."""
    kind = ErrorKind.INVALID_IMAGE


class DimensionTooSmallError(WatermarkError):
    """Source image is below the configured minimum size."""
    kind = ErrorKind.DIMENSION_TOO_SMALL


class UnsupportedFormatError(WatermarkError):
    """Image format outside JPEG/PNG/GIF."""
    kind = ErrorKind.UNSUPPORTED_FORMAT


class FontUnavailableError(WatermarkError):
    """Font file missing or unreadable."""
    kind = ErrorKind.FONT_UNAVAILABLE


class EncodeError(WatermarkError):
    """Writing the output image failed."""
    kind = ErrorKind.ENCODE_FAILURE
