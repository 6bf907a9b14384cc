"""
Core Module - Pure Algorithm Logic
==================================
Pixel surfaces, codecs, layout and compositing.
Nothing here knows about caching, configuration or the command line.
"""

from .codec import ImageCodec, ImageFormat, ImageInfo
from .compositor import (
    Compositor, NativeAlphaCompositor, OpaqueMergeCompositor,
    prepare_canvas, select_compositor
)
from .errors import (
    ErrorKind, WatermarkError, InvalidImageError, DimensionTooSmallError,
    UnsupportedFormatError, FontUnavailableError, EncodeError
)
from .position import Anchor, Position, calculate_position
from .surface import Surface
from .text import TextLayout, parse_color, points_to_pixels

__all__ = [
    "ImageCodec",
    "ImageFormat",
    "ImageInfo",
    "Compositor",
    "NativeAlphaCompositor",
    "OpaqueMergeCompositor",
    "prepare_canvas",
    "select_compositor",
    "ErrorKind",
    "WatermarkError",
    "InvalidImageError",
    "DimensionTooSmallError",
    "UnsupportedFormatError",
    "FontUnavailableError",
    "EncodeError",
    "Anchor",
    "Position",
    "calculate_position",
    "Surface",
    "TextLayout",
    "parse_color",
    "points_to_pixels",
]
