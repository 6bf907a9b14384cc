"""
Text Layout
===========
Measures and rasterises text watermarks using Pillow's FreeType support.

Technical Notes:
- Sizes are given in points and converted to pixels at 96 DPI
- Measurement always happens at angle 0; rotated text reuses the unrotated
  box, so its placement is approximate
- Glyphs are drawn into a transparent layer with a solid color, rotated
  with expand=True to prevent clipping, and blended with the native-alpha
  compositor at full opacity
- There is no fallback font here: a missing font aborts the run
"""

from pathlib import Path
from typing import Sequence, Tuple, Union

from PIL import Image, ImageColor, ImageDraw, ImageFont

from .compositor import NativeAlphaCompositor
from .errors import FontUnavailableError
from .position import Position
from .surface import Surface

FONT_DPI = 96

Color = Tuple[int, int, int]


def points_to_pixels(points: float) -> int:
    """Convert a point size to a pixel size at FONT_DPI."""
    return max(1, int(round(points * FONT_DPI / 72)))


def parse_color(value: Union[str, Sequence[int]]) -> Color:
    """
    Normalise a color to an RGB tuple.

    Accepts "#RRGGBB" style strings (anything ImageColor understands) or an
    RGB(A) sequence.
    """
    if isinstance(value, str):
        rgb = ImageColor.getrgb(value)
    else:
        rgb = tuple(int(c) for c in value)
    if len(rgb) < 3:
        raise ValueError(f"Invalid color: {value!r}")
    return rgb[0], rgb[1], rgb[2]


class TextLayout:
    """
    Measures and renders glyph runs for a given font file.

    Font objects are cached per (path, pixel size) for the lifetime of the
    instance.
    """

    def __init__(self):
        self._cached_fonts: dict[Tuple[str, int], ImageFont.FreeTypeFont] = {}

    def _get_font(self, font_path: Union[str, Path], size: float) -> ImageFont.FreeTypeFont:
        """
        Load (or reuse) a TrueType font.

        Raises:
            FontUnavailableError: If the file is missing or not a usable font.
        """
        path = Path(font_path)
        pixel_size = points_to_pixels(size)
        key = (str(path), pixel_size)

        if key not in self._cached_fonts:
            if not path.is_file():
                raise FontUnavailableError(f"Font file not found: {path}")
            try:
                self._cached_fonts[key] = ImageFont.truetype(str(path), pixel_size)
            except OSError as e:
                raise FontUnavailableError(f"Cannot load font {path}: {e}")

        return self._cached_fonts[key]

    def measure(self, font_path: Union[str, Path], size: float, text: str) -> Tuple[int, int]:
        """
        Compute the (width, height) of the unrotated glyph run.

        Args:
            font_path: TrueType/OpenType font file.
            size: Font size in points.
            text: Text to measure.

        Returns:
            Bounding box size in pixels; (0, 0) for empty text.
        """
        font = self._get_font(font_path, size)
        if not text:
            return 0, 0
        left, top, right, bottom = font.getbbox(text)
        return right - left, bottom - top

    def render(
            self,
            surface: Surface,
            font_path: Union[str, Path],
            size: float,
            angle: float,
            origin: Position,
            color: Union[str, Sequence[int]],
            text: str
    ):
        """
        Draw text onto a surface in place.

        Args:
            surface: Destination surface.
            font_path: TrueType/OpenType font file.
            size: Font size in points.
            angle: Rotation in degrees, counter-clockwise.
            origin: Top-left of the unrotated text box.
            color: Text color.
            text: Text to draw.

        Raises:
            FontUnavailableError: If the font cannot be loaded.
        """
        font = self._get_font(font_path, size)
        if not text:
            return

        left, top, right, bottom = font.getbbox(text)
        width, height = right - left, bottom - top
        if width <= 0 or height <= 0:
            return

        layer_img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer_img)
        draw.text((-left, -top), text, font=font, fill=(*parse_color(color), 255))

        x, y = origin
        if angle % 360 != 0:
            rotated = layer_img.rotate(angle, expand=True, resample=Image.Resampling.BICUBIC)
            layer_img.close()
            layer_img = rotated
            # Keep the rotated run centered on the measured box
            x += (width - layer_img.width) // 2
            y += (height - layer_img.height) // 2

        with Surface.from_image(layer_img, alpha_significant=True) as layer:
            NativeAlphaCompositor().composite(surface, layer, Position(x, y), 100)
        layer_img.close()

    def clear(self):
        """Drop all cached fonts."""
        self._cached_fonts.clear()
