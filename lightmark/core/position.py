"""
Position Calculator
===================
Maps a grid anchor to the top-left pixel where a watermark is placed.

The canvas is split into a 3x3 grid of equal cells. Corner anchors sit
flush against their edges, offset inward by the margin. Edge-center anchors
are centered inside the middle column or row, with the margin applied on
the other axis. middle-center ignores the margin.
"""

from enum import Enum
from typing import NamedTuple, Union


class Anchor(Enum):
    TOP_LEFT = "top-left"
    TOP_CENTER = "top-center"
    TOP_RIGHT = "top-right"
    MIDDLE_LEFT = "middle-left"
    MIDDLE_CENTER = "middle-center"
    MIDDLE_RIGHT = "middle-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_CENTER = "bottom-center"
    BOTTOM_RIGHT = "bottom-right"

    @classmethod
    def parse(cls, value: Union[str, "Anchor", None]) -> "Anchor":
        """Resolve a name to an anchor, falling back to bottom-right."""
        if isinstance(value, Anchor):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.BOTTOM_RIGHT


DEFAULT_ANCHOR = Anchor.BOTTOM_RIGHT


class Position(NamedTuple):
    x: int
    y: int


def calculate_position(
        anchor: Union[Anchor, str],
        image_width: int,
        image_height: int,
        mark_width: int,
        mark_height: int,
        margin: int
) -> Position:
    """
    Compute the top-left placement of a watermark.

    Args:
        anchor: Grid anchor (unknown names fall back to bottom-right).
        image_width: Canvas width in pixels.
        image_height: Canvas height in pixels.
        mark_width: Watermark width in pixels.
        mark_height: Watermark height in pixels.
        margin: Inset from the canvas edges in pixels.

    Returns:
        Integer (x, y) position; may be negative when the mark is larger
        than the space available.
    """
    anchor = Anchor.parse(anchor)

    grid_width = image_width / 3
    grid_height = image_height / 3

    left = margin
    top = margin
    right = image_width - mark_width - margin
    bottom = image_height - mark_height - margin
    center_x = grid_width + (grid_width - mark_width) / 2
    center_y = grid_height + (grid_height - mark_height) / 2

    if anchor is Anchor.TOP_LEFT:
        x, y = left, top
    elif anchor is Anchor.TOP_CENTER:
        x, y = center_x, top
    elif anchor is Anchor.TOP_RIGHT:
        x, y = right, top
    elif anchor is Anchor.MIDDLE_LEFT:
        x, y = left, center_y
    elif anchor is Anchor.MIDDLE_CENTER:
        x, y = center_x, center_y
    elif anchor is Anchor.MIDDLE_RIGHT:
        x, y = right, center_y
    elif anchor is Anchor.BOTTOM_LEFT:
        x, y = left, bottom
    elif anchor is Anchor.BOTTOM_CENTER:
        x, y = center_x, bottom
    else:
        x, y = right, bottom

    # int() truncates toward zero
    return Position(int(x), int(y))
