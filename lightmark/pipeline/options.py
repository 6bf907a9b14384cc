"""
Watermark Options
=================
Immutable option records passed down the pipeline.

WatermarkOptions arrives fully validated from WatermarkConfig; the engine
never re-clamps its values. Per-call Overrides are layered on top once per
invocation with `WatermarkOptions.merged()`.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from lightmark.core.position import Anchor


class WatermarkType(Enum):
    TEXT = "text_watermark"
    IMAGE = "image_watermark"


@dataclass(frozen=True)
class WatermarkOptions:
    """Complete, validated watermark configuration."""
    enabled: bool = False
    type: WatermarkType = WatermarkType.TEXT
    text: str = ""
    font_file: str = ""
    angle: float = 0  # degrees, counter-clockwise
    size: int = 14  # points
    color: Tuple[int, int, int] = (0x79, 0x00, 0x00)
    overlay_image: str = ""  # path or URL, image watermarks only
    position: Anchor = Anchor.BOTTOM_RIGHT
    margin: int = 50  # px
    opacity: int = 100  # percent
    min_width: int = 300
    min_height: int = 300

    @property
    def is_image(self) -> bool:
        return self.type is WatermarkType.IMAGE

    def merged(self, overrides: Optional["Overrides"]) -> "WatermarkOptions":
        """Return the effective options with every set override applied."""
        if overrides is None:
            return self
        changes = {
            f.name: getattr(overrides, f.name)
            for f in fields(overrides)
            if getattr(overrides, f.name) is not None
        }
        return replace(self, **changes) if changes else self

    def to_canonical(self) -> Dict[str, Any]:
        """Plain, JSON-serialisable view used for fingerprinting."""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            data[f.name] = value
        return data


@dataclass(frozen=True)
class Overrides:
    """Per-call overrides; None means "keep the base option"."""
    enabled: Optional[bool] = None
    type: Optional[WatermarkType] = None
    text: Optional[str] = None
    font_file: Optional[str] = None
    angle: Optional[float] = None
    size: Optional[int] = None
    color: Optional[Tuple[int, int, int]] = None
    overlay_image: Optional[str] = None
    position: Optional[Anchor] = None
    margin: Optional[int] = None
    opacity: Optional[int] = None
    min_width: Optional[int] = None
    min_height: Optional[int] = None
