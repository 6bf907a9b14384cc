"""
Watermark Configuration
=======================
Owns defaults, sanitising and persistence of user-supplied settings.

Raw values (from a JSON file, CLI flags, a form...) are clamped and
validated here so that everything reaching the engine is already in range.

Validation rules:
- Numbers are coerced to int and clamped; garbage becomes the default
- Unknown watermark types and positions fall back to the defaults
- Colors must be #RRGGBB
- Fonts must exist in the font directory, otherwise the default font name
- Overlay images must be an existing file or an http(s) URL
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import urlparse

from lightmark.core.position import Anchor
from lightmark.core.text import parse_color
from .options import Overrides, WatermarkOptions, WatermarkType

logger = logging.getLogger(__name__)


DEFAULTS: Dict[str, Any] = {
    "enabled": False,
    "type": WatermarkType.TEXT.value,
    "text": "",
    "font_file": "simhei.ttf",
    "angle": 0,
    "size": 14,
    "color": "#790000",
    "overlay_image": "",
    "position": Anchor.BOTTOM_RIGHT.value,
    "margin": 50,
    "opacity": 100,
    "min_width": 300,
    "min_height": 300,
}

NUMERIC_RANGES: Dict[str, tuple] = {
    "angle": (0, 360),
    "size": (8, 72),
    "margin": (0, 200),
    "opacity": (0, 100),
    "min_width": (100, 9999),
    "min_height": (100, 9999),
}

_COLOR_RE = re.compile(r"^#[a-fA-F0-9]{6}$")
_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def sanitize_text(value: Any) -> str:
    """Strip markup and control characters, collapse whitespace."""
    text = _TAG_RE.sub("", str(value or ""))
    text = _CONTROL_RE.sub(" ", text)
    return " ".join(text.split())


class WatermarkConfig:
    """
    Validated watermark settings.

    The stored values are plain JSON types; use `to_options()` to get the
    immutable record the pipeline consumes.
    """

    def __init__(
            self,
            options: Optional[Dict[str, Any]] = None,
            font_dir: Optional[Union[str, Path]] = None
    ):
        """
        Args:
            options: Raw settings; missing keys take their defaults and
                     unknown keys are ignored.
            font_dir: Directory font names are resolved against
                      (default: ./fonts).
        """
        self.font_dir = Path(font_dir) if font_dir is not None else Path("fonts")
        self._options: Dict[str, Any] = dict(DEFAULTS)
        for key, value in (options or {}).items():
            if key in DEFAULTS:
                self._options[key] = value
        self._validate()

    # ===== Validation =====

    def _validate(self):
        opts = self._options

        opts["enabled"] = _to_bool(opts["enabled"])

        if opts["type"] not in (t.value for t in WatermarkType):
            opts["type"] = DEFAULTS["type"]

        for key, (low, high) in NUMERIC_RANGES.items():
            opts[key] = self._clamp(key, low, high)

        if opts["position"] not in (a.value for a in Anchor):
            opts["position"] = DEFAULTS["position"]

        if not isinstance(opts["color"], str) or not _COLOR_RE.match(opts["color"]):
            opts["color"] = DEFAULTS["color"]

        opts["text"] = sanitize_text(opts["text"])

        if not self._font_is_usable(opts["font_file"]):
            logger.debug("Font %r unusable, using %s", opts["font_file"], DEFAULTS["font_file"])
            opts["font_file"] = DEFAULTS["font_file"]

        if opts["type"] == WatermarkType.IMAGE.value:
            opts["overlay_image"] = self._validate_image_ref(opts["overlay_image"])

    def _clamp(self, key: str, low: int, high: int) -> int:
        try:
            value = int(float(self._options[key]))
        except (TypeError, ValueError):
            value = int(DEFAULTS[key])
        return max(low, min(high, value))

    def resolve_font(self, name: str) -> Path:
        """Absolute-or-relative path a font name refers to."""
        path = Path(name)
        if path.is_absolute():
            return path
        return self.font_dir / path

    def _font_is_usable(self, name: Any) -> bool:
        if not isinstance(name, str) or not name:
            return False
        path = self.resolve_font(name)
        return path.is_file() and os.access(path, os.R_OK)

    @staticmethod
    def _validate_image_ref(ref: Any) -> str:
        if not isinstance(ref, str) or not ref.strip():
            return ""
        ref = ref.strip()

        parsed = urlparse(ref)
        if parsed.scheme in ("http", "https"):
            return ref if parsed.netloc else ""
        if Path(ref).is_file():
            return ref
        return ""

    # ===== Accessors =====

    def get_options(self) -> Dict[str, Any]:
        return dict(self._options)

    def get_option(self, key: str) -> Any:
        return self._options.get(key)

    def set_option(self, key: str, value: Any):
        """Set one setting and re-validate. Unknown keys are ignored."""
        if key in DEFAULTS:
            self._options[key] = value
            self._validate()

    def to_options(self) -> WatermarkOptions:
        """Build the immutable record consumed by the pipeline."""
        opts = self._options
        return WatermarkOptions(
            enabled=opts["enabled"],
            type=WatermarkType(opts["type"]),
            text=opts["text"],
            font_file=str(self.resolve_font(opts["font_file"])),
            angle=opts["angle"],
            size=opts["size"],
            color=parse_color(opts["color"]),
            overlay_image=opts["overlay_image"],
            position=Anchor(opts["position"]),
            margin=opts["margin"],
            opacity=opts["opacity"],
            min_width=opts["min_width"],
            min_height=opts["min_height"],
        )

    def overrides(self, **raw: Any) -> Overrides:
        """
        Validate per-call overrides against the same rules.

        Only the keys given (and not None) end up set on the result.
        """
        given = {k: v for k, v in raw.items() if k in DEFAULTS and v is not None}
        if not given:
            return Overrides()

        candidate = WatermarkConfig({**self._options, **given}, font_dir=self.font_dir)
        effective = candidate.to_options()
        return Overrides(**{key: getattr(effective, key) for key in given})

    # ===== Persistence =====

    @classmethod
    def load(cls, path: Union[str, Path], font_dir: Optional[Union[str, Path]] = None) -> "WatermarkConfig":
        """
        Load settings from a JSON file.

        A missing file yields the defaults; an unreadable one is logged
        and also yields the defaults.
        """
        path = Path(path)
        if not path.exists():
            return cls(font_dir=font_dir)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read config %s: %s", path, e)
            return cls(font_dir=font_dir)

        if not isinstance(data, dict):
            logger.warning("Config %s is not a JSON object, using defaults", path)
            data = {}
        return cls(data, font_dir=font_dir)

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self._options, indent=2, sort_keys=True), encoding="utf-8")
        return path
