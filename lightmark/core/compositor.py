"""
Alpha Compositor
================
Blends an overlay Surface onto a destination Surface at an offset.

Two strategies share one interface:
- NativeAlphaCompositor: the overlay has real per-pixel transparency
  (PNG). Its alpha is scaled by the opacity percentage and the result is
  laid over the destination ("over" operator).
- OpaqueMergeCompositor: the overlay has no alpha channel (JPEG/GIF).
  Colors are linearly interpolated by the percentage and the resulting
  alpha is the average of the source and destination alpha terms.

Only pixels inside the overlay footprint (clipped to the destination) are
touched. All arithmetic is vectorised with numpy.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np

from .position import Position
from .surface import Surface


Footprint = Tuple[Tuple[slice, slice], Tuple[slice, slice]]


def _footprint(dest: Surface, overlay: Surface, offset: Position) -> Optional[Footprint]:
    """
    Clip the overlay rectangle against the destination.

    Returns:
        ((dest_rows, dest_cols), (overlay_rows, overlay_cols)) slices, or
        None when the overlay lies entirely outside the destination.
    """
    x, y = offset
    dst_x0, dst_y0 = max(x, 0), max(y, 0)
    dst_x1 = min(x + overlay.width, dest.width)
    dst_y1 = min(y + overlay.height, dest.height)

    if dst_x0 >= dst_x1 or dst_y0 >= dst_y1:
        return None

    src_x0, src_y0 = dst_x0 - x, dst_y0 - y
    src_x1 = src_x0 + (dst_x1 - dst_x0)
    src_y1 = src_y0 + (dst_y1 - dst_y0)

    return (
        (slice(dst_y0, dst_y1), slice(dst_x0, dst_x1)),
        (slice(src_y0, src_y1), slice(src_x0, src_x1)),
    )


class Compositor(ABC):
    """Blends an overlay onto a destination surface in place."""

    def composite(self, dest: Surface, overlay: Surface, offset: Position, opacity: int = 100):
        """
        Blend `overlay` onto `dest` with its top-left corner at `offset`.

        Args:
            dest: Surface mutated in place.
            overlay: Surface read from; never modified.
            offset: Top-left placement in destination coordinates.
            opacity: Global opacity percentage (0-100).
        """
        region = _footprint(dest, overlay, Position(*offset))
        if region is None:
            return

        (dst_rows, dst_cols), (src_rows, src_cols) = region
        dst = dest.pixels[dst_rows, dst_cols]
        src = overlay.pixels[src_rows, src_cols]

        dest.pixels[dst_rows, dst_cols] = self._blend(src, dst, opacity)

    @abstractmethod
    def _blend(self, src: np.ndarray, dst: np.ndarray, opacity: int) -> np.ndarray:
        """Return the blended uint8 pixels for one footprint."""


class NativeAlphaCompositor(Compositor):
    """Scale the overlay's own alpha by opacity, then lay it over the destination."""

    def _blend(self, src: np.ndarray, dst: np.ndarray, opacity: int) -> np.ndarray:
        src_f = src.astype(np.float64)
        dst_f = dst.astype(np.float64)

        src_alpha = src_f[..., 3] * opacity / 100.0 / 255.0
        dst_alpha = dst_f[..., 3] / 255.0

        out_alpha = src_alpha + dst_alpha * (1.0 - src_alpha)
        weight_src = src_alpha[..., None]
        weight_dst = (dst_alpha * (1.0 - src_alpha))[..., None]

        with np.errstate(divide="ignore", invalid="ignore"):
            out_rgb = (src_f[..., :3] * weight_src + dst_f[..., :3] * weight_dst) / out_alpha[..., None]
        out_rgb = np.nan_to_num(out_rgb, nan=0.0, posinf=0.0, neginf=0.0)

        result = np.empty_like(dst)
        result[..., :3] = np.clip(np.rint(out_rgb), 0, 255).astype(np.uint8)
        result[..., 3] = np.clip(np.rint(out_alpha * 255.0), 0, 255).astype(np.uint8)

        # Fully transparent overlay pixels leave the destination byte-identical
        untouched = src_alpha <= 0.0
        result[untouched] = dst[untouched]
        return result


class OpaqueMergeCompositor(Compositor):
    """Linear color merge for overlays without an alpha channel."""

    def composite(self, dest: Surface, overlay: Surface, offset: Position, opacity: int = 100):
        if opacity <= 0:
            return
        super().composite(dest, overlay, offset, min(opacity, 100))

    def _blend(self, src: np.ndarray, dst: np.ndarray, opacity: int) -> np.ndarray:
        src_i = src.astype(np.int32)
        dst_i = dst.astype(np.int32)

        result = np.empty_like(dst)
        result[..., :3] = (src_i[..., :3] * opacity + dst_i[..., :3] * (100 - opacity)) // 100

        # Average of the scaled source alpha and destination alpha
        src_term = 255 - (255 - src_i[..., 3]) * opacity // 100
        result[..., 3] = (src_term + dst_i[..., 3]) // 2
        return result


def select_compositor(overlay: Surface) -> Compositor:
    """Pick the blending strategy matching the overlay's alpha semantics."""
    if overlay.alpha_significant:
        return NativeAlphaCompositor()
    return OpaqueMergeCompositor()


def prepare_canvas(source: Surface, supports_alpha: bool) -> Surface:
    """
    Create the surface an image watermark is composited onto.

    The canvas is an unblended copy of the source, so regions outside the
    watermark round-trip unchanged.
    """
    return Surface(source.pixels.copy(), alpha_significant=supports_alpha)
