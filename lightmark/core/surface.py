"""
Pixel Surface
=============
An owned, mutable RGBA pixel buffer.

Technical Notes:
- Pixels are stored as a numpy uint8 array of shape (height, width, 4)
- Alpha follows the Pillow convention: 0 = transparent, 255 = opaque
- `alpha_significant` tells the compositor whether the alpha channel
  carries real transparency or is implicitly opaque
- Surfaces are context managers; a closed surface has no buffer
"""

from typing import Optional, Tuple

import numpy as np
from PIL import Image


class Surface:
    """
    In-memory RGBA image owned by a single pipeline stage at a time.
    """

    def __init__(self, pixels: np.ndarray, alpha_significant: bool = False):
        """
        Wrap an existing pixel array.

        Args:
            pixels: uint8 array of shape (height, width, 4).
            alpha_significant: True if the alpha channel is meaningful.
        """
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected (h, w, 4) pixel array, got {pixels.shape}")
        if pixels.dtype != np.uint8:
            pixels = pixels.astype(np.uint8)

        self._pixels: Optional[np.ndarray] = pixels
        self.alpha_significant = alpha_significant

    @classmethod
    def blank(
            cls,
            width: int,
            height: int,
            fill: Tuple[int, int, int, int] = (0, 0, 0, 0),
            alpha_significant: bool = True
    ) -> "Surface":
        """Create a surface filled with a single RGBA color."""
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = fill
        return cls(pixels, alpha_significant=alpha_significant)

    @classmethod
    def from_image(cls, image: Image.Image, alpha_significant: bool) -> "Surface":
        """
        Build a surface from a Pillow image.

        Images without a meaningful alpha channel are flattened to RGB first
        so the resulting alpha is uniformly opaque.
        """
        if alpha_significant:
            rgba = image.convert("RGBA")
        else:
            rgba = image.convert("RGB").convert("RGBA")
        return cls(np.array(rgba, dtype=np.uint8), alpha_significant=alpha_significant)

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise ValueError("Surface has been released")
        return self._pixels

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def closed(self) -> bool:
        return self._pixels is None

    def to_image(self) -> Image.Image:
        """Return a Pillow RGBA image holding a copy of the pixels."""
        return Image.fromarray(self.pixels.copy())

    def copy(self) -> "Surface":
        return Surface(self.pixels.copy(), alpha_significant=self.alpha_significant)

    def close(self):
        """Release the pixel buffer."""
        self._pixels = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __repr__(self):
        if self.closed:
            return "<Surface closed>"
        return (
            f"<Surface {self.width}x{self.height} "
            f"alpha_significant={self.alpha_significant}>"
        )
