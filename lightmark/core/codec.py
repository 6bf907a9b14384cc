"""
Codec Adapter
=============
Decodes raster files into Surfaces and encodes Surfaces back to disk.

Technical Notes:
- Only JPEG, PNG and GIF are supported; anything else is rejected
- PNG decodes keep their alpha channel untouched (alpha_significant=True)
- JPEG is written at quality 95, PNG with no compression
- Output is written to a temp file next to the destination and moved into
  place only after a successful save
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

from .errors import EncodeError, InvalidImageError, UnsupportedFormatError
from .surface import Surface

logger = logging.getLogger(__name__)


class ImageFormat(Enum):
    """Closed set of raster formats the engine reads and writes."""
    JPEG = "image/jpeg"
    PNG = "image/png"
    GIF = "image/gif"

    @property
    def mime(self) -> str:
        return self.value

    @property
    def extension(self) -> str:
        if self is ImageFormat.JPEG:
            return "jpg"
        elif self is ImageFormat.PNG:
            return "png"
        else:
            return "gif"

    @property
    def pil_name(self) -> str:
        return self.name

    @property
    def supports_alpha(self) -> bool:
        return self is ImageFormat.PNG

    @classmethod
    def from_mime(cls, mime: str) -> "ImageFormat":
        """
        Map a MIME type string to a format.

        Raises:
            UnsupportedFormatError: For anything outside JPEG/PNG/GIF.
        """
        normalized = (mime or "").strip().lower()
        if normalized in ("image/jpeg", "image/jpg", "image/pjpeg"):
            return cls.JPEG
        elif normalized == "image/png":
            return cls.PNG
        elif normalized == "image/gif":
            return cls.GIF
        raise UnsupportedFormatError(f"Unsupported image type: {mime!r}")

    @classmethod
    def from_pil(cls, pil_format: Optional[str]) -> "ImageFormat":
        """Map a Pillow format name (e.g. "JPEG") to a format."""
        name = (pil_format or "").upper()
        # Camera JPEGs with an MPF segment open as MPO
        if name == "MPO":
            return cls.JPEG
        for fmt in cls:
            if fmt.pil_name == name:
                return fmt
        raise UnsupportedFormatError(f"Unsupported image format: {pil_format}")


@dataclass(frozen=True)
class ImageInfo:
    """Header information read without decoding pixel data."""
    width: int
    height: int
    format: ImageFormat

    @property
    def dimensions(self) -> str:
        return f"{self.width}x{self.height}"


# Default quality per output format (JPEG quality / PNG compress level)
JPEG_QUALITY = 95
PNG_COMPRESS_LEVEL = 0


class ImageCodec:
    """
    Reads and writes Surfaces for the supported formats.

    Stateless; one instance can be shared by every pipeline run.
    """

    def probe(self, path: Union[str, Path]) -> ImageInfo:
        """
        Read dimensions and the real format of an image file.

        Raises:
            InvalidImageError: Missing or unreadable file.
            UnsupportedFormatError: Readable image of an unsupported type.
        """
        path = Path(path)
        if not path.is_file():
            raise InvalidImageError(f"Image not found: {path}")

        try:
            with Image.open(path) as img:
                width, height = img.size
                pil_format = img.format
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise InvalidImageError(f"Cannot read image {path}: {e}")

        return ImageInfo(width, height, ImageFormat.from_pil(pil_format))

    def decode(self, path: Union[str, Path], declared: ImageFormat) -> Surface:
        """
        Decode an image file into a Surface.

        Args:
            path: Image file path.
            declared: Format the caller expects the file to be in.

        Returns:
            A new Surface owned by the caller.

        Raises:
            InvalidImageError: Missing, corrupt, or not in the declared format.
        """
        path = Path(path)
        if not path.is_file():
            raise InvalidImageError(f"Image not found: {path}")

        try:
            with Image.open(path) as img:
                try:
                    actual = ImageFormat.from_pil(img.format)
                except UnsupportedFormatError:
                    actual = None
                if actual is not declared:
                    raise InvalidImageError(
                        f"{path} is {img.format}, expected {declared.pil_name}"
                    )
                # Animated GIFs contribute their first frame only
                img.seek(0)
                img.load()
                return Surface.from_image(img, alpha_significant=declared.supports_alpha)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise InvalidImageError(f"Cannot decode {path}: {e}")

    def encode(
            self,
            surface: Surface,
            path: Union[str, Path],
            fmt: ImageFormat,
            quality: Optional[int] = None
    ) -> Path:
        """
        Encode a Surface to disk.

        Args:
            surface: Pixels to write.
            path: Destination file path.
            fmt: Output format.
            quality: JPEG quality (1-95) or PNG compress level (0-9).
                     Defaults to 95 / 0. Ignored for GIF.

        Returns:
            The destination path.

        Raises:
            EncodeError: If the image could not be written.
        """
        path = Path(path)
        image = self._prepare_for_format(surface, fmt)
        save_kwargs = self._save_options(fmt, quality)

        temp_path: Optional[Path] = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                suffix=f".{fmt.extension}", prefix=".lightmark-", dir=path.parent
            )
            os.close(fd)
            temp_path = Path(temp_name)

            image.save(temp_path, format=fmt.pil_name, **save_kwargs)
            os.replace(temp_path, path)
            temp_path = None
        except (OSError, ValueError) as e:
            raise EncodeError(f"Failed to write {path}: {e}")
        finally:
            image.close()
            if temp_path is not None and temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    logger.warning("Could not remove temp file %s", temp_path)

        return path

    @staticmethod
    def _prepare_for_format(surface: Surface, fmt: ImageFormat) -> Image.Image:
        rgba = surface.to_image()

        if fmt is ImageFormat.PNG:
            if surface.alpha_significant:
                return rgba
            rgb = rgba.convert("RGB")
            rgba.close()
            return rgb

        # Formats without alpha: flatten onto white like a browser would
        rgb = Image.new("RGB", rgba.size, (255, 255, 255))
        rgb.paste(rgba, mask=rgba.getchannel("A"))
        rgba.close()
        return rgb

    @staticmethod
    def _save_options(fmt: ImageFormat, quality: Optional[int]) -> dict:
        if fmt is ImageFormat.JPEG:
            return {"quality": JPEG_QUALITY if quality is None else quality}
        elif fmt is ImageFormat.PNG:
            return {"compress_level": PNG_COMPRESS_LEVEL if quality is None else quality}
        else:
            return {}
