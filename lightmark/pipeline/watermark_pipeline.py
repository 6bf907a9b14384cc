"""
Watermark Pipeline
==================
Runs one watermarking request from source file to destination file.

Workflow:
1. Serve a fresh cached result if one exists for the fingerprint
2. Probe the source and reject it if it is below the minimum size
3. Decode the source
4. Text: measure, position and render onto the source
   Image: decode the overlay, position it, composite onto a canvas
5. Encode in the source's own format to the destination
6. Store the output in the cache

Every surface is registered with an ExitStack so it is released on every
exit path. Core components raise WatermarkError; this module turns them
into a WatermarkResult (and a bool for `apply`).
"""

import logging
import os
import tempfile
from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union
from urllib.parse import urlparse

import requests

from lightmark.core.codec import ImageCodec, ImageInfo
from lightmark.core.compositor import prepare_canvas, select_compositor
from lightmark.core.errors import (
    DimensionTooSmallError, ErrorKind, InvalidImageError, WatermarkError
)
from lightmark.core.position import calculate_position
from lightmark.core.surface import Surface
from lightmark.core.text import TextLayout
from .cache import CacheManager
from .options import Overrides, WatermarkOptions
from .performance import NullMonitor

logger = logging.getLogger(__name__)

# Seconds to wait for a remote overlay image
OVERLAY_DOWNLOAD_TIMEOUT = 15


class PipelineState(Enum):
    START = "start"
    SIZE_VALIDATED = "size_validated"
    SOURCE_DECODED = "source_decoded"
    TEXT_RENDERED = "text_rendered"
    OVERLAY_DECODED = "overlay_decoded"
    COMPOSITED = "composited"
    ENCODED = "encoded"
    CACHED = "cached"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class WatermarkResult:
    """Outcome of a single pipeline run."""
    source_path: Path
    output_path: Optional[Path] = None
    success: bool = False
    state: PipelineState = PipelineState.START
    failed_at: Optional[PipelineState] = None  # last state reached before an abort
    error_kind: Optional[ErrorKind] = None
    error_message: str = ""
    from_cache: bool = False
    fingerprint: str = ""
    dimensions: Optional[Tuple[int, int]] = None


class WatermarkPipeline:
    """
    Orchestrates codec, layout, compositing and caching for one image.

    Single-threaded and synchronous; an instance keeps no per-run state, so
    separate runs are independent apart from the shared cache directory.
    """

    def __init__(
            self,
            cache: Optional[CacheManager] = None,
            codec: Optional[ImageCodec] = None,
            text_layout: Optional[TextLayout] = None,
            monitor=None
    ):
        """
        Args:
            cache: Cache manager; None disables caching.
            codec: Codec adapter (default: ImageCodec()).
            text_layout: Text layout engine (default: TextLayout()).
            monitor: Object with begin()/end(operation, **metadata).
        """
        self.cache = cache
        self.codec = codec if codec is not None else ImageCodec()
        self.text_layout = text_layout if text_layout is not None else TextLayout()
        self.monitor = monitor if monitor is not None else NullMonitor()

    def apply(
            self,
            source: Union[str, Path],
            destination: Union[str, Path],
            options: WatermarkOptions,
            overrides: Optional[Overrides] = None
    ) -> bool:
        """Watermark `source` into `destination`. Returns True on success."""
        return self.run(source, destination, options, overrides).success

    def run(
            self,
            source: Union[str, Path],
            destination: Union[str, Path],
            options: WatermarkOptions,
            overrides: Optional[Overrides] = None
    ) -> WatermarkResult:
        """
        Watermark `source` into `destination`.

        Args:
            source: Source image path.
            destination: Output path (may equal source).
            options: Validated base options.
            overrides: Optional per-call overrides.

        Returns:
            WatermarkResult describing the outcome.
        """
        source = Path(source)
        destination = Path(destination)
        effective = options.merged(overrides)

        result = WatermarkResult(source_path=source)
        result.fingerprint = CacheManager.fingerprint(source, effective)

        self.monitor.begin()
        try:
            if self.cache is not None and self.cache.fetch(result.fingerprint, destination):
                result.output_path = destination
                result.from_cache = True
                result.success = True
                result.state = PipelineState.DONE
                return result

            with ExitStack() as stack:
                self._execute(source, destination, effective, result, stack)

            result.output_path = destination
            result.success = True
            result.state = PipelineState.DONE
            logger.debug("Watermarked %s -> %s", source, destination)

        except WatermarkError as e:
            result.failed_at = result.state
            result.state = PipelineState.ABORTED
            result.error_kind = e.kind
            result.error_message = str(e)
            logger.warning(
                "Watermark aborted for %s (%s): %s", source, e.kind.value, e
            )

        finally:
            try:
                self.monitor.end("watermark", **self._monitor_metadata(result, destination))
            except Exception as e:
                logger.warning("Performance monitor failed for %s: %s", source, e)

        return result

    # ===== Stages =====

    def _execute(
            self,
            source: Path,
            destination: Path,
            options: WatermarkOptions,
            result: WatermarkResult,
            stack: ExitStack
    ):
        info = self.codec.probe(source)
        result.dimensions = (info.width, info.height)
        if info.width < options.min_width or info.height < options.min_height:
            raise DimensionTooSmallError(
                f"Image {info.dimensions} is below the minimum "
                f"{options.min_width}x{options.min_height}"
            )
        result.state = PipelineState.SIZE_VALIDATED

        surface = stack.enter_context(self.codec.decode(source, info.format))
        result.state = PipelineState.SOURCE_DECODED

        if options.is_image:
            output = self._apply_image(surface, info, options, result, stack)
        else:
            self._apply_text(surface, options)
            result.state = PipelineState.TEXT_RENDERED
            output = surface

        self.codec.encode(output, destination, info.format)
        result.state = PipelineState.ENCODED

        if self.cache is not None:
            if self.cache.store(result.fingerprint, destination, info.format) is not None:
                result.state = PipelineState.CACHED

    def _apply_text(self, surface: Surface, options: WatermarkOptions):
        mark_width, mark_height = self.text_layout.measure(
            options.font_file, options.size, options.text
        )
        position = calculate_position(
            options.position, surface.width, surface.height,
            mark_width, mark_height, options.margin
        )
        self.text_layout.render(
            surface, options.font_file, options.size, options.angle,
            position, options.color, options.text
        )

    def _apply_image(
            self,
            surface: Surface,
            info: ImageInfo,
            options: WatermarkOptions,
            result: WatermarkResult,
            stack: ExitStack
    ) -> Surface:
        overlay_path = self._resolve_overlay(options.overlay_image, stack)
        overlay_info = self.codec.probe(overlay_path)
        overlay = stack.enter_context(self.codec.decode(overlay_path, overlay_info.format))
        result.state = PipelineState.OVERLAY_DECODED

        position = calculate_position(
            options.position, surface.width, surface.height,
            overlay.width, overlay.height, options.margin
        )

        canvas = stack.enter_context(prepare_canvas(surface, info.format.supports_alpha))
        select_compositor(overlay).composite(canvas, overlay, position, options.opacity)
        result.state = PipelineState.COMPOSITED
        return canvas

    @staticmethod
    def _resolve_overlay(ref: str, stack: ExitStack) -> Path:
        """
        Turn an overlay reference into a local file path.

        Remote (http/https) overlays are downloaded to a temp file that is
        removed when the stack unwinds.
        """
        if not ref:
            raise InvalidImageError("No watermark image configured")

        parsed = urlparse(ref)
        if parsed.scheme not in ("http", "https"):
            return Path(ref)

        try:
            response = requests.get(ref, timeout=OVERLAY_DOWNLOAD_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise InvalidImageError(f"Cannot download watermark image {ref}: {e}")

        fd, temp_name = tempfile.mkstemp(prefix="lightmark-overlay-")
        temp_path = Path(temp_name)
        stack.callback(_remove_quietly, temp_path)
        with os.fdopen(fd, "wb") as f:
            f.write(response.content)
        return temp_path

    @staticmethod
    def _monitor_metadata(result: WatermarkResult, destination: Path) -> dict:
        metadata = {"success": result.success, "from_cache": result.from_cache}
        if result.dimensions is not None:
            metadata["image_dimensions"] = f"{result.dimensions[0]}x{result.dimensions[1]}"
        if result.success:
            try:
                metadata["file_size"] = destination.stat().st_size
            except OSError:
                pass
        return metadata


def _remove_quietly(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove temp file %s: %s", path, e)
