"""
Upload Handler
==============
Host-side hook that watermarks freshly uploaded images in place.

The handler receives an upload record ({"file": path, "type": mime}) and
always hands it back, watermarked or not. Nothing here raises: skipped
uploads are silent, failures are logged.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from lightmark.core.errors import WatermarkError
from .cache import CacheManager
from .config import WatermarkConfig
from .performance import NullMonitor
from .watermark_pipeline import WatermarkPipeline

logger = logging.getLogger(__name__)


DEFAULT_CACHE_DIR = "cache"


class UploadHandler:
    """
    Applies the configured watermark to image uploads.

    Args:
        config: Watermark configuration read on every upload.
        pipeline: Pipeline to run. Defaults to one backed by a cache in
                  `cache_dir`.
        monitor: Brackets each upload with begin()/end().
        cache_dir: Cache directory for the default pipeline.
    """

    def __init__(
            self,
            config: WatermarkConfig,
            pipeline: Optional[WatermarkPipeline] = None,
            monitor=None,
            cache_dir: Optional[Union[str, Path]] = None
    ):
        self.config = config
        if pipeline is None:
            cache = CacheManager(cache_dir if cache_dir is not None else DEFAULT_CACHE_DIR)
            pipeline = WatermarkPipeline(cache=cache)
        self.pipeline = pipeline
        self.monitor = monitor if monitor is not None else NullMonitor()

    def handle_upload(self, file: Dict[str, Any]) -> Dict[str, Any]:
        """
        Watermark an uploaded file in place when applicable.

        Args:
            file: Upload record with "file" (path) and "type" (MIME type).

        Returns:
            The same record.
        """
        if "image" not in str(file.get("type", "")):
            return file

        options = self.config.to_options()
        if not options.enabled:
            return file

        path = Path(file.get("file", ""))
        try:
            info = self.pipeline.codec.probe(path)
        except WatermarkError as e:
            logger.debug("Skipping upload %s: %s", path, e)
            return file

        if info.width < options.min_width or info.height < options.min_height:
            return file

        self.monitor.begin()
        success = self.pipeline.apply(path, path, options)
        if not success:
            logger.error("Failed to watermark upload %s", path)

        try:
            file_size = path.stat().st_size
        except OSError:
            file_size = 0
        try:
            self.monitor.end(
                "image_upload",
                file_size=file_size,
                image_dimensions=info.dimensions,
                success=success
            )
        except Exception as e:
            logger.warning("Performance monitor failed for %s: %s", path, e)

        return file
