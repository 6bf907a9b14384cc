"""
Lightmark Package
=================
Watermark compositing engine for uploaded images.

Modules:
    - core: Pure algorithm logic (surfaces, codecs, layout, compositing)
    - pipeline: Orchestration, caching, configuration and monitoring

Usage:
    from lightmark import WatermarkConfig, WatermarkPipeline, CacheManager
"""

__version__ = "1.0.0"
__app_name__ = "Lightmark"

# Core exports
from .core import (
    Anchor, ErrorKind, ImageCodec, ImageFormat, Surface, TextLayout,
    WatermarkError, calculate_position
)
# Pipeline exports
from .pipeline import (
    CacheManager, Overrides, PerformanceMonitor, PipelineState, UploadHandler,
    WatermarkConfig, WatermarkOptions, WatermarkPipeline, WatermarkResult,
    WatermarkType
)

__all__ = [
    # Version info
    "__version__",
    "__app_name__",

    # Core
    "Anchor",
    "ErrorKind",
    "ImageCodec",
    "ImageFormat",
    "Surface",
    "TextLayout",
    "WatermarkError",
    "calculate_position",

    # Pipeline
    "CacheManager",
    "Overrides",
    "PerformanceMonitor",
    "PipelineState",
    "UploadHandler",
    "WatermarkConfig",
    "WatermarkOptions",
    "WatermarkPipeline",
    "WatermarkResult",
    "WatermarkType",
]
