"""
Pipeline Module - Orchestration
===============================
Options and configuration, the cache, performance monitoring and the
watermark pipeline that ties the core components together.

Components:
- WatermarkPipeline: one request from source file to destination file
- CacheManager: fingerprint-keyed output cache
- WatermarkConfig: defaults, validation and persistence of settings
- PerformanceMonitor: begin/end timing records
- UploadHandler: host hook for uploaded files
"""

from .cache import CacheManager, FRESHNESS_WINDOW
from .config import WatermarkConfig
from .options import Overrides, WatermarkOptions, WatermarkType
from .performance import NullMonitor, PerformanceMonitor
from .upload import UploadHandler
from .watermark_pipeline import PipelineState, WatermarkPipeline, WatermarkResult

__all__ = [
    # Pipeline
    "WatermarkPipeline",
    "WatermarkResult",
    "PipelineState",
    # Options
    "WatermarkOptions",
    "WatermarkType",
    "Overrides",
    "WatermarkConfig",
    # Collaborators
    "CacheManager",
    "FRESHNESS_WINDOW",
    "PerformanceMonitor",
    "NullMonitor",
    "UploadHandler",
]
