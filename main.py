"""
Lightmark - Main Entry Point
============================
Command-line front end for the watermark engine.

Usage:
    python main.py apply photo.jpg out.jpg --config watermark.json
    python main.py apply photo.png --text "(c) Lightmark" --position top-left
    python main.py init-config watermark.json
    python main.py purge-cache --cache-dir cache
    python main.py stats --log logs/watermark_performance.log

Architecture:
    - Model: lightmark/core/ (pure algorithms)
    - Orchestration: lightmark/pipeline/
    - Controller: This file (argument parsing and reporting)
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from lightmark import __app_name__, __version__
from lightmark.pipeline import (
    CacheManager, PerformanceMonitor, WatermarkConfig, WatermarkPipeline
)

logger = logging.getLogger("lightmark.cli")

DEFAULT_CACHE_DIR = Path("cache")
DEFAULT_LOG_FILE = Path("logs") / "watermark_performance.log"


class WatermarkController:
    """
    Connects parsed command-line arguments to the pipeline.

    Responsibilities:
    - Load and validate configuration
    - Build per-call overrides from flags
    - Run the pipeline and report the outcome
    """

    def __init__(self, args: argparse.Namespace):
        self.args = args

    def apply(self) -> int:
        args = self.args
        config = WatermarkConfig.load(args.config, font_dir=args.font_dir)

        overrides = config.overrides(
            text=args.text,
            font_file=args.font,
            size=args.size,
            angle=args.angle,
            color=args.color,
            overlay_image=args.image,
            type="image_watermark" if args.image else None,
            position=args.position,
            margin=args.margin,
            opacity=args.opacity,
        )

        cache = None if args.no_cache else CacheManager(args.cache_dir)
        monitor = PerformanceMonitor(args.log) if args.log else None
        pipeline = WatermarkPipeline(cache=cache, monitor=monitor)

        destination = args.destination or args.source
        try:
            result = pipeline.run(args.source, destination, config.to_options(), overrides)
        finally:
            if monitor is not None:
                monitor.close()

        if result.success:
            origin = "cache" if result.from_cache else "pipeline"
            print(f"Watermarked {result.source_path} -> {result.output_path} ({origin})")
            return 0

        print(f"Failed: {result.error_message} [{result.error_kind.value}]", file=sys.stderr)
        return 1

    def init_config(self) -> int:
        path = WatermarkConfig(font_dir=self.args.font_dir).save(self.args.path)
        print(f"Wrote default configuration to {path}")
        return 0

    def purge_cache(self) -> int:
        cache = CacheManager(self.args.cache_dir)
        removed = cache.clear() if self.args.all else cache.purge_expired()
        print(f"Removed {removed} cache entries")
        return 0

    def stats(self) -> int:
        monitor = PerformanceMonitor(self.args.log)
        if self.args.clean_days is not None:
            monitor.clean_old_logs(self.args.clean_days)
        print(json.dumps(monitor.statistics(self.args.hours), indent=2))
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lightmark",
        description="Add text or image watermarks to JPEG, PNG and GIF images."
    )
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    apply_p = sub.add_parser("apply", help="watermark one image")
    apply_p.add_argument("source", type=Path)
    apply_p.add_argument("destination", type=Path, nargs="?",
                         help="output path (default: overwrite source)")
    apply_p.add_argument("--config", type=Path, default=Path("watermark.json"))
    apply_p.add_argument("--font-dir", type=Path, default=Path("fonts"))
    apply_p.add_argument("--cache-dir", type=Path, default=DEFAULT_CACHE_DIR)
    apply_p.add_argument("--no-cache", action="store_true")
    apply_p.add_argument("--log", type=Path, help="performance log file")
    apply_p.add_argument("--text")
    apply_p.add_argument("--font", help="font file name or path")
    apply_p.add_argument("--size", type=int, help="font size in points (8-72)")
    apply_p.add_argument("--angle", type=int, help="text angle in degrees (0-360)")
    apply_p.add_argument("--color", help="text color as #RRGGBB")
    apply_p.add_argument("--image", help="overlay image path or URL")
    apply_p.add_argument("--position", help="grid anchor, e.g. bottom-right")
    apply_p.add_argument("--margin", type=int, help="margin in pixels (0-200)")
    apply_p.add_argument("--opacity", type=int, help="overlay opacity percent (0-100)")

    init_p = sub.add_parser("init-config", help="write a default configuration file")
    init_p.add_argument("path", type=Path)
    init_p.add_argument("--font-dir", type=Path, default=Path("fonts"))

    purge_p = sub.add_parser("purge-cache", help="remove expired cache entries")
    purge_p.add_argument("--cache-dir", type=Path, default=DEFAULT_CACHE_DIR)
    purge_p.add_argument("--all", action="store_true", help="remove every entry")

    stats_p = sub.add_parser("stats", help="show performance statistics")
    stats_p.add_argument("--log", type=Path, default=DEFAULT_LOG_FILE)
    stats_p.add_argument("--hours", type=float, default=24)
    stats_p.add_argument("--clean-days", type=int,
                         help="first drop records older than this many days")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    controller = WatermarkController(args)
    commands = {
        "apply": controller.apply,
        "init-config": controller.init_config,
        "purge-cache": controller.purge_cache,
        "stats": controller.stats,
    }
    return commands[args.command]()


if __name__ == "__main__":
    sys.exit(main())
