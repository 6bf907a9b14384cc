"""
Cache Manager
=============
Filesystem cache of finished watermark outputs.

Layout: one file per fingerprint, `<fingerprint>.png` for PNG outputs and
`<fingerprint>.jpg` for everything else. Freshness comes from the file's
modification time; entries older than the window are misses.

Cache problems never fail a watermark run: read errors degrade to a miss,
write errors are logged and swallowed.
"""

import hashlib
import json
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Union

from lightmark.core.codec import ImageFormat
from .options import WatermarkOptions

logger = logging.getLogger(__name__)

# Seconds a cached output stays valid
FRESHNESS_WINDOW = 3600

CACHE_EXTENSIONS = ("png", "jpg")


def _atomic_copy(source: Path, destination: Path):
    """Copy via a temp file in the destination directory, then rename."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=".lightmark-", dir=destination.parent)
    os.close(fd)
    try:
        shutil.copyfile(source, temp_name)
        os.replace(temp_name, destination)
    except OSError:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise


class CacheManager:
    """
    Fingerprint-keyed store of watermarked images.

    Concurrent writers to the same fingerprint are not coordinated; the
    last rename wins, which is fine because identical inputs produce
    identical output.
    """

    def __init__(self, cache_dir: Union[str, Path], freshness_window: float = FRESHNESS_WINDOW):
        self.cache_dir = Path(cache_dir)
        self.freshness_window = freshness_window

    @staticmethod
    def fingerprint(image_ref: Union[str, Path], options: WatermarkOptions) -> str:
        """
        Deterministic key for an image and its effective options.

        Any option change yields a different fingerprint.
        """
        payload = json.dumps(options.to_canonical(), sort_keys=True, separators=(",", ":"))
        return hashlib.md5(f"{image_ref}{payload}".encode("utf-8")).hexdigest()

    @staticmethod
    def extension_for(fmt: ImageFormat) -> str:
        return "png" if fmt is ImageFormat.PNG else "jpg"

    def _entry_paths(self, fingerprint: str) -> List[Path]:
        return [self.cache_dir / f"{fingerprint}.{ext}" for ext in CACHE_EXTENSIONS]

    def lookup(self, fingerprint: str) -> Optional[Path]:
        """Return the cached file for a fingerprint if it is still fresh."""
        now = time.time()
        for path in self._entry_paths(fingerprint):
            try:
                age = now - path.stat().st_mtime
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Cache read failed for %s: %s", path, e)
                continue

            if age < self.freshness_window:
                return path
            logger.debug("Cache entry %s expired (%.0fs old)", path.name, age)
        return None

    def fetch(self, fingerprint: str, destination: Union[str, Path]) -> bool:
        """
        Copy a fresh cached output to `destination`.

        Returns:
            True on a hit that was delivered, False otherwise.
        """
        cached = self.lookup(fingerprint)
        if cached is None:
            return False

        try:
            _atomic_copy(cached, Path(destination))
        except OSError as e:
            logger.warning("Cache hit for %s could not be delivered: %s", fingerprint, e)
            return False

        logger.info("Served %s from cache", destination)
        return True

    def store(self, fingerprint: str, artifact: Union[str, Path], fmt: ImageFormat) -> Optional[Path]:
        """
        Save a finished output under its fingerprint, replacing any prior entry.

        Returns:
            The cache file path, or None if storing failed.
        """
        target = self.cache_dir / f"{fingerprint}.{self.extension_for(fmt)}"
        try:
            _atomic_copy(Path(artifact), target)
            for path in self._entry_paths(fingerprint):
                if path != target and path.exists():
                    path.unlink()
        except OSError as e:
            logger.warning("Cache store failed for %s: %s", fingerprint, e)
            return None
        return target

    def purge_expired(self) -> int:
        """Delete entries older than the freshness window. Returns the count."""
        if not self.cache_dir.is_dir():
            return 0

        cutoff = time.time() - self.freshness_window
        removed = 0
        for ext in CACHE_EXTENSIONS:
            for path in self.cache_dir.glob(f"*.{ext}"):
                try:
                    if path.stat().st_mtime <= cutoff:
                        path.unlink()
                        removed += 1
                except OSError as e:
                    logger.warning("Could not purge %s: %s", path, e)

        if removed:
            logger.info("Purged %d expired cache entries", removed)
        return removed

    def clear(self) -> int:
        """Delete every cache entry. Returns the count."""
        if not self.cache_dir.is_dir():
            return 0

        removed = 0
        for ext in CACHE_EXTENSIONS:
            for path in self.cache_dir.glob(f"*.{ext}"):
                try:
                    path.unlink()
                    removed += 1
                except OSError as e:
                    logger.warning("Could not remove %s: %s", path, e)
        return removed
