"""
Performance Monitor
===================
Brackets watermark runs with begin()/end() and records timing data.

Records are JSON lines written through a dedicated logger with a
RotatingFileHandler (5 MB per file, 5 backups). Memory deltas are only
reported while tracemalloc is tracing.
"""

import json
import logging
import os
import time
import tracemalloc
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5


class NullMonitor:
    """Monitor that records nothing."""

    def begin(self):
        pass

    def end(self, operation: str, **metadata: Any) -> Optional[Dict[str, Any]]:
        return None


class PerformanceMonitor:
    """
    Measures duration (and memory when traced) of each bracketed operation.

    Args:
        log_file: JSON-lines file to append records to. If None, records
                  only go to the module logger at DEBUG level.
        max_bytes: Size at which the log file is rotated.
        backup_count: Number of rotated files kept.
    """

    def __init__(
            self,
            log_file: Optional[Union[str, Path]] = None,
            max_bytes: int = MAX_LOG_BYTES,
            backup_count: int = BACKUP_COUNT
    ):
        self.log_file = Path(log_file) if log_file is not None else None
        self.max_bytes = max_bytes
        self.backup_count = backup_count

        # (start time, start memory) per open bracket; brackets may nest
        self._starts: List[Tuple[float, int]] = []
        self._handler: Optional[RotatingFileHandler] = None
        self._record_logger: Optional[logging.Logger] = None

    # ===== Bracketing =====

    def begin(self):
        memory = tracemalloc.get_traced_memory()[0] if tracemalloc.is_tracing() else 0
        self._starts.append((time.perf_counter(), memory))

    def end(self, operation: str, **metadata: Any) -> Dict[str, Any]:
        """
        Finish the innermost open measurement and log it.

        Args:
            operation: Name of the bracketed operation.
            **metadata: Extra fields (file size, dimensions...).

        Returns:
            The record that was logged.
        """
        if not self._starts:
            raise RuntimeError("end() called without begin()")
        start_time, start_memory = self._starts.pop()

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        memory_mb = 0.0
        if tracemalloc.is_tracing():
            used = tracemalloc.get_traced_memory()[0] - start_memory
            memory_mb = round(used / 1024 / 1024, 2)

        record: Dict[str, Any] = {
            "timestamp": datetime.now().strftime(TIMESTAMP_FORMAT),
            "operation": operation,
            "duration_ms": duration_ms,
            "memory_mb": memory_mb,
        }
        record.update(metadata)

        logger.debug("%s took %.2f ms", operation, duration_ms)
        if self.log_file is not None:
            self._get_record_logger().info(json.dumps(record))

        return record

    # ===== Log file handling =====

    def _get_record_logger(self) -> logging.Logger:
        if self._record_logger is None:
            self._record_logger = logging.getLogger(f"{__name__}.records.{id(self)}")
            self._record_logger.setLevel(logging.INFO)
            self._record_logger.propagate = False

        if self._handler is None:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            self._handler = RotatingFileHandler(
                self.log_file,
                maxBytes=self.max_bytes,
                backupCount=self.backup_count,
                encoding="utf-8"
            )
            self._handler.setFormatter(logging.Formatter("%(message)s"))
            self._record_logger.addHandler(self._handler)

        return self._record_logger

    def close(self):
        """Close the log file handler."""
        if self._handler is not None:
            if self._record_logger is not None:
                self._record_logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None

    def _read_records(self) -> Iterator[Dict[str, Any]]:
        if self.log_file is None or not self.log_file.exists():
            return
        with open(self.log_file, "r", encoding="utf-8") as f:
            for line in f:
                try:
                    data = json.loads(line)
                    data["_time"] = datetime.strptime(data["timestamp"], TIMESTAMP_FORMAT)
                except (ValueError, KeyError, TypeError):
                    continue
                yield data

    def statistics(self, period_hours: float = 24) -> Dict[str, Any]:
        """
        Aggregate records from the last `period_hours`.

        Returns:
            Dict with total_operations, avg/max duration (ms) and memory (MB).
        """
        stats = {
            "total_operations": 0,
            "avg_duration": 0,
            "avg_memory": 0,
            "max_duration": 0,
            "max_memory": 0,
        }

        cutoff = datetime.now() - timedelta(hours=period_hours)
        total_duration = 0.0
        total_memory = 0.0

        for data in self._read_records():
            if data["_time"] < cutoff:
                continue
            duration = float(data.get("duration_ms", 0))
            memory = float(data.get("memory_mb", 0))

            stats["total_operations"] += 1
            total_duration += duration
            total_memory += memory
            stats["max_duration"] = max(stats["max_duration"], duration)
            stats["max_memory"] = max(stats["max_memory"], memory)

        if stats["total_operations"]:
            stats["avg_duration"] = round(total_duration / stats["total_operations"], 2)
            stats["avg_memory"] = round(total_memory / stats["total_operations"], 2)

        return stats

    def clean_old_logs(self, days: int = 30) -> int:
        """
        Drop records older than `days` from the current log file.

        Returns:
            Number of records removed.
        """
        if self.log_file is None or not self.log_file.exists():
            return 0

        cutoff = datetime.now() - timedelta(days=days)
        kept = []
        removed = 0
        with open(self.log_file, "r", encoding="utf-8") as f:
            for line in f:
                try:
                    data = json.loads(line)
                    logged_at = datetime.strptime(data["timestamp"], TIMESTAMP_FORMAT)
                except (ValueError, KeyError, TypeError):
                    removed += 1
                    continue
                if logged_at >= cutoff:
                    kept.append(line if line.endswith("\n") else line + "\n")
                else:
                    removed += 1

        # The handler keeps the old file open; reopen on next write
        self.close()
        temp_file = self.log_file.with_name(self.log_file.name + ".temp")
        temp_file.write_text("".join(kept), encoding="utf-8")
        os.replace(temp_file, self.log_file)

        if removed:
            logger.info("Removed %d old performance records", removed)
        return removed
