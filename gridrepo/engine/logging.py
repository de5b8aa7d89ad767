"""
gridrepo Logging — Structured JSON operation trail with an async write queue.

Implements:
- FileLogger: one JSONL file per object type, category and UTC day, plus a
  reader that walks them newest first
- AsyncLogQueue: in-memory queue drained by a background thread
- Entry builders for file operations, timings and bucket events
- recent_file_operations: read back a bucket's trail through the global queue

Human-readable diagnostics go through the standard ``logging`` module with
per-module loggers under ``gridrepo.*``; this module carries the machine-
readable operation trail next to them.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

from gridrepo.engine.config import LoggingConfig

logger = logging.getLogger("gridrepo.engine.logging")

# Valid object types and their permitted categories
OBJECT_TYPE_CATEGORIES = {
    "files": ["execution", "performance"],
    "buckets": ["execution"],
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Append-only JSONL trail: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl

    Day files are named by UTC date, matching the UTC entry timestamps.
    Writes to the same file are serialized by a per-path lock.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Append entries, opening each target file once per batch."""
        grouped: Dict[Path, List[LogEntry]] = defaultdict(list)
        day = _utc_now().date().isoformat()
        for entry in entries:
            grouped[self._log_dir / entry.object_type / entry.category / f"{day}.jsonl"].append(entry)

        for path, batch in grouped.items():
            with self._file_locks[str(path)]:
                with open(path, "a", encoding="utf-8") as f:
                    f.writelines(entry.to_json() + "\n" for entry in batch)

    def read_entries(
        self,
        object_type: str,
        category: str,
        *,
        bucket: Optional[str] = None,
        operation: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Entries of one object_type/category, newest first.

        ``bucket`` and ``operation`` match the entry fields of the same name.
        ``since`` (timezone-aware) drops older entries and stops the walk at
        the first day file that predates it.
        """
        base = self._log_dir / object_type / category
        if not base.is_dir():
            return []

        first_day = since.astimezone(timezone.utc).date().isoformat() if since else None
        results: List[Dict[str, Any]] = []
        for path in sorted(base.glob("*.jsonl"), reverse=True):
            if first_day and path.stem < first_day:
                break
            for data in reversed(self._read_lines(path)):
                if bucket is not None and data.get("bucket") != bucket:
                    continue
                if operation is not None and data.get("operation") != operation:
                    continue
                if since is not None and not self._stamped_after(data, since):
                    continue
                results.append(data)
                if len(results) >= limit:
                    return results
        return results

    @staticmethod
    def _stamped_after(data: Dict[str, Any], since: datetime) -> bool:
        stamp = data.get("timestamp")
        if not stamp:
            return False
        try:
            return datetime.fromisoformat(stamp) >= since
        except ValueError:
            return False

    @staticmethod
    def _read_lines(path: Path) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(json.loads(line))
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping corrupt log line in {path}")
        except OSError as exc:
            logger.warning(f"Could not read log file {path}: {exc}")
        return entries


class AsyncLogQueue:
    """
    Non-blocking front of a FileLogger.

    Repository calls push entries and return immediately; a daemon thread
    writes them out in batches of up to ``flush_batch_size`` at least every
    ``flush_interval_ms``. When the queue is full new entries are dropped
    and counted.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._logger = file_logger
        self._flush_interval = flush_interval_ms / 1000.0
        self._flush_batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._running = False
        self._flush_thread: Optional[threading.Thread] = None
        self._dropped_count = 0

    @property
    def file_logger(self) -> FileLogger:
        return self._logger

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._flush_thread = threading.Thread(
            target=self._flush_loop,
            name="gridrepo-log-flush",
            daemon=True,
        )
        self._flush_thread.start()
        logger.info("Async log queue started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the flush thread and write whatever is still queued."""
        self._running = False
        if self._flush_thread and self._flush_thread.is_alive():
            self._flush_thread.join(timeout=timeout)
        self.flush()
        logger.info(f"Async log queue stopped (dropped: {self._dropped_count})")

    def push(self, entry: LogEntry) -> bool:
        """Queue an entry. Returns False when it was dropped (queue full)."""
        try:
            self._queue.put_nowait(entry)
            return True
        except Full:
            self._dropped_count += 1
            return False

    def flush(self) -> None:
        """Write every queued entry now, from the calling thread."""
        batch: List[LogEntry] = []
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        if batch:
            try:
                self._logger.write_batch(batch)
            except OSError as e:
                logger.error(f"Log flush error: {e}")

    def _flush_loop(self) -> None:
        while self._running:
            batch = self._collect_batch()
            if batch:
                try:
                    self._logger.write_batch(batch)
                except OSError as e:
                    logger.error(f"Log flush error: {e}")
            else:
                time.sleep(self._flush_interval)

    def _collect_batch(self) -> List[LogEntry]:
        batch: List[LogEntry] = []
        deadline = time.monotonic() + self._flush_interval
        while len(batch) < self._flush_batch_size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                batch.append(self._queue.get(timeout=min(remaining, 0.01)))
            except Empty:
                if batch:
                    break
        return batch

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(event: str, level: str, bucket: str, **extra: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": _utc_now().isoformat(),
        "level": level,
        "event": event,
        "bucket": bucket,
    }
    entry.update(extra)
    return entry


def log_file_operation(
    operation: str,
    bucket: str,
    record_type: str,
    file_id: Optional[Any] = None,
    filename: Optional[str] = None,
    count: Optional[int] = None,
    size_bytes: Optional[int] = None,
    duration_ms: Optional[float] = None,
) -> LogEntry:
    """Build a file CRUD log entry."""
    data = _base_entry(
        event=f"file_{operation}",
        level="INFO",
        bucket=bucket,
        record_type=record_type,
        operation=operation,
    )
    if file_id is not None:
        data["file_id"] = str(file_id)
    if filename is not None:
        data["filename"] = filename
    if count is not None:
        data["count"] = count
    if size_bytes is not None:
        data["size_bytes"] = size_bytes
    if duration_ms is not None:
        data["duration_ms"] = round(duration_ms, 3)
    return LogEntry("files", "execution", data)


def log_file_performance(
    operation: str,
    bucket: str,
    duration_ms: float,
    size_bytes: Optional[int] = None,
) -> LogEntry:
    """Build a timing entry for a single file operation."""
    data = _base_entry(
        event=f"file_{operation}_timing",
        level="INFO",
        bucket=bucket,
        operation=operation,
        duration_ms=round(duration_ms, 3),
    )
    if size_bytes is not None:
        data["size_bytes"] = size_bytes
    return LogEntry("files", "performance", data)


def log_bucket_event(event: str, bucket: str, level: str = "WARNING", **details: Any) -> LogEntry:
    """Build a bucket-level event entry (drop, open)."""
    return LogEntry("buckets", "execution", _base_entry(event, level, bucket, **details))


# ---------------------------------------------------------------------------
# Convenience: Global Log Queue Singleton
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(config: Optional[LoggingConfig] = None) -> AsyncLogQueue:
    """
    Initialize the global async log queue and set the ``gridrepo`` logger level.
    """
    global _global_queue
    config = config or LoggingConfig()

    logging.getLogger("gridrepo").setLevel(config.level)

    file_logger = FileLogger(log_dir=config.directory)
    _global_queue = AsyncLogQueue(
        file_logger=file_logger,
        flush_interval_ms=config.async_queue.flush_interval_ms,
        flush_batch_size=config.async_queue.flush_batch_size,
        max_queue_size=config.async_queue.max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    """Get the global async log queue."""
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push a log entry to the global queue. Dropped when logging is not initialized."""
    if _global_queue is None:
        return False
    return _global_queue.push(entry)


def recent_file_operations(
    bucket: str,
    operation: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = 100,
) -> List[Dict[str, Any]]:
    """
    Operation entries recorded for ``bucket``, newest first.

    Queued entries are flushed first so the caller sees its own operations.
    Returns [] when logging is not initialized.
    """
    if _global_queue is None:
        return []
    _global_queue.flush()
    return _global_queue.file_logger.read_entries(
        "files", "execution",
        bucket=bucket, operation=operation, since=since, limit=limit,
    )


def shutdown_logging() -> None:
    """Flush and stop the global log queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
