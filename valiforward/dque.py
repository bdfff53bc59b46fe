"""A persistent on-disk queue and a client that buffers records through it."""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from collections import deque
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from valiforward.types import LogEntry, ValiClient

_log = logging.getLogger(__name__)

_SEGMENT_SUFFIX = ".dque"
BUFFER_TYPE_DQUE = "dque"


class QueueClosedError(RuntimeError):
    """Raised when a closed queue is used."""


class DiskQueue:
    """A FIFO queue of JSON values kept in numbered segment files on disk.

    Each segment holds at most ``segment_size`` items. With ``sync`` set every
    write is flushed to stable storage before returning.
    """

    def __init__(self, name: str, directory: str | os.PathLike[str], segment_size: int, sync: bool = True) -> None:
        if segment_size < 1:
            raise ValueError("segment_size must be at least 1")
        self.name = name
        self.directory = Path(directory)
        self.path = self.directory / name
        self.segment_size = segment_size
        self.sync = sync
        self._cond = threading.Condition()
        self._closed = False
        self.path.mkdir(parents=True, exist_ok=True)

        numbers = sorted(
            int(p.stem) for p in self.path.glob(f"*{_SEGMENT_SUFFIX}") if p.stem.isdigit()
        )
        self._segments: list[int] = []
        contents: list[list[Any]] = []
        for number in numbers:
            items = self._read_segment(number)
            if items:
                self._segments.append(number)
                contents.append(items)
            else:
                self._segment_path(number).unlink(missing_ok=True)
        self._head: deque[Any] = deque(contents[0] if contents else ())
        self._tail_count = len(contents[-1]) if contents else 0
        self._size = sum(len(items) for items in contents)

    def _segment_path(self, number: int) -> Path:
        return self.path / f"{number:013d}{_SEGMENT_SUFFIX}"

    def _read_segment(self, number: int) -> list[Any]:
        with self._segment_path(number).open(encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]

    def _write(self, handle) -> None:
        handle.flush()
        if self.sync:
            os.fsync(handle.fileno())

    def _append(self, encoded: str) -> None:
        with self._segment_path(self._segments[-1]).open("a", encoding="utf-8") as handle:
            handle.write(encoded + "\n")
            self._write(handle)

    def _rewrite_head(self) -> None:
        target = self._segment_path(self._segments[0])
        temporary = target.with_suffix(".tmp")
        with temporary.open("w", encoding="utf-8") as handle:
            handle.writelines(json.dumps(item) + "\n" for item in self._head)
            self._write(handle)
        os.replace(temporary, target)

    def _drop_consumed(self) -> None:
        if self._head:
            self._rewrite_head()
            return
        self._segment_path(self._segments.pop(0)).unlink(missing_ok=True)
        if self._segments:
            self._head = deque(self._read_segment(self._segments[0]))
        else:
            self._tail_count = 0

    def enqueue(self, item: Any) -> None:
        """Append a JSON-serialisable item to the end of the queue."""
        encoded = json.dumps(item)
        with self._cond:
            if self._closed:
                raise QueueClosedError(f"queue {self.name} is closed")
            if not self._segments or self._tail_count >= self.segment_size:
                self._segments.append(self._segments[-1] + 1 if self._segments else 1)
                self._tail_count = 0
            self._append(encoded)
            self._tail_count += 1
            if len(self._segments) == 1:
                self._head.append(json.loads(encoded))
            self._size += 1
            self._cond.notify()

    def dequeue_block(self) -> Any:
        """Remove and return the first item, waiting while the queue is empty."""
        with self._cond:
            while not self._closed and self._size == 0:
                self._cond.wait()
            if self._closed:
                raise QueueClosedError(f"queue {self.name} is closed")
            item = self._head.popleft()
            self._size -= 1
            self._drop_consumed()
            return item

    def size(self) -> int:
        """Number of items waiting in the queue."""
        with self._cond:
            return self._size

    def close(self) -> None:
        """Close the queue, waking any blocked readers."""
        with self._cond:
            if self._closed:
                raise QueueClosedError(f"queue {self.name} is already closed")
            self._closed = True
            self._cond.notify_all()


def _encode(entry: LogEntry) -> dict[str, Any]:
    return {
        "labels": dict(entry.labels),
        "timestamp": entry.timestamp.isoformat(),
        "line": entry.line,
    }


def _decode(item: Any) -> LogEntry | None:
    try:
        return LogEntry(
            dict(item["labels"]),
            datetime.fromisoformat(item["timestamp"]),
            str(item["line"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


class DqueClient(ValiClient):
    """Buffers records in a disk queue and forwards them from a background thread."""

    def __init__(
        self,
        client: ValiClient,
        queue_dir: str | os.PathLike[str],
        queue_name: str,
        segment_size: int = 500,
        queue_sync: bool = False,
    ) -> None:
        os.makedirs(queue_dir, exist_ok=True)
        self.queue = DiskQueue(queue_name, queue_dir, segment_size, sync=queue_sync)
        self.client = client
        self._lock = threading.Lock()
        self._stopped = False
        self._thread = threading.Thread(target=self._dequeuer, name=f"dque-{queue_name}", daemon=True)
        self._thread.start()
        _log.debug("dque client %s created", queue_name)

    def _forward(self, item: Any) -> None:
        entry = _decode(item)
        if entry is None:
            _log.error("error record is not a valid type")
            return
        try:
            self.client.handle(entry.labels, entry.timestamp, entry.line)
        except Exception:
            _log.exception("error sending record to %s", self.client.get_endpoint())

    def _dequeuer(self) -> None:
        while True:
            try:
                item = self.queue.dequeue_block()
            except QueueClosedError:
                return
            except (OSError, ValueError):
                _log.exception("error dequeue record")
                continue
            self._forward(item)
            with self._lock:
                if self._stopped and self.queue.size() <= 0:
                    return

    def _close_queue(self, clean: bool) -> None:
        try:
            self.queue.close()
        except QueueClosedError as exc:
            _log.error("error closing buffered client: %s", exc)
            return
        if clean:
            try:
                shutil.rmtree(self.queue.path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                _log.error("cannot remove %s buffer: %s", self.queue.name, exc)

    def handle(self, labels: dict[str, str] | None, timestamp: datetime, line: str) -> None:
        # Records arriving after a graceful stop are dropped.
        if self._stopped:
            return
        self.queue.enqueue(_encode(LogEntry(dict(labels or {}), timestamp, line)))

    def stop(self) -> None:
        self._close_queue(clean=False)
        self.client.stop()
        _log.debug("dque client stopped, without waiting")

    def stop_wait(self) -> None:
        with self._lock:
            self._stopped = True
            pending = self.queue.size()
        if pending:
            self._thread.join()
        self._close_queue(clean=True)
        self._thread.join()
        self.client.stop_wait()
        _log.debug("dque client stopped")

    def get_endpoint(self) -> str:
        return self.client.get_endpoint()


def new_buffer(
    buffer_type: str,
    queue_dir: str | os.PathLike[str],
    queue_name: str,
    segment_size: int,
    queue_sync: bool,
    client_factory: Callable[[], ValiClient],
) -> ValiClient:
    """Build a buffered client of the given type around the client the factory makes."""
    if buffer_type != BUFFER_TYPE_DQUE:
        raise ValueError(f"failed to parse bufferType: {buffer_type}")
    return DqueClient(client_factory(), queue_dir, queue_name, segment_size, queue_sync)