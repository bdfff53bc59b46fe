"""Batching of log entries into streams keyed by their label set."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime


def format_labels(labels: dict[str, str] | None) -> str:
    """Render a label set canonically, e.g. ``{a="1", b="2"}``, sorted by name."""
    pairs = (
        f"{name}={json.dumps(value, ensure_ascii=False)}"
        for name, value in sorted((labels or {}).items())
    )
    return "{" + ", ".join(pairs) + "}"


@dataclass
class Entry:
    """A single log line with its timestamp."""

    timestamp: datetime
    line: str


@dataclass
class Stream:
    """Entries that share one label set."""

    labels: dict[str, str] = field(default_factory=dict)
    entries: list[Entry] = field(default_factory=list)
    out_of_order: bool = False
    last_timestamp: datetime | None = None

    def add(self, timestamp: datetime, line: str) -> None:
        """Append an entry, remembering whether it arrived out of order."""
        if self.last_timestamp is not None and timestamp < self.last_timestamp:
            self.out_of_order = True
        else:
            self.last_timestamp = timestamp
        self.entries.append(Entry(timestamp, line))

    def sort(self) -> None:
        """Order the entries by timestamp if any arrived out of order."""
        if self.out_of_order:
            self.entries.sort(key=lambda entry: entry.timestamp)
            self.out_of_order = False


class Batch:
    """Pending log entries, grouped into streams, waiting to be sent together."""

    def __init__(self, id_label_name: str, batch_id: int) -> None:
        self.id_label_name = id_label_name
        self.id = batch_id
        self.streams: dict[str, Stream] = {}
        self._bytes = 0
        self._created = time.monotonic()

    def add(self, labels: dict[str, str] | None, timestamp: datetime, line: str) -> None:
        """Add an entry to the stream of its label set, creating the stream if needed."""
        labels = labels or {}
        self._bytes += len(line.encode("utf-8"))
        key = format_labels(labels)
        stream = self.streams.get(key)
        if stream is not None:
            stream.add(timestamp, line)
            return
        stream_labels = dict(labels)
        stream_labels[self.id_label_name] = str(self.id)
        self.streams[key] = Stream(
            labels=stream_labels,
            entries=[Entry(timestamp, line)],
            last_timestamp=timestamp,
        )

    def size_bytes(self) -> int:
        """Total size in bytes of all lines in the batch."""
        return self._bytes

    def size_bytes_after(self, line: str) -> int:
        """Size of the batch after ``line`` would be added."""
        return self._bytes + len(line.encode("utf-8"))

    def age(self) -> float:
        """Seconds since the batch was created."""
        return time.monotonic() - self._created

    def sort(self) -> None:
        """Sort the entries of every stream by timestamp."""
        for stream in self.streams.values():
            stream.sort()