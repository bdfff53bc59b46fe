"""The client interface shared by all log clients, and an in-memory fake."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

Labels = Optional[Dict[str, str]]


class ClientStoppedError(RuntimeError):
    """Raised when a log is handed to a client that has been stopped."""


@dataclass
class LogEntry:
    """A log record: its labels, timestamp and line."""

    labels: dict[str, str]
    timestamp: datetime
    line: str


class ValiClient(ABC):
    """Something that accepts log records and ships them to a backend."""

    @abstractmethod
    def handle(self, labels: Labels, timestamp: datetime, line: str) -> None:
        """Process a log record and send it on."""

    @abstractmethod
    def stop(self) -> None:
        """Shut down immediately without sending saved logs."""

    @abstractmethod
    def stop_wait(self) -> None:
        """Stop accepting logs and wait until saved logs are sent."""

    @abstractmethod
    def get_endpoint(self) -> str:
        """The target backend endpoint."""


class FakeValiClient(ValiClient):
    """A client that keeps every record it receives in memory."""

    def __init__(self) -> None:
        self.is_stopped = False
        self.is_gracefully_stopped = False
        self.entries: list[LogEntry] = []
        self.lock = threading.Lock()

    def handle(self, labels: Labels, timestamp: datetime, line: str) -> None:
        if self.is_stopped or self.is_gracefully_stopped:
            raise ClientStoppedError("client has been stopped")
        record = LogEntry(dict(labels or {}), timestamp, line)
        with self.lock:
            self.entries.append(record)

    def stop(self) -> None:
        self.is_stopped = True

    def stop_wait(self) -> None:
        self.is_gracefully_stopped = True

    def get_endpoint(self) -> str:
        return "http://localhost"