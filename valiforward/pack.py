"""A client that packs non-preserved labels into the log line as JSON."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime

from valiforward.types import ValiClient

_log = logging.getLogger(__name__)

_JSON_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


def _format_time(timestamp: datetime) -> str:
    if timestamp.tzinfo is None:
        timestamp = timestamp.astimezone()
    text = timestamp.strftime("%Y-%m-%d %H:%M:%S")
    if timestamp.microsecond:
        text += "." + f"{timestamp.microsecond:06d}".rstrip("0")
    offset = timestamp.strftime("%z")
    name = timestamp.tzname() or offset
    if name.startswith("UTC") and name != "UTC":
        name = offset
    return f"{text} {offset} {name}"


def pack_line(labels: dict[str, str] | None, timestamp: datetime, line: str) -> str:
    """Encode labels, the line (as ``_entry``) and the time (as ``time``) into compact JSON."""
    record = dict(labels or {})
    record["_entry"] = line
    record["time"] = _format_time(timestamp)
    encoded = json.dumps(record, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return encoded.translate(_JSON_ESCAPES)


class PackClient(ValiClient):
    """Moves every label except the preserved ones and ``__``-prefixed ones into the line.

    Packing only happens when the record carries at least one preserved label;
    packed records are then stamped with the current time.
    """

    def __init__(self, client: ValiClient, preserved_labels: Iterable[str]) -> None:
        self.client = client
        self.preserved_labels = frozenset(preserved_labels)
        _log.debug("pack client created")

    def handle(self, labels: dict[str, str] | None, timestamp: datetime, line: str) -> None:
        labels = {} if labels is None else labels
        if any(name in labels for name in self.preserved_labels):
            packed = {
                name: value
                for name, value in labels.items()
                if name not in self.preserved_labels and not name.startswith("__")
            }
            for name in packed:
                del labels[name]
            line = pack_line(packed, timestamp, line)
            # Packed streams are not guaranteed to be in time order, so restamp them.
            timestamp = datetime.now(timestamp.tzinfo)
        self.client.handle(labels, timestamp, line)

    def stop(self) -> None:
        self.client.stop()
        _log.debug("pack client stopped without waiting")

    def stop_wait(self) -> None:
        self.client.stop_wait()
        _log.debug("pack client stopped")

    def get_endpoint(self) -> str:
        return self.client.get_endpoint()