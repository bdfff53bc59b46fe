"""A client that groups records into batches and sends them sorted by time."""

from __future__ import annotations

import logging
import queue
import threading
import time
from datetime import datetime

from valiforward.batch import Batch
from valiforward.multi_tenant import MultiTenantClient
from valiforward.types import ClientStoppedError, LogEntry, ValiClient

_log = logging.getLogger(__name__)

MIN_WAIT_CHECK_FREQUENCY = 0.01
WAIT_CHECK_FREQUENCY_DELIMITER = 10

_QUIT = object()


class SortedClient(ValiClient):
    """Collects records into batches and passes them on stream by stream, sorted by time.

    A batch is sent when the next line would take it over ``batch_size`` bytes or
    once it is older than ``batch_wait`` seconds. Every stream carries an
    ``id_label_name`` label holding the batch number modulo ``number_of_batch_ids``.
    Streams are handed to the wrapped client through the multi-tenant fan-out.
    """

    def __init__(
        self,
        client: ValiClient,
        *,
        batch_wait: float,
        batch_size: int,
        number_of_batch_ids: int,
        id_label_name: str,
    ) -> None:
        if number_of_batch_ids < 1:
            raise ValueError("number_of_batch_ids must be at least 1")
        self._client = MultiTenantClient(client)
        self.batch_wait = batch_wait
        self.batch_size = batch_size
        self.number_of_batch_ids = number_of_batch_ids
        self.id_label_name = id_label_name
        self._batch_id = 0
        self._batch: Batch | None = Batch(id_label_name, 0)
        self._batch_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stopped = False
        self._entries: queue.Queue[object] = queue.Queue()
        self._thread = threading.Thread(target=self._run, name="sorted-client", daemon=True)
        self._thread.start()
        _log.debug("sorted client started")

    def _run(self) -> None:
        frequency = max(self.batch_wait / WAIT_CHECK_FREQUENCY_DELIMITER, MIN_WAIT_CHECK_FREQUENCY)
        next_check = time.monotonic() + frequency
        while True:
            timeout = max(0.0, next_check - time.monotonic())
            try:
                item = self._entries.get(timeout=timeout)
            except queue.Empty:
                pass
            else:
                if item is _QUIT:
                    return
                self._accept(item)  # type: ignore[arg-type]
            now = time.monotonic()
            if now >= next_check:
                if self._batch_wait_exceeded():
                    self._send_batch()
                next_check = now + frequency

    def _accept(self, entry: LogEntry) -> None:
        if self._batch is None:
            self._new_batch(entry)
        elif self._batch.size_bytes_after(entry.line) > self.batch_size:
            self._send_batch()
            self._new_batch(entry)
        else:
            self._new_batch(entry)

    def _batch_wait_exceeded(self) -> bool:
        with self._batch_lock:
            return self._batch is not None and self._batch.age() > self.batch_wait

    def _send_batch(self) -> None:
        with self._batch_lock:
            if self._batch is None:
                return
            self._batch.sort()
            for stream in self._batch.streams.values():
                try:
                    self._client.handle_stream(stream)
                except Exception:
                    _log.exception("error sending stream %s", stream.labels)
            self._batch = None

    def _new_batch(self, entry: LogEntry) -> None:
        with self._batch_lock:
            if self._batch is None:
                self._batch_id += 1
                self._batch = Batch(self.id_label_name, self._batch_id % self.number_of_batch_ids)
            self._batch.add(dict(entry.labels), entry.timestamp, entry.line)

    def _shutdown(self) -> bool:
        with self._state_lock:
            if self._stopped:
                return False
            self._stopped = True
            self._entries.put(_QUIT)
        self._thread.join()
        return True

    def handle(self, labels: dict[str, str] | None, timestamp: datetime, line: str) -> None:
        with self._state_lock:
            if self._stopped:
                raise ClientStoppedError("sorted client has been stopped")
            self._entries.put(LogEntry(dict(labels or {}), timestamp, line))

    def stop(self) -> None:
        if self._shutdown():
            self._client.stop()
            _log.debug("sorted client stopped without waiting")

    def stop_wait(self) -> None:
        if self._shutdown():
            self._send_batch()
            self._client.stop_wait()
            _log.debug("sorted client stopped")

    def get_endpoint(self) -> str:
        return self._client.get_endpoint()