"""Clients that fan records out to several tenants or strip tenant labels."""

from __future__ import annotations

from datetime import datetime
from functools import partial
from typing import Callable, Iterable

from valiforward.batch import Entry, Stream
from valiforward.types import Labels, ValiClient

MULTI_TENANT_CLIENT_LABEL = "__gardener_multitenant_id__"
MULTI_TENANT_CLIENTS_SEPARATOR = ";"
RESERVED_LABEL_TENANT_ID = "__tenant_id__"


def get_tenants(raw_ids: str) -> list[str]:
    """Split a separator-delimited tenant list, dropping blanks and surrounding spaces."""
    parts = (part.strip() for part in raw_ids.strip().split(MULTI_TENANT_CLIENTS_SEPARATOR))
    return [part for part in parts if part]


def _run_all(calls: Iterable[Callable[[], None]]) -> None:
    """Run every call, then raise the first error any of them raised."""
    errors: list[Exception] = []
    for call in calls:
        try:
            call()
        except Exception as exc:  # every call gets its chance before reporting
            errors.append(exc)
    if errors:
        raise errors[0]


def _drop_label(labels: Labels, name: str) -> dict[str, str]:
    """Return the label set (a new empty one for None) without the named label."""
    labels = {} if labels is None else labels
    labels.pop(name, None)
    return labels


class MultiTenantClient(ValiClient):
    """Sends a record once per tenant named in the multi-tenant label."""

    def __init__(self, client: ValiClient) -> None:
        self.client = client

    def handle(self, labels: Labels, timestamp: datetime, line: str) -> None:
        labels = {} if labels is None else labels
        self._fan_out(labels, lambda ls: self.client.handle(ls, timestamp, line))

    def handle_stream(self, stream: Stream) -> None:
        """Send every entry of a stream, once per tenant of its labels."""
        self._fan_out(stream.labels, lambda ls: self._handle_entries(ls, stream.entries))

    def stop(self) -> None:
        self.client.stop()

    def stop_wait(self) -> None:
        self.client.stop_wait()

    def get_endpoint(self) -> str:
        return self.client.get_endpoint()

    @staticmethod
    def _fan_out(labels: dict[str, str], send: Callable[[dict[str, str]], None]) -> None:
        if MULTI_TENANT_CLIENT_LABEL not in labels:
            send(labels)
            return
        tenants = get_tenants(labels.pop(MULTI_TENANT_CLIENT_LABEL))
        if not tenants:
            send(labels)
            return
        _run_all(partial(send, {**labels, RESERVED_LABEL_TENANT_ID: tenant}) for tenant in tenants)

    def _handle_entries(self, labels: dict[str, str], entries: list[Entry]) -> None:
        _run_all(partial(self.client.handle, labels, e.timestamp, e.line) for e in entries)


class RemoveMultiTenantIdClient(ValiClient):
    """Drops the multi-tenant label before passing records on."""

    def __init__(self, client: ValiClient) -> None:
        self.client = client

    def handle(self, labels: Labels, timestamp: datetime, line: str) -> None:
        self.client.handle(_drop_label(labels, MULTI_TENANT_CLIENT_LABEL), timestamp, line)

    def stop(self) -> None:
        self.client.stop()

    def stop_wait(self) -> None:
        self.client.stop_wait()

    def get_endpoint(self) -> str:
        return self.client.get_endpoint()


class RemoveTenantIdClient(ValiClient):
    """Drops the tenant id label before passing records on."""

    def __init__(self, client: ValiClient) -> None:
        self.client = client

    def handle(self, labels: Labels, timestamp: datetime, line: str) -> None:
        self.client.handle(_drop_label(labels, RESERVED_LABEL_TENANT_ID), timestamp, line)

    def stop(self) -> None:
        self.client.stop()

    def stop_wait(self) -> None:
        self.client.stop_wait()

    def get_endpoint(self) -> str:
        return self.client.get_endpoint()