"""Assembly of a log client from a base client and a stack of decorators."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from valiforward.dque import BUFFER_TYPE_DQUE, new_buffer
from valiforward.multi_tenant import (
    MultiTenantClient,
    RemoveMultiTenantIdClient,
    RemoveTenantIdClient,
)
from valiforward.pack import PackClient
from valiforward.sorted_client import SortedClient
from valiforward.types import ValiClient

_log = logging.getLogger(__name__)


@dataclass
class ClientOptions:
    """Settings that decide which decorators wrap the base client.

    ``preserved_labels`` set to ``None`` disables packing; any other value
    (even an empty collection) enables it with those labels kept as labels.
    """

    remove_tenant_id: bool = False
    multi_tenant_client: bool = False
    preserved_labels: Iterable[str] | None = None
    sort_by_timestamp: bool = False
    batch_wait: float = 1.0
    batch_size: int = 1024 * 1024
    number_of_batch_ids: int = 10
    id_label_name: str = "id"
    buffer: bool = False
    buffer_type: str = BUFFER_TYPE_DQUE
    queue_dir: str | Path = "/tmp/flb-storage/vali"
    queue_name: str = "dque"
    queue_segment_size: int = 500
    queue_sync: bool = False


def _decorated(options: ClientOptions, base_factory: Callable[[], ValiClient]) -> ValiClient:
    client = base_factory()
    if options.sort_by_timestamp:
        client = SortedClient(
            client,
            batch_wait=options.batch_wait,
            batch_size=options.batch_size,
            number_of_batch_ids=options.number_of_batch_ids,
            id_label_name=options.id_label_name,
        )
    # Packing must come after every layer that still reads the labels it packs away.
    if options.preserved_labels is not None:
        client = PackClient(client, options.preserved_labels)
    if options.remove_tenant_id:
        client = RemoveTenantIdClient(client)
    if options.multi_tenant_client:
        client = MultiTenantClient(client)
    else:
        client = RemoveMultiTenantIdClient(client)
    return client


def new_client(options: ClientOptions, base_factory: Callable[[], ValiClient]) -> ValiClient:
    """Build a client around the one ``base_factory`` makes, wrapped as ``options`` ask."""
    _log.debug("building a new client, queue_name=%s", options.queue_name)
    if options.buffer:
        return new_buffer(
            options.buffer_type,
            options.queue_dir,
            options.queue_name,
            options.queue_segment_size,
            options.queue_sync,
            lambda: _decorated(options, base_factory),
        )
    return _decorated(options, base_factory)