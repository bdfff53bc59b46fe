# valiforward

Building blocks for forwarding labelled log lines. Every client implements the
small `ValiClient` interface from `valiforward.types`:

- `handle(labels, timestamp, line)` takes one log line with its label set
  (a `dict[str, str]`, or `None`) and a `datetime`.
- `stop()` shuts down at once.
- `stop_wait()` shuts down after pending logs have been passed on.
- `get_endpoint()` returns the target endpoint.

Most clients wrap another client, so a pipeline is built from layers.

## Modules

- `valiforward.batch`: `Batch`, `Stream` and `Entry`. A `Batch` groups lines
  into streams keyed by their label set, adds an id label holding the batch id
  to each new stream, counts the UTF-8 size of its lines (`size_bytes`,
  `size_bytes_after`) and reports its age in seconds (`age`). `sort` orders the
  entries of each stream by timestamp. `format_labels` gives the canonical
  text form of a label set, e.g. `{a="1", b="2"}`.
- `valiforward.types`: the `ValiClient` base class, the `LogEntry` record, and
  `FakeValiClient`, which keeps every record in its `entries` list and raises
  `ClientStoppedError` once it has been stopped.
- `valiforward.multi_tenant`:
  - `MultiTenantClient` splits the `__gardener_multitenant_id__` label on `;`,
    removes it, and sends one copy of the line per tenant with the tenant in
    `__tenant_id__`. `handle_stream` does the same for a whole `Stream`.
  - `RemoveMultiTenantIdClient` drops the `__gardener_multitenant_id__` label.
  - `RemoveTenantIdClient` drops the `__tenant_id__` label.
  - `get_tenants` parses a tenant list, ignoring blanks and surrounding spaces.
- `valiforward.pack`: `PackClient(client, preserved_labels)`. When a record
  carries at least one preserved label, every other label that does not start
  with `__` is moved into the line as compact JSON (see `pack_line`, which
  stores the original line under `_entry` and the time under `time`), and the
  record is restamped with the current time.
- `valiforward.sorted_client`: `SortedClient(client, *, batch_wait,
  batch_size, number_of_batch_ids, id_label_name)` collects lines into a batch
  on a background thread. A batch is sent when the next line would take it
  over `batch_size` bytes or once it is older than `batch_wait` seconds; each
  stream is sent in timestamp order, through the multi-tenant fan-out, and
  carries the batch number modulo `number_of_batch_ids` under `id_label_name`.
  `stop_wait` sends the pending batch first; `stop` discards it.
- `valiforward.dque`:
  - `DiskQueue(name, directory, segment_size, sync=True)` is a persistent FIFO
    of JSON values kept in numbered segment files under `directory/name`. It
    offers `enqueue`, `dequeue_block`, `size` and `close`; a closed queue
    raises `QueueClosedError`.
  - `DqueClient(client, queue_dir, queue_name, segment_size=500,
    queue_sync=False)` writes each record to a `DiskQueue` and forwards it from
    a background thread. `stop` closes the queue and leaves its files in
    place; `stop_wait` waits for the queue to drain, then removes its
    directory. Records handed in after `stop_wait` has begun are dropped.
  - `new_buffer(buffer_type, queue_dir, queue_name, segment_size, queue_sync,
    client_factory)` builds a `DqueClient` for the buffer type `"dque"` and
    raises `ValueError` for any other type.
- `valiforward.client`: `new_client(options, base_factory)` builds a pipeline
  from `ClientOptions` and a factory for the bottom client. Layers are applied
  from the inside out: `SortedClient` (if `sort_by_timestamp`), `PackClient`
  (if `preserved_labels` is not `None`), `RemoveTenantIdClient` (if
  `remove_tenant_id`), then `MultiTenantClient` if `multi_tenant_client`,
  otherwise `RemoveMultiTenantIdClient`. With `buffer` set, the whole stack is
  wrapped in a disk-buffered client built by `new_buffer`.
- `valiforward.copytool`: `copy_file`, `copy_dir` and `create_directory` copy a
  file (keeping its mode) or a directory tree.

## Example

```python
from datetime import datetime, timezone

from valiforward.multi_tenant import MultiTenantClient
from valiforward.types import FakeValiClient

sink = FakeValiClient()
client = MultiTenantClient(sink)
client.handle(
    {"hostname": "node-1", "__gardener_multitenant_id__": "operator; user"},
    datetime.now(timezone.utc),
    "hello",
)
# sink.entries now holds two entries, one with __tenant_id__="operator"
# and one with __tenant_id__="user".
client.stop_wait()
```

A fuller pipeline:

```python
from valiforward.client import ClientOptions, new_client
from valiforward.types import FakeValiClient

sink = FakeValiClient()
client = new_client(
    ClientOptions(sort_by_timestamp=True, batch_wait=2.0, multi_tenant_client=True),
    lambda: sink,
)
```

## Command line

The package installs a small copy tool:

```
valiforward-copy SOURCE DESTINATION
```

It copies a file, or a whole directory tree, to the destination. It exits with
status 0 on success, 1 if both arguments are missing, 2 if the destination is
missing, 3 if the copy fails and 4 if too many arguments are given.

## What it does not do

There is no client here that talks to a log server over the network: every
pipeline ends in a client you supply through `base_factory` or by wrapping it
directly. The package also has no configuration-file parsing, no metrics and
no long-running service; it is a library of client layers plus the copy tool.

## Tests

```
pip install -e ".[test]"
pytest
```