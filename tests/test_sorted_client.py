import time
from datetime import datetime, timedelta, timezone

import pytest

from valiforward.sorted_client import SortedClient
from valiforward.types import ClientStoppedError, FakeValiClient, LogEntry

FIVE_BYTES = "Hello"
TEN_BYTES = "Hello, sir"
FIFTEEN_BYTES = "Hello, sir Foo!"

NOW = datetime.now(timezone.utc)
NOW_PLUS_1 = NOW + timedelta(seconds=1)
NOW_PLUS_2 = NOW_PLUS_1 + timedelta(seconds=1)

STREAM_FOO = {"namespace_name": "foo"}
STREAM_BAR = {"namespace_name": "bar"}
STREAM_BUZZ = {"namespace_name": "buzz"}


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def make_client():
    created = []

    def factory(batch_wait=0.5, batch_size=90):
        fake = FakeValiClient()
        client = SortedClient(
            fake,
            batch_wait=batch_wait,
            batch_size=batch_size,
            number_of_batch_ids=2,
            id_label_name="id",
        )
        created.append(client)
        return client, fake

    yield factory
    for client in created:
        client.stop()


def test_sorts_one_stream(make_client):
    client, fake = make_client()
    for labels, ts, line in [
        (STREAM_FOO, NOW_PLUS_1, TEN_BYTES),
        (STREAM_FOO, NOW_PLUS_2, FIFTEEN_BYTES),
        (STREAM_FOO, NOW, FIVE_BYTES),
    ]:
        client.handle(labels, ts, line)

    assert _wait_for(lambda: len(fake.entries) == 3)
    expected_labels = {"namespace_name": "foo", "id": "0"}
    assert fake.entries == [
        LogEntry(expected_labels, NOW, FIVE_BYTES),
        LogEntry(expected_labels, NOW_PLUS_1, TEN_BYTES),
        LogEntry(expected_labels, NOW_PLUS_2, FIFTEEN_BYTES),
    ]


def test_sorts_three_streams(make_client):
    client, fake = make_client()
    entries = [
        (STREAM_FOO, NOW_PLUS_1, TEN_BYTES),
        (STREAM_FOO, NOW_PLUS_2, FIFTEEN_BYTES),
        (STREAM_BUZZ, NOW_PLUS_1, TEN_BYTES),
        (STREAM_FOO, NOW, FIVE_BYTES),
        (STREAM_BAR, NOW_PLUS_1, TEN_BYTES),
        (STREAM_BUZZ, NOW, FIVE_BYTES),
        (STREAM_BAR, NOW_PLUS_2, FIFTEEN_BYTES),
        (STREAM_BAR, NOW, FIVE_BYTES),
        (STREAM_BUZZ, NOW_PLUS_2, FIFTEEN_BYTES),
    ]
    for labels, ts, line in entries:
        client.handle(labels, ts, line)

    assert _wait_for(lambda: len(fake.entries) == 9)
    for stream in (STREAM_FOO, STREAM_BAR, STREAM_BUZZ):
        oldest = NOW - timedelta(seconds=1)
        namespace = stream["namespace_name"]
        for entry in fake.entries:
            if entry.labels["namespace_name"] == namespace:
                assert entry.timestamp > oldest
                oldest = entry.timestamp


def test_does_not_flush_when_within_batch_size(make_client):
    client, fake = make_client(batch_wait=5.0)
    client.handle(STREAM_FOO, NOW_PLUS_1, FIFTEEN_BYTES * 5 + TEN_BYTES)
    time.sleep(0.3)
    assert len(fake.entries) == 0


def test_flushes_when_batch_size_exceeded(make_client):
    client, fake = make_client(batch_wait=5.0)
    client.handle(STREAM_FOO, NOW_PLUS_1, FIFTEEN_BYTES * 5 + TEN_BYTES)
    client.handle(STREAM_FOO, NOW_PLUS_1, FIFTEEN_BYTES * 2)

    assert _wait_for(lambda: len(fake.entries) == 1)
    time.sleep(0.2)
    assert len(fake.entries) == 1
    assert fake.entries[0].line == FIFTEEN_BYTES * 5 + TEN_BYTES


def test_next_batch_gets_next_id(make_client):
    client, fake = make_client(batch_wait=5.0)
    client.handle(STREAM_FOO, NOW, FIFTEEN_BYTES * 5 + TEN_BYTES)
    client.handle(STREAM_FOO, NOW_PLUS_1, FIFTEEN_BYTES * 2)
    client.stop_wait()

    assert [entry.labels["id"] for entry in fake.entries] == ["0", "1"]


def test_does_not_flush_before_batch_wait(make_client):
    client, fake = make_client(batch_wait=5.0)
    client.handle(STREAM_FOO, NOW_PLUS_1, FIFTEEN_BYTES)
    time.sleep(0.3)
    with fake.lock:
        assert len(fake.entries) == 0


def test_flushes_after_batch_wait(make_client):
    client, fake = make_client()
    client.handle(STREAM_FOO, NOW_PLUS_1, FIFTEEN_BYTES)

    assert _wait_for(lambda: len(fake.entries) == 1)
    assert fake.entries[0] == LogEntry(
        {"namespace_name": "foo", "id": "0"}, NOW_PLUS_1, FIFTEEN_BYTES
    )


def test_stop(make_client):
    client, fake = make_client()
    assert not fake.is_gracefully_stopped
    assert not fake.is_stopped
    client.stop()
    assert not fake.is_gracefully_stopped
    assert fake.is_stopped


def test_stop_wait(make_client):
    client, fake = make_client()
    assert not fake.is_gracefully_stopped
    assert not fake.is_stopped
    client.stop_wait()
    assert fake.is_gracefully_stopped
    assert not fake.is_stopped


def test_stop_wait_sends_pending_batch(make_client):
    client, fake = make_client(batch_wait=5.0)
    client.handle(STREAM_FOO, NOW, FIVE_BYTES)
    client.stop_wait()
    assert fake.entries == [LogEntry({"namespace_name": "foo", "id": "0"}, NOW, FIVE_BYTES)]


def test_handle_after_stop_raises(make_client):
    client, _ = make_client()
    client.stop()
    with pytest.raises(ClientStoppedError):
        client.handle(STREAM_FOO, NOW, FIVE_BYTES)


def test_endpoint_is_forwarded(make_client):
    client, _ = make_client()
    assert client.get_endpoint() == "http://localhost"


def test_zero_batch_ids_rejected():
    with pytest.raises(ValueError):
        SortedClient(
            FakeValiClient(),
            batch_wait=1.0,
            batch_size=90,
            number_of_batch_ids=0,
            id_label_name="id",
        )