"""Unit tests for QueueClient against the in-memory store."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

import pytest

from pgmq_client import (
    ConfigError,
    DecodeError,
    EncodeError,
    InMemoryStore,
    Message,
    NotFoundError,
    PydanticCodec,
    QueueClient,
    create_client,
)


class RecordingStore(InMemoryStore):
    """InMemoryStore that remembers which operations were called."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.calls: list[str] = []

    async def enqueue(self, name, body):
        self.calls.append("enqueue")
        return await super().enqueue(name, body)

    async def read_batch(self, name, vt, count):
        self.calls.append("read_batch")
        return await super().read_batch(name, vt, count)

    async def delete(self, name, msg_ids):
        self.calls.append("delete")
        return await super().delete(name, msg_ids)


@pytest.mark.asyncio
class TestQueueAdmin:
    """Tests for queue lifecycle."""

    async def test_create_queue_is_idempotent(self, client):
        await client.create_queue("jobs")
        await client.create_queue("jobs")
        assert await client.send("jobs", {"n": 1}) == 1

    async def test_drop_queue_removes_backlog_and_archive(self, client, queue):
        msg_id = await client.send(queue, "a")
        await client.send(queue, "b")
        await client.archive(queue, msg_id)

        await client.drop_queue(queue)

        with pytest.raises(NotFoundError):
            await client.read(queue, 30)
        await client.create_queue(queue)
        assert await client.read(queue, 30) is None
        assert await client.store.archived(queue) == []

    async def test_drop_missing_queue_raises(self, client):
        with pytest.raises(NotFoundError):
            await client.drop_queue("missing")

    @pytest.mark.parametrize("name", ["", "has space", "semi;colon", "x" * 48])
    async def test_invalid_queue_name_raises(self, client, name):
        with pytest.raises(ConfigError):
            await client.create_queue(name)


@pytest.mark.asyncio
class TestSendAndRead:
    """Tests for send, read and read_batch."""

    async def test_send_then_read_returns_value(self, client, queue):
        value = {"hi": "world!", "n": [1, 2, 3]}
        msg_id = await client.send(queue, value)

        message = await client.read(queue, timedelta(seconds=30))

        assert isinstance(message, Message)
        assert message.id == msg_id
        assert message.body == value
        assert message.read_count == 1

    async def test_read_sets_visibility_timeout(self, client, queue, clock):
        await client.send(queue, "x")
        message = await client.read(queue, 30)
        assert message.vt == clock.now + timedelta(seconds=30)

    async def test_ids_increase(self, client, queue):
        ids = [await client.send(queue, i) for i in range(3)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3

    async def test_read_empty_queue_returns_none(self, client, queue):
        assert await client.read(queue, 30) is None

    async def test_read_returns_oldest_first(self, client, queue):
        for value in ("first", "second", "third"):
            await client.send(queue, value)
        message = await client.read(queue, 30)
        assert message.body == "first"

    async def test_read_batch_returns_up_to_count(self, client, queue):
        for i in range(5):
            await client.send(queue, i)

        first = await client.read_batch(queue, 30, 3)
        second = await client.read_batch(queue, 30, 3)
        third = await client.read_batch(queue, 30, 3)

        assert [m.body for m in first] == [0, 1, 2]
        assert [m.body for m in second] == [3, 4]
        assert third == []

    async def test_send_to_missing_queue_raises(self, client):
        with pytest.raises(NotFoundError):
            await client.send("missing", 1)

    async def test_encode_error_never_reaches_store(self, clock):
        store = RecordingStore(clock=clock)
        client = create_client(store)
        await client.create_queue("jobs")

        with pytest.raises(EncodeError):
            await client.send("jobs", {"bad": object()})
        assert store.calls == []

    async def test_decode_error_is_raised(self, client, queue, store):
        await store.enqueue(queue, b"{corrupt")
        with pytest.raises(DecodeError):
            await client.read(queue, 30)

    async def test_custom_codec(self, store):
        client = QueueClient(store, codec=PydanticCodec(list[int]))
        await client.create_queue("ints")
        await client.send("ints", [1, 2])
        message = await client.read("ints", 30)
        assert message.body == [1, 2]

    @pytest.mark.parametrize("count", [0, -1, 1.5, True])
    async def test_invalid_count_raises(self, clock, count):
        store = RecordingStore(clock=clock)
        client = create_client(store)
        await client.create_queue("jobs")
        with pytest.raises(ConfigError):
            await client.read_batch("jobs", 30, count)
        assert store.calls == []

    @pytest.mark.parametrize(
        "visibility_timeout",
        [timedelta(seconds=-1), -1, float("inf"), float("-inf"), float("nan"), 1e20],
    )
    async def test_invalid_visibility_timeout_raises(
        self, client, queue, visibility_timeout
    ):
        with pytest.raises(ConfigError):
            await client.read(queue, visibility_timeout)

    async def test_nan_payload_never_reaches_store(self, clock):
        store = RecordingStore(clock=clock)
        client = create_client(store)
        await client.create_queue("jobs")

        with pytest.raises(EncodeError):
            await client.send("jobs", {"score": float("nan")})
        with pytest.raises(EncodeError):
            await client.send("jobs", {"name": "a\x00b"})
        assert store.calls == []

    async def test_visibility_timeout_rejects_strings(self, client, queue):
        with pytest.raises(ConfigError):
            await client.read(queue, "30")


@pytest.mark.asyncio
class TestVisibility:
    """Tests for exclusive delivery and redelivery."""

    async def test_concurrent_reads_are_exclusive(self, client, queue):
        sent = {await client.send(queue, i) for i in range(3)}

        results = await asyncio.gather(*(client.read(queue, 30) for _ in range(10)))

        delivered = [r for r in results if r is not None]
        assert len(delivered) == 3
        assert results.count(None) == 7
        assert {m.id for m in delivered} == sent

    async def test_concurrent_batches_do_not_overlap(self, client, queue):
        for i in range(10):
            await client.send(queue, i)

        batches = await asyncio.gather(
            *(client.read_batch(queue, 30, 3) for _ in range(6))
        )

        ids = [m.id for batch in batches for m in batch]
        assert len(ids) == 10
        assert len(set(ids)) == 10

    async def test_locked_message_is_hidden(self, client, queue, clock):
        await client.send(queue, "x")
        await client.read(queue, 10)
        clock.advance(9)
        assert await client.read(queue, 10) is None

    async def test_message_visible_again_after_timeout(self, client, queue, clock):
        msg_id = await client.send(queue, "x")
        await client.read(queue, 10)

        clock.advance(10)
        message = await client.read(queue, 10)

        assert message.id == msg_id
        assert message.read_count == 2

    async def test_zero_visibility_timeout_redelivers_immediately(self, client, queue):
        await client.send(queue, "x")
        await client.read(queue, 0)
        message = await client.read(queue, 0)
        assert message.read_count == 2


@pytest.mark.asyncio
class TestArchiveAndDelete:
    """Tests for archive and delete."""

    async def test_archived_message_never_reappears(self, client, queue, clock):
        await client.send(queue, "keep")
        message = await client.read(queue, 5)

        await client.archive(queue, message)
        clock.advance(60)

        assert await client.read(queue, 5) is None
        assert await client.read_batch(queue, 5, 10) == []
        archived = await client.store.archived(queue)
        assert [m.id for m in archived] == [message.id]

    async def test_archive_by_id_without_read(self, client, queue):
        msg_id = await client.send(queue, "x")
        await client.archive(queue, msg_id)
        assert await client.read(queue, 5) is None

    async def test_archive_missing_message_raises(self, client, queue):
        with pytest.raises(NotFoundError):
            await client.archive(queue, 999)

    async def test_archive_twice_raises(self, client, queue):
        msg_id = await client.send(queue, "x")
        await client.archive(queue, msg_id)
        with pytest.raises(NotFoundError):
            await client.archive(queue, msg_id)

    async def test_delete_is_idempotent(self, client, queue):
        msg_id = await client.send(queue, "x")

        assert await client.delete(queue, [msg_id]) == [msg_id]
        assert await client.delete(queue, [msg_id]) == []
        assert await client.read(queue, 5) is None

    async def test_delete_mixed_handles(self, client, queue):
        first = await client.send(queue, 1)
        await client.send(queue, 2)
        third = await client.send(queue, 3)
        message = await client.read(queue, 30)

        deleted = await client.delete(queue, [message, third, 404])

        assert deleted == [first, third]
        remaining = await client.read(queue, 30)
        assert remaining.body == 2

    async def test_delete_single_handle(self, client, queue):
        msg_id = await client.send(queue, "x")
        assert await client.delete(queue, msg_id) == [msg_id]

    async def test_delete_empty_list_skips_store(self, clock):
        store = RecordingStore(clock=clock)
        client = create_client(store)
        assert await client.delete("jobs", []) == []
        assert store.calls == []

    async def test_delete_rejects_non_ids(self, client, queue):
        with pytest.raises(ConfigError):
            await client.delete(queue, ["1"])


@pytest.mark.asyncio
async def test_queue_lifecycle_logs_at_debug(client, caplog):
    with caplog.at_level(logging.DEBUG, logger="pgmq_client"):
        await client.create_queue("jobs")
        await client.drop_queue("jobs")

    records = [r for r in caplog.records if r.name == "pgmq_client"]
    assert records
    assert all(r.levelno == logging.DEBUG for r in records)
