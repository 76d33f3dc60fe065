import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from pgmq_client.exceptions import NotFoundError
from pgmq_client.models import Message

logger = logging.getLogger("pgmq_client")


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class _Queue:
    messages: dict[int, Message] = field(default_factory=dict)  # insertion order == id order
    archive: dict[int, Message] = field(default_factory=dict)
    ids: itertools.count = field(default_factory=lambda: itertools.count(1))


class InMemoryStore:
    """Process-local MessageStore with the same visibility rules as pgmq.

    Every operation runs under one asyncio.Lock, which gives read_batch the
    exclusivity pgmq gets from FOR UPDATE SKIP LOCKED. clock can be replaced
    to move time forward in tests.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self.clock = clock
        self._queues: dict[str, _Queue] = {}
        self._lock = asyncio.Lock()

    def _queue(self, name: str) -> _Queue:
        try:
            return self._queues[name]
        except KeyError:
            raise NotFoundError(f"queue {name!r} does not exist") from None

    async def create_queue(self, name: str) -> None:
        async with self._lock:
            self._queues.setdefault(name, _Queue())

    async def drop_queue(self, name: str) -> None:
        async with self._lock:
            self._queue(name)
            del self._queues[name]
        logger.debug(f"queue {name!r} dropped")

    async def enqueue(self, name: str, body: bytes) -> int:
        async with self._lock:
            queue = self._queue(name)
            now = self.clock()
            msg_id = next(queue.ids)
            queue.messages[msg_id] = Message(
                id=msg_id, read_count=0, enqueued_at=now, vt=now, body=bytes(body)
            )
        logger.debug(f"{msg_id=} sent to {name!r}")
        return msg_id

    async def read_batch(self, name: str, vt: timedelta, count: int) -> list[Message]:
        async with self._lock:
            queue = self._queue(name)
            now = self.clock()
            visible = [m for m in queue.messages.values() if m.vt <= now][:count]
            selected = []
            for message in visible:
                locked = message.model_copy(
                    update={"vt": now + vt, "read_count": message.read_count + 1}
                )
                queue.messages[message.id] = locked
                selected.append(locked)
        logger.debug(f"read {[m.id for m in selected]} from {name!r}")
        return selected

    async def archive(self, name: str, msg_id: int) -> bool:
        async with self._lock:
            queue = self._queue(name)
            message = queue.messages.pop(msg_id, None)
            if message is None:
                return False
            queue.archive[msg_id] = message
        return True

    async def delete(self, name: str, msg_ids: list[int]) -> list[int]:
        async with self._lock:
            queue = self._queue(name)
            return [i for i in msg_ids if queue.messages.pop(i, None) is not None]

    async def archived(self, name: str) -> list[Message]:
        async with self._lock:
            return list(self._queue(name).archive.values())
