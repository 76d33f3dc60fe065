import logging
from collections.abc import Iterable
from datetime import timedelta

from pgmq_client.admin import QueueAdmin
from pgmq_client.codec import JsonCodec, MessageCodec
from pgmq_client.config import PollConfig, as_timedelta, validate_queue_name
from pgmq_client.exceptions import ConfigError, DecodeError, NotFoundError
from pgmq_client.models import Message, MessageOrId
from pgmq_client.poll import check_poll_config, poll
from pgmq_client.store import LongPollStore, MessageStore

logger = logging.getLogger("pgmq_client")


def _message_id(message: MessageOrId) -> int:
    if isinstance(message, Message):
        return message.id
    if isinstance(message, bool) or not isinstance(message, int):
        raise ConfigError(f"expected a Message or an integer id, got {message!r}")
    return message


class QueueClient:
    """Send and consume messages through a MessageStore.

    Holds no state between calls and every method maps to a single store
    operation, so one client can be shared by any number of tasks.
    """

    def __init__(
        self,
        store: MessageStore,
        codec: MessageCodec | None = None,
        poll_config: PollConfig | None = None,
    ) -> None:
        self.store = store
        self.codec = codec if codec is not None else JsonCodec()
        self.poll_config = poll_config if poll_config is not None else PollConfig()
        self.admin = QueueAdmin(store)

    async def create_queue(self, queue: str) -> None:
        await self.admin.create_queue(queue)

    async def drop_queue(self, queue: str) -> None:
        await self.admin.drop_queue(queue)

    async def send(self, queue: str, value: object) -> int:
        validate_queue_name(queue)
        body = self.codec.encode(value)
        return await self.store.enqueue(queue, body)

    async def read(
        self, queue: str, visibility_timeout: timedelta | int | float
    ) -> Message | None:
        messages = await self.read_batch(queue, visibility_timeout, 1)
        return messages[0] if messages else None

    async def read_batch(
        self, queue: str, visibility_timeout: timedelta | int | float, count: int
    ) -> list[Message]:
        vt = self._read_args(queue, visibility_timeout, count)
        messages = await self.store.read_batch(queue, vt, count)
        return [self._decode(queue, m) for m in messages]

    async def read_with_poll(
        self,
        queue: str,
        visibility_timeout: timedelta | int | float,
        count: int = 1,
        max_wait: timedelta | int | float | None = None,
        interval: timedelta | int | float | None = None,
        *,
        config: PollConfig | None = None,
    ) -> list[Message]:
        """Wait up to max_wait for at least one message.

        Returns [] when nothing arrived in time. Stores implementing
        LongPollStore do the waiting server side in a single round trip.
        """
        vt = self._read_args(queue, visibility_timeout, count)
        config = config if config is not None else self.poll_config
        update = {}
        if max_wait is not None:
            update["max_wait"] = as_timedelta(max_wait, name="max_wait")
        if interval is not None:
            update["interval"] = as_timedelta(interval, name="interval")
        if update:
            config = config.model_copy(update=update)
        check_poll_config(config)

        if config.max_wait <= timedelta(0):
            messages = await self.store.read_batch(queue, vt, count)
        elif config.server_side and isinstance(self.store, LongPollStore):
            messages = await self.store.read_with_poll(
                queue, vt, count, config.max_wait, config.interval
            )
        else:
            messages = await poll(
                lambda: self.store.read_batch(queue, vt, count), config
            )
        return [self._decode(queue, m) for m in messages]

    async def archive(self, queue: str, message: MessageOrId) -> None:
        validate_queue_name(queue)
        msg_id = _message_id(message)
        if not await self.store.archive(queue, msg_id):
            raise NotFoundError(f"message {msg_id} not found in queue {queue!r}")
        logger.debug(f"{msg_id=} archived from {queue!r}")

    async def delete(
        self, queue: str, messages: Iterable[MessageOrId] | MessageOrId
    ) -> list[int]:
        """Delete messages, returning the ids that were actually removed.

        Unknown or already deleted ids are skipped, so repeating a delete is
        harmless. An empty list never reaches the store.
        """
        validate_queue_name(queue)
        if isinstance(messages, (Message, int)):
            messages = [messages]
        msg_ids = list(dict.fromkeys(_message_id(m) for m in messages))
        if not msg_ids:
            return []
        deleted = await self.store.delete(queue, msg_ids)
        logger.debug(f"{deleted=} of {msg_ids=} from {queue!r}")
        return deleted

    def _read_args(
        self, queue: str, visibility_timeout: timedelta | int | float, count: int
    ) -> timedelta:
        validate_queue_name(queue)
        vt = as_timedelta(visibility_timeout, name="visibility_timeout")
        if vt < timedelta(0):
            raise ConfigError(f"visibility_timeout must not be negative, got {vt}")
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ConfigError(f"count must be a positive integer, got {count!r}")
        return vt

    def _decode(self, queue: str, message: Message) -> Message:
        try:
            body = self.codec.decode(message.body)
        except DecodeError:
            logger.error(f"{message.id=} in {queue!r} could not be decoded")
            raise
        return message.model_copy(update={"body": body})


def create_client(
    store: MessageStore,
    codec: MessageCodec | None = None,
    poll_config: PollConfig | None = None,
) -> QueueClient:
    """Bind a store handle and codec once and hand out the client."""
    return QueueClient(store, codec=codec, poll_config=poll_config)
