import logging
import math
from datetime import timedelta
from typing import Protocol, runtime_checkable

import asyncpg

from pgmq_client.exceptions import NotFoundError, StoreError
from pgmq_client.models import Message

logger = logging.getLogger("pgmq_client")

Connection = (
    asyncpg.connection.Connection
    | asyncpg.pool.PoolConnectionProxy
    | asyncpg.pool.Pool
)


class MessageStore(Protocol):
    """Durable primitives the client is built on.

    read_batch must be atomic across concurrent callers: no two readers may
    receive the same message while its vt is unexpired.
    """

    async def create_queue(self, name: str) -> None: ...

    async def drop_queue(self, name: str) -> None: ...

    async def enqueue(self, name: str, body: bytes) -> int: ...

    async def read_batch(
        self, name: str, vt: timedelta, count: int
    ) -> list[Message]: ...

    async def archive(self, name: str, msg_id: int) -> bool: ...

    async def delete(self, name: str, msg_ids: list[int]) -> list[int]: ...


@runtime_checkable
class LongPollStore(Protocol):
    """A store that can run the whole bounded wait in one round trip."""

    async def read_with_poll(
        self,
        name: str,
        vt: timedelta,
        count: int,
        max_wait: timedelta,
        interval: timedelta,
    ) -> list[Message]: ...


class DottableRecord(asyncpg.Record):
    """Required to access record fields as attributes for Pydantic model_validate."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError as e:
            raise AttributeError(name) from e


def _seconds(value: timedelta) -> int:
    # pgmq takes whole seconds; round up so a lock never ends early
    return math.ceil(value.total_seconds())


def _store_error(action: str, name: str, e: Exception) -> StoreError:
    if isinstance(e, asyncpg.exceptions.UndefinedTableError):
        return NotFoundError(f"queue {name!r} does not exist", cause=e)
    return StoreError(f"{action} on queue {name!r} failed: {e}", cause=e)


_MESSAGE_COLUMNS = (
    "msg_id, read_ct, enqueued_at, vt, convert_to(message::text, 'UTF8') AS message"
)


class PgmqStore:
    """MessageStore backed by the pgmq extension.

    connection can be a pool, a pooled connection or a plain connection;
    transactions are the caller's business.
    """

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    async def create_queue(self, name: str) -> None:
        try:
            await self.connection.execute("SELECT pgmq.create($1);", name)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise _store_error("create", name, e) from e
        logger.debug(f"queue {name!r} created")

    async def drop_queue(self, name: str) -> None:
        try:
            dropped = await self.connection.fetchval(
                "SELECT pgmq.drop_queue($1);", name
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise _store_error("drop", name, e) from e
        if not dropped:
            raise NotFoundError(f"queue {name!r} does not exist")
        logger.debug(f"queue {name!r} dropped")

    async def enqueue(self, name: str, body: bytes) -> int:
        try:
            msg_id = await self.connection.fetchval(
                "SELECT * FROM pgmq.send($1, convert_from($2::bytea, 'UTF8')::jsonb);",
                name,
                body,
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise _store_error("send", name, e) from e
        assert msg_id is not None, "No message id returned!"
        logger.debug(f"{msg_id=} sent to {name!r}")
        return msg_id

    async def read_batch(self, name: str, vt: timedelta, count: int) -> list[Message]:
        """
        pgmq.read selects with FOR UPDATE SKIP LOCKED and bumps vt in the
        same statement, so concurrent readers never share a message
        """
        try:
            rows = await self.connection.fetch(
                f"SELECT {_MESSAGE_COLUMNS} FROM pgmq.read($1, $2, $3);",
                name,
                _seconds(vt),
                count,
                record_class=DottableRecord,
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise _store_error("read", name, e) from e
        logger.debug("rows=%s", rows)
        return [Message.model_validate(row, from_attributes=True) for row in rows]

    async def read_with_poll(
        self,
        name: str,
        vt: timedelta,
        count: int,
        max_wait: timedelta,
        interval: timedelta,
    ) -> list[Message]:
        try:
            rows = await self.connection.fetch(
                f"SELECT {_MESSAGE_COLUMNS} FROM pgmq.read_with_poll($1, $2, $3, $4, $5);",
                name,
                _seconds(vt),
                count,
                _seconds(max_wait),
                max(1, int(interval.total_seconds() * 1000)),
                record_class=DottableRecord,
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise _store_error("read_with_poll", name, e) from e
        logger.debug("rows=%s", rows)
        return [Message.model_validate(row, from_attributes=True) for row in rows]

    async def archive(self, name: str, msg_id: int) -> bool:
        try:
            archived = await self.connection.fetchval(
                "SELECT pgmq.archive($1::text, $2::bigint);", name, msg_id
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise _store_error("archive", name, e) from e
        logger.debug(f"{msg_id=} archived={archived}")
        return bool(archived)

    async def delete(self, name: str, msg_ids: list[int]) -> list[int]:
        try:
            rows = await self.connection.fetch(
                "SELECT * FROM pgmq.delete($1::text, $2::bigint[]);", name, msg_ids
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise _store_error("delete", name, e) from e
        deleted = [row[0] for row in rows]
        logger.debug(f"{deleted=} from {name!r}")
        return deleted
