#!/usr/bin/env python

import asyncio
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Literal, NamedTuple, NoReturn

import asyncpg

from pgmq_client.client import QueueClient, create_client
from pgmq_client.config import database_url
from pgmq_client.models import Message
from pgmq_client.store import PgmqStore

logger = logging.getLogger("pgmq_client.worker")

MessageStatus = Literal["success"] | Literal["failed"] | Literal["rejected"]


class ProcessMessageResult(NamedTuple):
    result: MessageStatus
    details: str | None


Handler = Callable[..., Awaitable[ProcessMessageResult]]


async def process_message(body: Any, *, timeout: timedelta) -> ProcessMessageResult:
    """Demonstration handler steered by the first element of a list payload.

    "fail", "reject" and "raise" do what they say, "timeout" outlives the
    message lock and anything else counts as done.
    """
    if not isinstance(body, list) or not body:
        return ProcessMessageResult(
            "rejected", f"expected a non-empty list, got {body!r}"
        )
    try:
        match body[0]:
            case "fail":
                return ProcessMessageResult("failed", "asked to fail")
            case "reject":
                return ProcessMessageResult("rejected", "asked to reject")
            case "timeout":
                await asyncio.sleep(timeout.total_seconds() + 1)
                return ProcessMessageResult("failed", "finished after the lock expired")
            case "raise":
                raise ValueError("asked to raise")
            case _:
                return ProcessMessageResult("success", None)
    except asyncio.CancelledError:
        logger.info(f"handler for {body[0]!r} cancelled")
        raise


async def handle_message(
    client: QueueClient,
    queue: str,
    message: Message,
    handler: Handler = process_message,
    *,
    max_attempts: int = 5,
) -> ProcessMessageResult:
    """Run handler within the message's lock and settle the outcome.

    success and rejected archive the message. failed leaves it alone so it
    comes back once vt passes.
    """
    if message.read_count > max_attempts:
        logger.warning(f"{message.id=} read {message.read_count} times, giving up")
        await client.archive(queue, message)
        return ProcessMessageResult("rejected", "too many attempts")

    utcnow = datetime.now(UTC)
    timeout_remaining = message.vt - utcnow
    try:
        if timeout_remaining.total_seconds() < 0:
            logger.error(f"{timeout_remaining=}, {message.vt=}, {utcnow=}")
            raise asyncio.TimeoutError("Lock expired before work could begin")
        async with asyncio.timeout(timeout_remaining.total_seconds()):
            process_result = await handler(message.body, timeout=timeout_remaining)
        logger.info(f"{message.id=} work complete")
    except asyncio.TimeoutError as e:
        process_result = ProcessMessageResult("failed", "timed out")
        logger.error(f"{message.id=} timed out", exc_info=e)
    except Exception as e:
        process_result = ProcessMessageResult("failed", f"unhandled exception: {e}")
        logger.error(f"{message.id=} unhandled exception", exc_info=e)
    logger.debug(f"{process_result.result=}, {process_result=}")

    if process_result.result == "failed":
        logger.info(f"{message.id=} left for redelivery after {message.vt=}")
    else:
        await client.archive(queue, message)
        logger.info(f"{message.id=} archived ({process_result.result=})")
    return process_result


async def run_worker(
    client: QueueClient,
    queue: str,
    *,
    handler: Handler = process_message,
    visibility_timeout: timedelta = timedelta(seconds=30),
    batch_size: int = 1,
    max_attempts: int = 5,
) -> NoReturn:
    logger.info(f"[*] waiting for messages on {queue!r}")
    while True:
        messages = await client.read_with_poll(queue, visibility_timeout, batch_size)
        for message in messages:
            logger.info(f"{message.id=} retrieved: '{message.body}' ({message.vt=})")
            await handle_message(
                client, queue, message, handler, max_attempts=max_attempts
            )


async def main() -> NoReturn:
    queue = os.environ.get("PGMQ_QUEUE", "tasks")
    logger.info("[*] connecting to db")
    async with asyncpg.create_pool(database_url()) as pool:
        client = create_client(PgmqStore(pool))
        await client.create_queue(queue)
        await run_worker(
            client,
            queue,
            visibility_timeout=timedelta(
                seconds=int(os.environ.get("PGMQ_VISIBILITY_TIMEOUT", "30"))
            ),
            batch_size=int(os.environ.get("PGMQ_BATCH_SIZE", "1")),
            max_attempts=int(os.environ.get("PGMQ_MAX_ATTEMPTS", "5")),
        )


def entrypoint() -> None:
    level = logging.DEBUG if os.environ.get("DEBUG") == "1" else logging.INFO
    logging.basicConfig(level=level)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("[*] worker stopped")
        sys.exit(0)


if __name__ == "__main__":
    entrypoint()
