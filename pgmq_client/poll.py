import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta

from pgmq_client.config import PollConfig
from pgmq_client.exceptions import ConfigError
from pgmq_client.models import Message

logger = logging.getLogger("pgmq_client")

ReadBatch = Callable[[], Awaitable[list[Message]]]


def check_poll_config(config: PollConfig) -> None:
    if config.interval <= timedelta(0):
        raise ConfigError(f"poll interval must be positive, got {config.interval}")
    if config.max_wait > timedelta(0) and config.interval > config.max_wait:
        raise ConfigError(
            f"poll interval {config.interval} is longer than max_wait {config.max_wait}"
        )


async def poll(read_batch: ReadBatch, config: PollConfig) -> list[Message]:
    """Retry read_batch until it returns messages or max_wait passes.

    An empty list after the deadline is a normal result. Only the calling
    task sleeps between attempts; cancelling it leaves nothing to clean up
    since locks expire on their own.
    """
    check_poll_config(config)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + config.max_wait.total_seconds()
    interval = config.interval.total_seconds()
    attempts = 0
    while True:
        messages = await read_batch()
        attempts += 1
        if messages:
            return messages
        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.debug(f"poll gave up after {attempts=}")
            return messages
        await asyncio.sleep(min(interval, remaining))
