import logging

from pgmq_client.config import validate_queue_name
from pgmq_client.store import MessageStore

logger = logging.getLogger("pgmq_client")


class QueueAdmin:
    """Queue lifecycle.

    create_queue is idempotent. drop_queue raises NotFoundError for a queue
    that does not exist and removes archived messages along with the backlog.
    """

    def __init__(self, store: MessageStore) -> None:
        self.store = store

    async def create_queue(self, name: str) -> None:
        await self.store.create_queue(validate_queue_name(name))
        logger.debug(f"queue {name!r} ready")

    async def drop_queue(self, name: str) -> None:
        await self.store.drop_queue(validate_queue_name(name))
        logger.debug(f"queue {name!r} dropped")
