from pgmq_client.admin import QueueAdmin
from pgmq_client.client import QueueClient, create_client
from pgmq_client.codec import JsonCodec, MessageCodec, PydanticCodec
from pgmq_client.config import PollConfig
from pgmq_client.exceptions import (
    CodecError,
    ConfigError,
    DecodeError,
    EncodeError,
    NotFoundError,
    PgmqClientError,
    StoreError,
)
from pgmq_client.memory import InMemoryStore
from pgmq_client.models import Message
from pgmq_client.store import LongPollStore, MessageStore, PgmqStore

__all__ = [
    "CodecError",
    "ConfigError",
    "DecodeError",
    "EncodeError",
    "InMemoryStore",
    "JsonCodec",
    "LongPollStore",
    "Message",
    "MessageCodec",
    "MessageStore",
    "NotFoundError",
    "PgmqClientError",
    "PgmqStore",
    "PollConfig",
    "PydanticCodec",
    "QueueAdmin",
    "QueueClient",
    "StoreError",
    "create_client",
]
