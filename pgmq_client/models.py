from datetime import datetime
from typing import Any

import pydantic


class Message(pydantic.BaseModel):
    """A message as returned by a read.

    body is the raw bytes from the store until QueueClient decodes it.
    Accepts pgmq's column names (msg_id, read_ct, message) as well.
    """

    id: int = pydantic.Field(validation_alias=pydantic.AliasChoices("msg_id", "id"))
    read_count: int = pydantic.Field(
        validation_alias=pydantic.AliasChoices("read_ct", "read_count")
    )
    enqueued_at: datetime  # TIMESTAMP WITH TIME ZONE NOT NULL
    vt: datetime  # visible again once now() >= vt
    body: Any = pydantic.Field(validation_alias=pydantic.AliasChoices("message", "body"))


MessageOrId = Message | int
