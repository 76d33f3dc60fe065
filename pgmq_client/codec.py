import json
import logging
import re
from typing import Any, Generic, Protocol, TypeVar

import pydantic

from pgmq_client.exceptions import DecodeError, EncodeError

logger = logging.getLogger("pgmq_client")

T = TypeVar("T")

# jsonb has no representation for U+0000; an escaped backslash before "u0000" is fine
_NUL_ESCAPE = re.compile(r"(?<!\\)(?:\\\\)*\\u0000")


class MessageCodec(Protocol):
    def encode(self, value: Any) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...


class JsonCodec:
    """Compact JSON, the format pgmq stores in its jsonb message column."""

    def encode(self, value: Any) -> bytes:
        try:
            text = json.dumps(value, separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise EncodeError(f"cannot encode {type(value).__name__} as JSON: {e}") from e
        if _NUL_ESCAPE.search(text):
            raise EncodeError("cannot encode strings containing NUL characters")
        return text.encode("utf-8")

    def decode(self, data: bytes) -> Any:
        try:
            return json.loads(data)
        except (UnicodeDecodeError, ValueError) as e:
            raise DecodeError(f"stored message is not valid JSON: {e}") from e


class PydanticCodec(Generic[T]):
    """JSON codec validating payloads against a pydantic type.

    PydanticCodec(MyModel) sends and reads back MyModel instances;
    PydanticCodec(list[int]) works as well.
    """

    def __init__(self, type_: type[T]) -> None:
        self.adapter: pydantic.TypeAdapter[T] = pydantic.TypeAdapter(type_)

    def encode(self, value: T) -> bytes:
        try:
            data = self.adapter.dump_json(self.adapter.validate_python(value))
        except (TypeError, ValueError) as e:
            raise EncodeError(f"cannot encode {value!r}: {e}") from e
        if _NUL_ESCAPE.search(data.decode("utf-8")):
            raise EncodeError("cannot encode strings containing NUL characters")
        return data

    def decode(self, data: bytes) -> T:
        try:
            return self.adapter.validate_json(data)
        except pydantic.ValidationError as e:
            logger.debug("invalid payload=%r", data)
            raise DecodeError(f"stored message failed validation: {e}") from e
