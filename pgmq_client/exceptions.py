class PgmqClientError(Exception):
    pass


class ConfigError(PgmqClientError, ValueError):
    """Invalid parameters, raised before anything reaches the store."""


class CodecError(PgmqClientError):
    pass


class EncodeError(CodecError):
    pass


class DecodeError(CodecError):
    """Stored payload could not be decoded.

    The store only accepts well-formed payloads, so this means the data is
    corrupt. Callers should not retry.
    """


class StoreError(PgmqClientError):
    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class NotFoundError(StoreError):
    """Queue or message does not exist."""
