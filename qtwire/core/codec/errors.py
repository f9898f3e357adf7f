class QDataStreamError(Exception):
    """Base class of every error raised by the codec and the framer."""


class FramingError(QDataStreamError):
    """The byte stream cannot be split into packets any more."""


class OversizedPacketError(FramingError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"oversized packet detected: {size} bytes (limit {limit})")
        self.size = size
        self.limit = limit


class TruncatedStreamError(FramingError):
    def __init__(self, pending: int) -> None:
        super().__init__(
            f"stream ended in the middle of a packet ({pending} byte(s) pending)"
        )
        self.pending = pending


class StreamFailedError(FramingError):
    """A previous fatal error made the stream unusable."""


class DecodeError(QDataStreamError):
    """A packet body does not hold a well-formed value."""


class MalformedBodyError(DecodeError):
    pass


class UnknownTypeError(DecodeError):
    def __init__(self, type_id: int) -> None:
        super().__init__(f"unknown type id {type_id}")
        self.type_id = type_id


class UnregisteredUserTypeError(DecodeError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(f"user type '{name}' is not registered")
        self.name = name

    def __str__(self) -> str:
        return str(self.args[0])


class EncodeError(QDataStreamError, ValueError):
    """A value cannot be represented on the wire."""
