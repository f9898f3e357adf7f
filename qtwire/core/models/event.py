from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable

from qtwire.core.models.qtypes import QValue


class EventKind(StrEnum):
    """
    What happened on a stream. Only `message` carries decoded data, the
    other kinds are the lifecycle signals of the underlying transport.
    """
    message = "message"
    error = "error"
    end = "end"
    close = "close"


@dataclass(frozen=True)
class StreamEvent:
    """
    Item delivered to the consumer of a stream, in arrival order.

    A stream yields any number of `message` events, at most one fatal
    codec `error`, the transport's own `error` and `end` signals as they
    happen, and finally exactly one `close`.
    """
    kind: EventKind

    value: QValue | None = None
    """
    Decoded top-level value of a `message` event.
    """

    error: BaseException | None = None
    """
    Exception of an `error` event: a codec error or the transport failure.
    """

    @classmethod
    def message(cls, value: QValue) -> "StreamEvent":
        return cls(EventKind.message, value=value)

    @classmethod
    def failure(cls, error: BaseException) -> "StreamEvent":
        return cls(EventKind.error, error=error)

    @classmethod
    def end(cls) -> "StreamEvent":
        return cls(EventKind.end)

    @classmethod
    def close(cls) -> "StreamEvent":
        return cls(EventKind.close)


ReceiveEvent = Callable[[], Awaitable[StreamEvent]]
"""
Coroutine provided to the application for receiving the next event.
It suspends until an event is available.
"""


SendValue = Callable[[Any], Awaitable[None]]
"""
Coroutine provided to the application for sending a value to the peer.
The value is a QValue or a plain Python value coerced by the encoder.
"""
