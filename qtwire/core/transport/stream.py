import logging
from typing import TYPE_CHECKING, Any

from qtwire.core.models.event import EventKind, StreamEvent
from qtwire.core.transport.application import Application

if TYPE_CHECKING:
    from qtwire.core.transport.protocol import QtProtocol


class Streamer:
    """
    Manages the bidirectional flow of values for a single connection.

    It hands the events queued by the QtProtocol to the Application through
    the asynchronous `receive()` method, and encodes the values passed to
    `send()` through the protocol's FrameWriter.

    `send()` honours the protocol's FlowControl: while the transport's write
    buffer is above its high-water mark it waits before writing, so a fast
    producer cannot grow the buffer without bound.

    Once the `close` event has been delivered, every further `receive()`
    returns another `close` event instead of blocking forever.
    """
    def __init__(self, protocol: "QtProtocol") -> None:
        self._protocol = protocol
        self._closed = False
        self._logger = logging.getLogger("core.transport.stream")

    async def send(self, value: Any) -> None:
        await self._protocol.flow.drain()
        self._protocol.write(value)

    async def receive(self) -> StreamEvent:
        if self._closed:
            return StreamEvent.close()

        event = await self._protocol.queue.get()
        if event.kind is EventKind.close:
            self._closed = True
        return event

    async def run_app(self, app: Application) -> None:
        try:
            await app(self.receive, self.send)
        except Exception as exc:
            self._logger.error("Exception in Application", exc_info=exc)
        finally:
            self._protocol.close()
