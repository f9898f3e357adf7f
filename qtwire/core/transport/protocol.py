import asyncio
import logging
from typing import Any

from qtwire.core.codec.errors import QDataStreamError
from qtwire.core.codec.reader import Decoder
from qtwire.core.codec.registry import TypeRegistry
from qtwire.core.codec.writer import Encoder
from qtwire.core.framing.reader import FrameReader
from qtwire.core.framing.writer import FrameWriter
from qtwire.core.models.config import CodecConfig, ServerConfig
from qtwire.core.models.event import StreamEvent
from qtwire.core.models.state import ServerState
from qtwire.core.transport.addr import get_remote_addr
from qtwire.core.transport.flow import FlowControl
from qtwire.core.transport.stream import Streamer


class QtProtocol(asyncio.Protocol):
    """
    Binds a FrameReader and a FrameWriter to an asyncio transport.

    Incoming bytes are fed to the FrameReader; every decoded top-level value
    is pushed to the event queue as a `message` event, in arrival order. A
    framing or decoding error is fatal for the stream: it is reported once
    as an `error` event and the transport is closed. The transport's own
    lifecycle signals are forwarded untouched: a lost connection with an
    exception becomes an `error` event, half-close becomes `end`, and the
    final `close` event is always the last item of the queue.

    The transport can be replaced while the connection is alive, e.g. once
    `loop.start_tls()` has promoted it to TLS.
    """
    def __init__(
        self,
        registry: TypeRegistry | None = None,
        codec: CodecConfig | None = None,
        queue: asyncio.Queue[StreamEvent] | None = None,
    ) -> None:
        self._transport: asyncio.Transport | None = None
        self._codec = codec or CodecConfig()
        self._registry = registry or TypeRegistry()
        self._reader = FrameReader(Decoder(self._registry, self._codec), self._codec)
        self._writer = FrameWriter(Encoder(self._registry, self._codec), self._codec)

        self.flow = FlowControl()
        self.queue: asyncio.Queue[StreamEvent] = queue if queue is not None else asyncio.Queue()
        self._peer: tuple[str, int] | None = None
        self._logger = logging.getLogger("core.transport.protocol")

    @property
    def transport(self) -> asyncio.Transport | None:
        return self._transport

    @property
    def who(self) -> str:
        return "%s:%d" % self._peer if self._peer else "-"

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]
        self._peer = get_remote_addr(transport)
        self._logger.debug(f"{self.who} - Connection made")

    def connection_lost(self, exc: Exception | None) -> None:
        self._logger.debug(f"{self.who} - Connection lost: {exc}")
        self.flow.resume_writing()

        if exc is not None:
            self._emit(StreamEvent.failure(exc))
        self._emit(StreamEvent.close())

    def eof_received(self) -> bool | None:
        self._logger.debug(f"{self.who} - End of stream")
        if self._reader.failed:
            return None

        try:
            self._reader.feed_eof()
        except QDataStreamError as ex:
            self._logger.warning(f"{self.who} - {ex}")
            self._emit(StreamEvent.failure(ex))

        self._emit(StreamEvent.end())
        return None

    def data_received(self, data: bytes) -> None:
        if self._reader.failed:
            return

        try:
            for value in self._reader.iter_feed(data):
                self._emit(StreamEvent.message(value))
        except QDataStreamError as ex:
            self._logger.warning(f"{self.who} - Closing stream: {ex}")
            self._emit(StreamEvent.failure(ex))
            self.close()

    def pause_writing(self) -> None:
        self.flow.pause_writing()

    def resume_writing(self) -> None:
        self.flow.resume_writing()

    def write(self, value: Any) -> None:
        """Encode `value` and hand the resulting bytes to the transport."""
        if self._transport is None or self._transport.is_closing():
            raise ConnectionError("Transport is closed")
        self._transport.write(self._writer.write(value))

    def set_transport(self, transport: asyncio.Transport) -> None:
        """Continue the stream over `transport`, e.g. after a TLS upgrade."""
        self._logger.debug(f"{self.who} - Updating transport")
        self._transport = transport

    def detach(self) -> asyncio.Transport | None:
        """
        Stop using the current transport and return it to the caller.

        Nothing is written to it afterwards; bytes it still delivers keep
        feeding the stream until a new protocol is set on it.
        """
        transport, self._transport = self._transport, None
        return transport

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()

    def _emit(self, event: StreamEvent) -> None:
        self.queue.put_nowait(event)


class ServerProtocol(QtProtocol):
    """
    QtProtocol for connections accepted by a MessageServer.

    When a connection is established the protocol registers itself in the
    server state and starts the Streamer task running the configured
    application. Connections beyond `limit_concurrency` are refused.
    """
    def __init__(
        self,
        config: ServerConfig,
        server_state: ServerState,
        registry: TypeRegistry | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__(registry=registry, codec=config.codec)
        self._config = config
        self._app = config.app
        self._loop = loop or asyncio.get_event_loop()
        self._connections = server_state.connections
        self._tasks = server_state.tasks
        self._streamer: Streamer | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        super().connection_made(transport)

        if len(self._connections) >= self._config.limit_concurrency:
            self._logger.warning(f"{self.who} - Too many connections, refusing")
            transport.close()
            return

        self._connections.add(self)
        self._streamer = Streamer(self)
        task = self._loop.create_task(self._streamer.run_app(self._app))
        task.add_done_callback(self._tasks.discard)
        self._tasks.add(task)

    def connection_lost(self, exc: Exception | None) -> None:
        self._connections.discard(self)
        super().connection_lost(exc)

        if exc is None and self._transport is not None:
            self._transport.close()

    def shutdown(self) -> None:
        self.close()
