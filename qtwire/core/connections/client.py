import asyncio
import logging
import ssl
from typing import Any

from qtwire.core.codec.registry import TypeRegistry
from qtwire.core.models.config import CodecConfig
from qtwire.core.models.event import StreamEvent
from qtwire.core.transport.protocol import QtProtocol
from qtwire.core.transport.stream import Streamer


class QtConnection:
    """
    Client side of a QDataStream packet stream.

    `open()` connects to the peer and installs a QtProtocol on the new
    transport. Values passed to `send()` are encoded and framed according
    to the codec configuration; `receive()` returns the next StreamEvent:
    decoded messages in arrival order, then the transport's lifecycle
    signals and a final `close`.

    A live plain-text connection can be promoted to TLS with `start_tls()`
    without losing the stream state, as protocols negotiating encryption
    in-band require. `detach()` hands the raw transport back to the caller.
    """
    def __init__(
        self,
        host: str,
        port: int,
        registry: TypeRegistry | None = None,
        codec: CodecConfig | None = None,
        ssl_context: ssl.SSLContext | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._registry = registry or TypeRegistry()
        self._codec = codec or CodecConfig()
        self._ssl_context = ssl_context
        self._loop = loop or asyncio.get_event_loop()

        self._protocol: QtProtocol | None = None
        self._streamer: Streamer | None = None
        self._logger = logging.getLogger("core.connections.client")

    @property
    def address(self) -> str:
        return f"{self._host}:{self._port}"

    @property
    def connected(self) -> bool:
        transport = self._protocol.transport if self._protocol else None
        return transport is not None and not transport.is_closing()

    async def open(self) -> None:
        if self.connected:
            return

        _, protocol = await self._loop.create_connection(
            lambda: QtProtocol(registry=self._registry, codec=self._codec),
            host=self._host,
            port=self._port,
            ssl=self._ssl_context,
        )
        self._protocol = protocol
        self._streamer = Streamer(protocol)
        self._logger.debug(f"Connected to {self.address}")

    async def send(self, value: Any) -> None:
        await self._require_streamer().send(value)

    async def receive(self) -> StreamEvent:
        return await self._require_streamer().receive()

    async def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
    ) -> None:
        """
        Upgrade the live connection to TLS.

        Packets already buffered stay in the stream; everything after the
        handshake is read and written through the encrypted transport.
        """
        protocol = self._require_protocol()
        transport = protocol.transport
        if transport is None:
            raise ConnectionError(f"Connection to {self.address} is detached")

        tls_transport = await self._loop.start_tls(
            transport,
            protocol,
            ssl_context,
            server_hostname=server_hostname or self._host,
        )
        if tls_transport is None:
            raise ConnectionError(f"TLS handshake with {self.address} did not complete")

        protocol.set_transport(tls_transport)
        self._logger.debug(f"Connection to {self.address} promoted to TLS")

    def detach(self) -> asyncio.Transport | None:
        """Stop writing through the current transport and return it."""
        return self._require_protocol().detach()

    async def close(self) -> None:
        if self._protocol is not None:
            self._protocol.close()

    async def __aenter__(self) -> "QtConnection":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _require_protocol(self) -> QtProtocol:
        if self._protocol is None:
            raise ConnectionError(f"Connection to {self.address} is not open")
        return self._protocol

    def _require_streamer(self) -> Streamer:
        self._require_protocol()
        return self._streamer  # type: ignore[return-value]
