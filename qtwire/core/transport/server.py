import asyncio
import logging

from qtwire.core.codec.registry import TypeRegistry
from qtwire.core.models.config import ServerConfig
from qtwire.core.models.state import ServerState
from qtwire.core.transport.protocol import ServerProtocol


class MessageServer:
    """
    Owns the lifecycle of a TCP server speaking the QDataStream packet
    format, optionally over TLS.

    Each accepted connection gets its own ServerProtocol, which decodes
    incoming packets with the shared TypeRegistry and runs the configured
    application. The server itself never interprets the decoded values.

    On shutdown, MessageServer closes the listening socket, asks every
    active connection to close, and waits for connections and application
    tasks to finish. Tasks still running after the graceful shutdown
    timeout are cancelled.
    """
    def __init__(
        self,
        config: ServerConfig,
        registry: TypeRegistry | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._config = config
        self._registry = registry or TypeRegistry()
        self._loop = loop or asyncio.get_event_loop()
        self.state = ServerState()
        self._logger = logging.getLogger("core.transport.server")

        self._server: asyncio.AbstractServer | None = None

    @property
    def port(self) -> int | None:
        """Port actually bound, useful when the configured port is 0."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    def create_protocol(self) -> ServerProtocol:
        return ServerProtocol(
            config=self._config,
            server_state=self.state,
            registry=self._registry,
            loop=self._loop,
        )

    async def start(self) -> None:
        config = self._config
        self._server = await self._loop.create_server(
            self.create_protocol,
            host=config.host,
            port=config.port,
            backlog=config.backlog,
            ssl=config.ssl_ctx,
        )
        self._logger.info(f"Listening on {config.host}:{self.port}")

    async def shutdown(self) -> None:
        if self._server:
            self._server.close()

        for connection in self.state.connections.copy():
            connection.shutdown()

        try:
            await asyncio.wait_for(
                self._wait_task_complete(),
                timeout=self._config.timeout_graceful_shutdown
            )
        except asyncio.TimeoutError:
            self._logger.error(
                f"Cancel {len(self.state.tasks)} running task(s), "
                f"timeout graceful shutdown: {self.state.tasks}"
            )
            for task in self.state.tasks:
                task.cancel("Task cancelled, timeout graceful shutdown exceeded")

    async def _wait_task_complete(self) -> None:
        if self.state.connections:
            self._logger.info("Waiting for client connections to close.")

        while self.state.connections:
            await asyncio.sleep(0.1)

        if self.state.tasks:
            self._logger.info("Waiting for application tasks to complete.")

        while self.state.tasks:
            await asyncio.sleep(0.1)

        if self._server:
            await self._server.wait_closed()
