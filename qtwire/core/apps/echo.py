import logging

from qtwire.core.models.event import EventKind, ReceiveEvent, SendValue


class EchoApplication:
    """
    Application sending every decoded message back to its peer.

    Each value is re-encoded with the connection's codec settings, so a
    peer receives byte for byte what it sent as long as the value survives
    a decode/encode round trip. Useful to check interoperability with a Qt
    program and to watch decoded traffic in the logs.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger("core.apps.echo")

    async def __call__(self, receive: ReceiveEvent, send: SendValue) -> None:
        while True:
            event = await receive()

            match event.kind:
                case EventKind.message:
                    self._logger.info(f"Received: {event.value}")
                    await send(event.value)
                case EventKind.error:
                    self._logger.warning(f"Stream error: {event.error}")
                case EventKind.end:
                    self._logger.debug("Peer closed its side of the stream")
                case EventKind.close:
                    break
