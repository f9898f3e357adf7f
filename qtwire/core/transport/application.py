from typing import Protocol

from qtwire.core.models.event import ReceiveEvent, SendValue


class Application(Protocol):
    """
    Per-connection handler executed by the Streamer.

    An Application is an asynchronous callable receiving two functions:
    `receive`, which waits for and returns the next StreamEvent, and `send`,
    which encodes a value and transmits it to the peer. Decoded messages
    arrive as `message` events in the order the peer sent them; transport
    lifecycle signals arrive as `error`, `end` and a final `close` event.

    The connection is closed when the Application returns or raises.
    Interpreting the decoded values is entirely up to the Application.
    """
    async def __call__(self, receive: ReceiveEvent, send: SendValue) -> None:
        ...
