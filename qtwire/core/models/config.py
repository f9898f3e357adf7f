import ssl
from dataclasses import dataclass, field

from qtwire.core.models.qtypes import Shape, VARIANT
from qtwire.core.transport.application import Application


MAX_PACKET_SIZE = 64 * 1024 * 1024


@dataclass
class CodecConfig:
    """
    Static configuration shared by the encoder, the decoder and the framing
    layer of one stream.
    """
    max_packet_size: int = MAX_PACKET_SIZE
    """
    Largest body length accepted in a length prefix. Longer declarations
    are a protocol violation and terminate the stream.
    """

    framed: bool = True
    """
    Whether outgoing bodies are preceded by their 4-byte big-endian length.
    Disable it when an outer message-oriented channel delimits messages.
    """

    message_shape: Shape = VARIANT
    """
    Shape of every top-level message: a QVariant envelope, a base type, or
    the name of a registered user type. Both directions use the same shape.
    """

    variant_null_flag: bool = True
    """
    Whether a QVariant envelope carries the 1-byte is-null flag after its
    type id. Qt writes it from stream version 4.2 onwards.
    """

    max_depth: int = 64
    """
    Deepest container nesting accepted while decoding.
    """

    def __post_init__(self) -> None:
        if not 0 <= self.max_packet_size <= MAX_PACKET_SIZE:
            raise ValueError(
                f"max_packet_size must be between 0 and {MAX_PACKET_SIZE}"
            )
        if self.max_depth < 1:
            raise ValueError("max_depth must be positive")


@dataclass
class ServerConfig:
    """
    Static configuration for a qtwire MessageServer: networking, optional
    TLS, resource limits and graceful shutdown behavior.
    """
    app: Application
    """
    The user-defined application coroutine with the signature:
        async def app(receive, send)
    It receives stream events and may send values back.
    """

    host: str
    """
    IP address or hostname on which the server listens.
    """

    port: int
    """
    TCP port to bind. If set to 0, the OS selects an available port.
    """

    backlog: int = 100
    """
    Maximum number of pending TCP connections waiting for accept().
    """

    ssl_ctx: ssl.SSLContext | None = None
    """
    TLS context used to secure incoming connections. Plain TCP when None.
    """

    limit_concurrency: int = 1024
    """
    Maximum number of concurrent active connections allowed.
    """

    timeout_graceful_shutdown: float = 5.0
    """
    Maximum time (in seconds) allowed for connections and background tasks
    to finish on shutdown. Remaining tasks are cancelled afterwards.
    """

    codec: CodecConfig = field(default_factory=CodecConfig)
    """
    Wire format settings applied to every accepted connection.
    """
