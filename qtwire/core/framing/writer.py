import logging
from typing import Any

from qtwire.core.codec.writer import Encoder
from qtwire.core.models.config import CodecConfig


class FrameWriter:
    """
    Produces the bytes to transmit for one outgoing value.

    In framed mode the body is preceded by its 4-byte big-endian length and
    both are returned as a single unit. In raw mode only the body is
    returned and message boundaries are left to an outer layer.
    """
    def __init__(self, encoder: Encoder, config: CodecConfig | None = None) -> None:
        self._encoder = encoder
        self._config = config or CodecConfig()
        self._logger = logging.getLogger("core.framing.writer")

    @property
    def framed(self) -> bool:
        return self._config.framed

    def write(self, value: Any) -> bytes:
        body = self._encoder.encode(value, self._config.message_shape)
        if not self._config.framed:
            return body

        packet = self._encoder.frame(body)
        self._logger.debug(f"Framed packet of {len(body)} byte(s)")
        return packet
