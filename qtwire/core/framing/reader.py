import logging
import struct
from collections.abc import Callable, Iterator

from qtwire.core.codec.errors import (
    OversizedPacketError,
    QDataStreamError,
    StreamFailedError,
    TruncatedStreamError,
)
from qtwire.core.codec.reader import Decoder
from qtwire.core.models.config import CodecConfig
from qtwire.core.models.qtypes import QValue

HEADER_SIZE = 4

ProgressCallback = Callable[[int, int], None]


class FrameReader:
    """
    Incremental packet extractor for a chunked byte stream.

    Bytes are accumulated until a 4-byte big-endian length prefix is
    available, then until the whole body has arrived. Each complete packet
    is handed to the Decoder and the decoded value is returned to the
    caller; bytes already received for the next packet stay in the buffer.
    A single chunk may therefore complete zero, one or many packets, and
    they are always returned in arrival order.

    A declared length above the configured maximum fails the stream as soon
    as the prefix is known. Any decode or framing error is terminal: the
    reader refuses further input afterwards, since the format offers no way
    to find the next packet boundary again.
    """
    def __init__(
        self,
        decoder: Decoder,
        config: CodecConfig | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        self._decoder = decoder
        self._config = config or CodecConfig()
        self._progress = progress
        self._buffer = bytearray()
        self._expected_size: int | None = None
        self._failed: QDataStreamError | None = None
        self._logger = logging.getLogger("core.framing.reader")

    @property
    def expected_size(self) -> int | None:
        """Declared body size of the packet in progress, None while awaiting the prefix."""
        return self._expected_size

    @property
    def pending(self) -> int:
        """Number of buffered bytes that do not form a complete packet yet."""
        return len(self._buffer)

    @property
    def failed(self) -> bool:
        return self._failed is not None

    def feed(self, chunk: bytes | bytearray | memoryview) -> list[QValue]:
        """Buffer `chunk` and return every value it completes."""
        return list(self.iter_feed(chunk))

    def iter_feed(self, chunk: bytes | bytearray | memoryview) -> Iterator[QValue]:
        """
        Buffer `chunk` and lazily yield the values it completes.

        Values decoded before a failing packet are yielded before the error
        is raised. Packets left unconsumed when iteration stops early stay
        buffered for the next call.
        """
        self._check_usable()
        self._buffer.extend(chunk)
        return self._drain()

    def feed_eof(self) -> None:
        """
        Signal that no more bytes will arrive.

        Ending the stream between packets is clean; ending it inside one
        is an error.
        """
        self._check_usable()
        if self._buffer:
            self._failed = TruncatedStreamError(len(self._buffer))
            raise self._failed

    def _drain(self) -> Iterator[QValue]:
        try:
            yield from self._packets()
        except QDataStreamError as ex:
            self._failed = ex
            raise

    def _packets(self) -> Iterator[QValue]:
        while True:
            if self._expected_size is None:
                if len(self._buffer) < HEADER_SIZE:
                    return

                # "!I" = uint32 big-endian (network order)
                size = struct.unpack_from("!I", self._buffer)[0]
                if size > self._config.max_packet_size:
                    raise OversizedPacketError(size, self._config.max_packet_size)
                self._expected_size = size

            total = HEADER_SIZE + self._expected_size
            received = len(self._buffer)
            if self._progress is not None:
                self._progress(received, total)

            if received < total:
                self._logger.debug(f"({received}/{total}) Waiting for end of buffer")
                return

            self._logger.debug(f"({received}/{total}) Received full buffer")
            packet = self._buffer[:total]
            result = self._decoder.decode_packet(packet, self._config.message_shape)

            del self._buffer[:total]
            self._expected_size = None
            yield result.value

    def _check_usable(self) -> None:
        if self._failed is not None:
            raise StreamFailedError(f"stream unusable after error: {self._failed}")
