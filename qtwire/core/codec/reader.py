import datetime
import logging
import struct
from dataclasses import dataclass

from qtwire.core.codec.errors import MalformedBodyError, OversizedPacketError, UnknownTypeError
from qtwire.core.codec.registry import TypeRegistry
from qtwire.core.models.config import CodecConfig
from qtwire.core.models.qtypes import Envelope, QType, QValue, Shape, shape_label

NULL_LENGTH = 0xFFFFFFFF
JULIAN_DAY_OFFSET = 1721425
MSECS_PER_DAY = 86_400_000

_U8 = struct.Struct("!B")
_I16 = struct.Struct("!h")
_I32 = struct.Struct("!i")
_U32 = struct.Struct("!I")
_I64 = struct.Struct("!q")
_U64 = struct.Struct("!Q")
_F64 = struct.Struct("!d")


class BufferReader:
    """
    Cursor over an immutable byte buffer.

    Every read is checked against the end of the window: reading past it
    means that a length or count field inside the body lied about the
    bytes that follow.
    """
    def __init__(self, data: bytes | bytearray | memoryview, start: int = 0, end: int | None = None) -> None:
        self._data = memoryview(data)
        self._pos = start
        self._end = len(self._data) if end is None else end

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return self._end - self._pos

    def read(self, size: int) -> bytes:
        if size > self.remaining:
            raise MalformedBodyError(
                f"read past end of buffer: need {size} byte(s) at offset "
                f"{self._pos}, {self.remaining} available"
            )
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return bytes(chunk)

    def ensure(self, size: int, what: str) -> None:
        if size > self.remaining:
            raise MalformedBodyError(
                f"{what} needs at least {size} byte(s), {self.remaining} available"
            )

    def _unpack(self, fmt: struct.Struct) -> int | float:
        return fmt.unpack(self.read(fmt.size))[0]

    def read_u8(self) -> int:
        return self._unpack(_U8)   # type: ignore[return-value]

    def read_i16(self) -> int:
        return self._unpack(_I16)  # type: ignore[return-value]

    def read_i32(self) -> int:
        return self._unpack(_I32)  # type: ignore[return-value]

    def read_u32(self) -> int:
        return self._unpack(_U32)  # type: ignore[return-value]

    def read_i64(self) -> int:
        return self._unpack(_I64)  # type: ignore[return-value]

    def read_u64(self) -> int:
        return self._unpack(_U64)  # type: ignore[return-value]

    def read_f64(self) -> float:
        return self._unpack(_F64)  # type: ignore[return-value]

    def tail(self) -> bytes:
        return bytes(self._data[self._pos:])


@dataclass(frozen=True, slots=True)
class DecodeResult:
    value: QValue
    """
    The decoded value tree.
    """

    remaining: bytes
    """
    Bytes found after the decoded value, typically the start of the next
    packet.
    """


class Decoder:
    """
    Turns QDataStream bytes into QValue trees.

    Decoding is a recursive descent driven by the expected shape: a QVariant
    envelope announces its own type id, a base type is read directly, and a
    registered user type is expanded field by field from its definition.
    Containers read a 32-bit count first; counts and lengths are checked
    against the bytes left in the window before anything is allocated.

    Every error is fatal for the message: the decoder never returns a
    partially decoded value.
    """
    def __init__(
        self,
        registry: TypeRegistry | None = None,
        config: CodecConfig | None = None,
    ) -> None:
        self._registry = registry or TypeRegistry()
        self._config = config or CodecConfig()
        self._variant_header = 5 if self._config.variant_null_flag else 4
        self._logger = logging.getLogger("core.codec.reader")

    @property
    def registry(self) -> TypeRegistry:
        return self._registry

    def decode(
        self,
        buffer: bytes | bytearray | memoryview,
        shape: Shape = Envelope.VARIANT,
    ) -> DecodeResult:
        """Decode one unframed value from the start of `buffer`."""
        reader = BufferReader(buffer)
        value = self._read_shape(reader, shape, 0)
        return DecodeResult(value=value, remaining=reader.tail())

    def decode_packet(
        self,
        buffer: bytes | bytearray | memoryview,
        shape: Shape = Envelope.VARIANT,
    ) -> DecodeResult:
        """
        Decode one length-prefixed packet from the start of `buffer`.

        The body must be fully present and its value must use exactly the
        declared number of bytes. Bytes after the packet are returned as
        `remaining`.
        """
        header = BufferReader(buffer)
        size = header.read_u32()
        limit = self._config.max_packet_size
        if size > limit:
            raise OversizedPacketError(size, limit)

        end = 4 + size
        if end > len(buffer):
            raise MalformedBodyError(
                f"packet declares {size} byte(s), only {len(buffer) - 4} present"
            )

        reader = BufferReader(buffer, start=4, end=end)
        value = self._read_shape(reader, shape, 0)
        if reader.remaining:
            raise MalformedBodyError(
                f"packet declares {size} byte(s) but its "
                f"{shape_label(shape)} value used {size - reader.remaining}"
            )

        self._logger.debug(f"Decoded {shape_label(shape)} packet of {size} byte(s)")
        return DecodeResult(value=value, remaining=bytes(memoryview(buffer)[end:]))

    def _read_shape(self, reader: BufferReader, shape: Shape, depth: int) -> QValue:
        if isinstance(shape, Envelope):
            return self._read_variant(reader, depth)
        if isinstance(shape, QType):
            return self._read_typed(reader, shape, depth)
        return self._read_user(reader, shape, depth)

    def _read_variant(self, reader: BufferReader, depth: int) -> QValue:
        type_id = reader.read_u32()
        try:
            qtype = QType(type_id)
        except ValueError:
            raise UnknownTypeError(type_id) from None

        if self._config.variant_null_flag and reader.read_u8():
            return QValue(qtype, null=True)

        if qtype is QType.USERTYPE:
            raw = self._read_bytes(reader)
            if not raw:
                raise MalformedBodyError("user type variant without a type name")
            name = raw.rstrip(b"\x00").decode("ascii", errors="replace")
            return self._read_user(reader, name, depth)

        return self._read_typed(reader, qtype, depth)

    def _read_typed(self, reader: BufferReader, qtype: QType, depth: int) -> QValue:
        match qtype:
            case QType.INVALID:
                return QValue(qtype)
            case QType.BOOL:
                return QValue(qtype, reader.read_u8() != 0)
            case QType.INT:
                return QValue(qtype, reader.read_i32())
            case QType.UINT:
                return QValue(qtype, reader.read_u32())
            case QType.INT64:
                return QValue(qtype, reader.read_i64())
            case QType.UINT64:
                return QValue(qtype, reader.read_u64())
            case QType.SHORT:
                return QValue(qtype, reader.read_i16())
            case QType.DOUBLE:
                return QValue(qtype, reader.read_f64())
            case QType.CHAR:
                return QValue(qtype, chr(reader.read_u8()))
            case QType.STRING:
                return QValue(qtype, self._read_string(reader))
            case QType.BYTEARRAY:
                return QValue(qtype, self._read_bytes(reader))
            case QType.STRINGLIST:
                count = reader.read_u32()
                reader.ensure(count * 4, f"string list of {count} item(s)")
                return QValue(qtype, [self._read_string(reader) for _ in range(count)])
            case QType.LIST:
                self._check_depth(depth)
                count = reader.read_u32()
                reader.ensure(count * self._variant_header, f"list of {count} item(s)")
                items = [self._read_variant(reader, depth + 1) for _ in range(count)]
                return QValue(qtype, items)
            case QType.MAP:
                self._check_depth(depth)
                count = reader.read_u32()
                reader.ensure(count * (4 + self._variant_header), f"map of {count} entrie(s)")
                pairs = []
                for _ in range(count):
                    key = self._read_string(reader)
                    pairs.append((key, self._read_variant(reader, depth + 1)))
                return QValue(qtype, pairs)
            case QType.TIME:
                return QValue(qtype, self._read_time(reader))
            case QType.DATETIME:
                return QValue(qtype, self._read_datetime(reader))
            case QType.USERTYPE:
                raise MalformedBodyError("user type expected without a type name")

        raise UnknownTypeError(int(qtype))

    def _read_user(self, reader: BufferReader, name: str, depth: int) -> QValue:
        definition = self._registry.lookup(name)
        if definition.alias is not None:
            return QValue.user(name, self._read_typed(reader, definition.alias, depth))

        self._check_depth(depth)
        fields = {
            field.name: self._read_shape(reader, field.type, depth + 1)
            for field in definition.fields
        }
        return QValue.user(name, fields)

    def _check_depth(self, depth: int) -> None:
        if depth >= self._config.max_depth:
            raise MalformedBodyError(
                f"value nesting exceeds {self._config.max_depth} level(s)"
            )

    @staticmethod
    def _read_bytes(reader: BufferReader) -> bytes | None:
        length = reader.read_u32()
        if length == NULL_LENGTH:
            return None
        return reader.read(length)

    def _read_string(self, reader: BufferReader) -> str | None:
        raw = self._read_bytes(reader)
        if raw is None:
            return None
        if len(raw) % 2:
            raise MalformedBodyError(f"odd UTF-16 string length {len(raw)}")
        try:
            return raw.decode("utf-16-be")
        except UnicodeDecodeError as ex:
            raise MalformedBodyError(f"invalid UTF-16 string: {ex}") from ex

    @staticmethod
    def _read_time(reader: BufferReader) -> datetime.time | None:
        msecs = reader.read_u32()
        if msecs == NULL_LENGTH:
            return None
        return msecs_to_time(msecs)

    @staticmethod
    def _read_datetime(reader: BufferReader) -> datetime.datetime | None:
        julian_day = reader.read_u32()
        msecs = reader.read_u32()
        spec = reader.read_u8()

        if julian_day == 0:
            if msecs != NULL_LENGTH or spec != 0:
                raise MalformedBodyError(
                    f"null date with time {msecs:#x} and time spec {spec}"
                )
            return None
        if msecs == NULL_LENGTH:
            raise MalformedBodyError(f"julian day {julian_day} with a null time")

        ordinal = julian_day - JULIAN_DAY_OFFSET
        if not 1 <= ordinal <= datetime.date.max.toordinal():
            raise MalformedBodyError(f"julian day {julian_day} out of range")

        date = datetime.date.fromordinal(ordinal)
        time = msecs_to_time(msecs)

        match spec:
            case 0:
                tzinfo = None
            case 1:
                tzinfo = datetime.timezone.utc
            case _:
                raise MalformedBodyError(f"unsupported time spec {spec}")

        return datetime.datetime.combine(date, time, tzinfo=tzinfo)


def msecs_to_time(msecs: int) -> datetime.time:
    if msecs >= MSECS_PER_DAY:
        raise MalformedBodyError(f"time of day out of range: {msecs} ms")
    seconds, millis = divmod(msecs, 1000)
    minutes, second = divmod(seconds, 60)
    hour, minute = divmod(minutes, 60)
    return datetime.time(hour, minute, second, millis * 1000)
