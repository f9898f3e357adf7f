import datetime
import logging
import struct
from collections.abc import Mapping
from typing import Any

from qtwire.core.codec.errors import EncodeError, OversizedPacketError
from qtwire.core.codec.reader import JULIAN_DAY_OFFSET, NULL_LENGTH
from qtwire.core.codec.registry import TypeRegistry
from qtwire.core.models.config import CodecConfig
from qtwire.core.models.qtypes import NULLABLE_TYPES, Envelope, QType, QValue, Shape

_UINT32_MAX = 0xFFFFFFFF

_FIXED = {
    QType.INT: struct.Struct("!i"),
    QType.UINT: struct.Struct("!I"),
    QType.INT64: struct.Struct("!q"),
    QType.UINT64: struct.Struct("!Q"),
    QType.SHORT: struct.Struct("!h"),
    QType.DOUBLE: struct.Struct("!d"),
}
_U8 = struct.Struct("!B")
_U32 = struct.Struct("!I")


class Encoder:
    """
    Turns QValue trees, or plain Python values, into QDataStream bytes.

    The output mirrors the Decoder byte for byte. Plain Python values are
    mapped to a default wire type (see `coerce`); wrap them in a QValue to
    pick another one, or ask for a target shape with `encode(obj, shape)`.
    Containers are written in the order they are given: map entries are
    never sorted.
    """
    def __init__(
        self,
        registry: TypeRegistry | None = None,
        config: CodecConfig | None = None,
    ) -> None:
        self._registry = registry or TypeRegistry()
        self._config = config or CodecConfig()
        self._logger = logging.getLogger("core.codec.writer")

    @property
    def registry(self) -> TypeRegistry:
        return self._registry

    def encode(self, obj: Any, shape: Shape | None = None) -> bytes:
        """
        Encode `obj` without length prefix.

        With no shape the value is written untagged as its own type. A QType
        coerces `obj` to that type, a string names a registered user type
        and VARIANT wraps the value in a QVariant envelope.
        """
        out = bytearray()
        self._write_shape(out, obj, shape)
        return bytes(out)

    def frame(self, body: bytes) -> bytes:
        """Prepend the 4-byte big-endian length of `body`."""
        if len(body) > self._config.max_packet_size:
            raise OversizedPacketError(len(body), self._config.max_packet_size)
        return _U32.pack(len(body)) + body

    def encode_framed(self, obj: Any, shape: Shape | None = None) -> bytes:
        return self.frame(self.encode(obj, shape))

    def coerce(self, obj: Any) -> QValue:
        """
        Map a plain Python value to its default wire type.

        bool -> BOOL, int -> UINT, float -> DOUBLE, str -> STRING,
        bytes -> BYTEARRAY, datetime/date -> DATETIME, time -> TIME,
        list/tuple -> LIST, mapping -> MAP, None -> INVALID.
        QValue instances are returned unchanged.
        """
        match obj:
            case QValue():
                return obj
            case None:
                return QValue.invalid()
            case bool():
                return QValue.boolean(obj)
            case int():
                if not 0 <= obj <= _UINT32_MAX:
                    raise EncodeError(
                        f"{obj} does not fit the default UINT type, "
                        f"wrap it in QValue.int32() or QValue.int64()"
                    )
                return QValue.uint32(obj)
            case float():
                return QValue.double(obj)
            case str():
                return QValue.string(obj)
            case bytes() | bytearray() | memoryview():
                return QValue.bytearray(bytes(obj))
            case datetime.datetime():
                return QValue.datetime(obj)
            case datetime.date():
                return QValue.datetime(datetime.datetime.combine(obj, datetime.time()))
            case datetime.time():
                return QValue.time(obj)
            case list() | tuple():
                return QValue.list(self.coerce(item) for item in obj)
            case Mapping():
                return QValue.map(self._coerce_pairs(obj.items()))

        raise EncodeError(f"Unsupported type: {type(obj).__name__}")

    def coerce_to(self, obj: Any, qtype: QType) -> QValue:
        """Interpret `obj` as a value of the base type `qtype`."""
        if isinstance(obj, QValue):
            if obj.type is not qtype:
                raise EncodeError(f"expected a {qtype.name} value, got {obj.type.name}")
            return obj

        match qtype:
            case QType.USERTYPE:
                raise EncodeError("user types must be requested by their registered name")
            case QType.LIST:
                if not isinstance(obj, (list, tuple)):
                    raise EncodeError(f"LIST expects a list, got {type(obj).__name__}")
                return QValue.list(self.coerce(item) for item in obj)
            case QType.MAP:
                items = obj.items() if isinstance(obj, Mapping) else obj
                return QValue.map(self._coerce_pairs(items))
            case QType.STRINGLIST:
                if isinstance(obj, (str, bytes)):
                    raise EncodeError("STRINGLIST expects a sequence of strings")
                return QValue.stringlist(obj)
            case QType.BYTEARRAY:
                return QValue.bytearray(obj)
            case QType.CHAR if isinstance(obj, int):
                return QValue.char(chr(obj))
            case QType.DATETIME if type(obj) is datetime.date:
                return QValue.datetime(datetime.datetime.combine(obj, datetime.time()))

        return QValue(qtype, obj)

    def _coerce_pairs(self, items: Any) -> list[tuple[str | None, QValue]]:
        pairs = []
        for key, value in items:
            if key is not None and not isinstance(key, str):
                raise EncodeError(f"map keys must be strings, got {type(key).__name__}")
            pairs.append((key, self.coerce(value)))
        return pairs

    def _write_shape(self, out: bytearray, obj: Any, shape: Shape | None) -> None:
        if shape is None:
            value = self.coerce(obj)
            if value.type is QType.USERTYPE:
                self._write_user(out, value.name, value)
            else:
                self._write_typed(out, value)
        elif isinstance(shape, Envelope):
            self._write_variant(out, obj)
        elif isinstance(shape, QType):
            self._write_typed(out, self.coerce_to(obj, shape))
        else:
            self._write_user(out, shape, obj)

    def _write_variant(self, out: bytearray, obj: Any) -> None:
        value = self.coerce(obj)
        out += _U32.pack(value.type)

        nullable = value.type in NULLABLE_TYPES
        if value.null or (value.value is None and not nullable):
            if self._config.variant_null_flag:
                out += _U8.pack(1)
                return
            if not nullable:
                raise EncodeError(f"null {value.type.name} needs the variant null flag")

        if self._config.variant_null_flag:
            out += _U8.pack(0)

        if value.type is QType.USERTYPE:
            if not value.name:
                raise EncodeError("user type value without a name")
            self._write_bytes(out, value.name.encode("ascii") + b"\x00")
            self._write_user(out, value.name, value)
        else:
            self._write_typed(out, value)

    def _write_typed(self, out: bytearray, value: QValue) -> None:
        payload = value.value
        if payload is None and value.type not in NULLABLE_TYPES:
            raise EncodeError(
                f"null {value.type.name} can only be written inside a QVariant"
            )

        match value.type:
            case QType.INVALID:
                pass
            case QType.BOOL:
                out += _U8.pack(1 if payload else 0)
            case QType.INT | QType.UINT | QType.INT64 | QType.UINT64 | QType.SHORT | QType.DOUBLE:
                try:
                    out += _FIXED[value.type].pack(payload)
                except struct.error as ex:
                    raise EncodeError(f"invalid {value.type.name} value {payload!r}: {ex}") from ex
            case QType.CHAR:
                if not isinstance(payload, str) or len(payload) != 1 or ord(payload) > 0xFF:
                    raise EncodeError(f"CHAR expects a single 8-bit character, got {payload!r}")
                out += _U8.pack(ord(payload))
            case QType.STRING:
                self._write_string(out, payload)
            case QType.BYTEARRAY:
                if payload is not None and not isinstance(payload, (bytes, bytearray, memoryview)):
                    raise EncodeError(f"BYTEARRAY expects bytes, got {type(payload).__name__}")
                self._write_bytes(out, None if payload is None else bytes(payload))
            case QType.STRINGLIST:
                items = list(payload)
                self._write_count(out, len(items))
                for item in items:
                    self._write_string(out, item)
            case QType.LIST:
                items = list(payload)
                self._write_count(out, len(items))
                for item in items:
                    self._write_variant(out, item)
            case QType.MAP:
                items = list(payload.items() if isinstance(payload, Mapping) else payload)
                self._write_count(out, len(items))
                for key, item in items:
                    self._write_string(out, key)
                    self._write_variant(out, item)
            case QType.TIME:
                out += _U32.pack(NULL_LENGTH if payload is None else time_to_msecs(payload))
            case QType.DATETIME:
                self._write_datetime(out, payload)
            case QType.USERTYPE:
                self._write_user(out, value.name, value)

    def _write_user(self, out: bytearray, name: str | None, obj: Any) -> None:
        if not name:
            raise EncodeError("user type value without a name")

        if isinstance(obj, QValue):
            if obj.type is not QType.USERTYPE or obj.name != name:
                raise EncodeError(f"expected a '{name}' user type value, got {obj.type.name}")
            obj = obj.value

        definition = self._registry.lookup(name)
        if definition.alias is not None:
            self._write_typed(out, self.coerce_to(obj, definition.alias))
            return

        if not isinstance(obj, Mapping):
            raise EncodeError(f"user type '{name}' expects a mapping of its fields")

        for field in definition.fields:
            try:
                item = obj[field.name]
            except KeyError:
                raise EncodeError(f"user type '{name}' misses field '{field.name}'") from None

            if isinstance(field.type, QType):
                self._write_typed(out, self.coerce_to(item, field.type))
            else:
                self._write_user(out, field.type, item)

    @staticmethod
    def _write_count(out: bytearray, count: int) -> None:
        if count >= NULL_LENGTH:
            raise EncodeError(f"{count} items do not fit a 32-bit count")
        out += _U32.pack(count)

    def _write_bytes(self, out: bytearray, data: bytes | None) -> None:
        if data is None:
            out += _U32.pack(NULL_LENGTH)
            return
        self._write_count(out, len(data))
        out += data

    def _write_string(self, out: bytearray, text: str | None) -> None:
        if text is not None and not isinstance(text, str):
            raise EncodeError(f"STRING expects str, got {type(text).__name__}")
        try:
            self._write_bytes(out, None if text is None else text.encode("utf-16-be"))
        except UnicodeEncodeError as ex:
            raise EncodeError(f"string cannot be encoded as UTF-16: {ex}") from ex

    @staticmethod
    def _write_datetime(out: bytearray, value: datetime.datetime | None) -> None:
        if value is None:
            out += _U32.pack(0) + _U32.pack(NULL_LENGTH) + _U8.pack(0)
            return

        if not isinstance(value, datetime.datetime):
            raise EncodeError(f"DATETIME expects a datetime, got {type(value).__name__}")

        spec = 0
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc)
            spec = 1

        julian_day = value.toordinal() + JULIAN_DAY_OFFSET
        out += _U32.pack(julian_day) + _U32.pack(time_to_msecs(value.time())) + _U8.pack(spec)


def time_to_msecs(value: datetime.time) -> int:
    if not isinstance(value, datetime.time):
        raise EncodeError(f"TIME expects a time, got {type(value).__name__}")
    return ((value.hour * 60 + value.minute) * 60 + value.second) * 1000 + value.microsecond // 1000
