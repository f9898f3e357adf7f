import datetime
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any


class QType(IntEnum):
    """
    Wire type identifiers of the QDataStream format.

    The numeric values are the ids written in front of every QVariant
    envelope; they follow Qt's QVariant/QMetaType numbering.
    """
    INVALID     = 0
    BOOL        = 1
    INT         = 2
    UINT        = 3
    INT64       = 4
    UINT64      = 5
    DOUBLE      = 6
    CHAR        = 7
    MAP         = 8
    LIST        = 9
    STRING      = 10
    STRINGLIST  = 11
    BYTEARRAY   = 12
    TIME        = 15
    DATETIME    = 16
    USERTYPE    = 127
    SHORT       = 133


class Envelope(Enum):
    """
    Marks a self-describing value: a 4-byte type id, an optional
    is-null flag and the payload.
    """
    VARIANT = "QVariant"


VARIANT = Envelope.VARIANT

Shape = QType | str | Envelope
"""
What a decoder expects or an encoder produces at a given position:
a base wire type, the name of a registered user type, or a QVariant
envelope.
"""

# Payload types that may be None without being an envelope-level null.
NULLABLE_TYPES = frozenset({
    QType.INVALID,
    QType.STRING,
    QType.BYTEARRAY,
    QType.TIME,
    QType.DATETIME,
})


@dataclass(frozen=True, slots=True)
class QValue:
    """
    A single tagged value of the QDataStream data model.

    The payload layout depends on `type`:

    - INVALID: None
    - BOOL: bool
    - INT, UINT, INT64, UINT64, SHORT: int
    - DOUBLE: float
    - CHAR: one character string
    - STRING: str or None (null string)
    - BYTEARRAY: bytes or None (null byte array)
    - STRINGLIST: list of str or None
    - LIST: list of QValue
    - MAP: list of (key, QValue) pairs, in wire order
    - TIME: datetime.time or None
    - DATETIME: datetime.datetime or None
    - USERTYPE: dict of field name to QValue for composite types,
      a single QValue for alias types

    Scalar values carrying None are null QVariants: they only have a wire
    representation inside an envelope.

    Values are not hashable since container payloads are lists and dicts.
    """
    type: QType
    """
    Wire type of the value.
    """

    value: Any = None
    """
    Python payload, see the class documentation.
    """

    name: str | None = None
    """
    Registered name, only set for USERTYPE values.
    """

    null: bool = field(default=False, compare=False)
    """
    Whether the value travels as a QVariant with the is-null flag set, in
    which case no payload is written. Decoded envelopes keep the flag so
    they re-encode to the same bytes; it does not take part in equality.
    """

    __hash__ = None  # type: ignore[assignment]

    @property
    def is_null(self) -> bool:
        return self.null or self.value is None

    @classmethod
    def invalid(cls) -> "QValue":
        # Qt flags a default QVariant() as null
        return cls(QType.INVALID, null=True)

    @classmethod
    def boolean(cls, value: bool) -> "QValue":
        return cls(QType.BOOL, value)

    @classmethod
    def int32(cls, value: int) -> "QValue":
        return cls(QType.INT, value)

    @classmethod
    def uint32(cls, value: int) -> "QValue":
        return cls(QType.UINT, value)

    @classmethod
    def int64(cls, value: int) -> "QValue":
        return cls(QType.INT64, value)

    @classmethod
    def uint64(cls, value: int) -> "QValue":
        return cls(QType.UINT64, value)

    @classmethod
    def short(cls, value: int) -> "QValue":
        return cls(QType.SHORT, value)

    @classmethod
    def double(cls, value: float) -> "QValue":
        return cls(QType.DOUBLE, value)

    @classmethod
    def char(cls, value: str) -> "QValue":
        return cls(QType.CHAR, value)

    @classmethod
    def string(cls, value: str | None) -> "QValue":
        return cls(QType.STRING, value)

    @classmethod
    def bytearray(cls, value: bytes | None) -> "QValue":
        return cls(QType.BYTEARRAY, None if value is None else bytes(value))

    @classmethod
    def stringlist(cls, values: Iterable[str | None]) -> "QValue":
        return cls(QType.STRINGLIST, list(values))

    @classmethod
    def list(cls, values: Iterable["QValue"]) -> "QValue":
        return cls(QType.LIST, [*values])

    @classmethod
    def map(
        cls,
        items: Mapping[str | None, "QValue"] | Iterable[tuple[str | None, "QValue"]]
    ) -> "QValue":
        if isinstance(items, Mapping):
            items = items.items()
        return cls(QType.MAP, [(k, v) for k, v in items])

    @classmethod
    def time(cls, value: datetime.time | None) -> "QValue":
        return cls(QType.TIME, value)

    @classmethod
    def datetime(cls, value: datetime.datetime | None) -> "QValue":
        return cls(QType.DATETIME, value)

    @classmethod
    def user(cls, name: str, value: Any) -> "QValue":
        return cls(QType.USERTYPE, value, name)

    def to_native(self) -> Any:
        """
        Strip the type tags and return plain Python data.

        Maps become dicts (a later duplicate key replaces an earlier one),
        lists become lists, composite user types become dicts and alias
        user types collapse to their inner value.
        """
        if self.value is None:
            return None

        match self.type:
            case QType.LIST:
                return [item.to_native() for item in self.value]
            case QType.MAP:
                return {key: item.to_native() for key, item in self.value}
            case QType.STRINGLIST:
                return list(self.value)
            case QType.USERTYPE:
                if isinstance(self.value, QValue):
                    return self.value.to_native()
                return {field: item.to_native() for field, item in self.value.items()}
            case _:
                return self.value


def shape_label(shape: Shape) -> str:
    """Human readable name of a shape, used in log and error messages."""
    if isinstance(shape, QType):
        return shape.name
    if isinstance(shape, Envelope):
        return shape.value
    return repr(shape)
