import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from qtwire.core.codec.errors import UnregisteredUserTypeError
from qtwire.core.models.qtypes import QType


FieldType = QType | str


@dataclass(frozen=True, slots=True)
class UserTypeField:
    name: str
    type: FieldType
    """
    A base wire type, or the name of another registered user type.
    """


@dataclass(frozen=True, slots=True)
class UserTypeDef:
    """
    Wire shape of a registered user type.

    Either `alias` is set and the type is written as that single base
    type, or `fields` lists the values written one after the other in
    declaration order.
    """
    name: str
    alias: QType | None = None
    fields: tuple[UserTypeField, ...] = ()

    @property
    def is_composite(self) -> bool:
        return self.alias is None


UserTypeShape = (
    QType
    | Mapping[str, FieldType]
    | Iterable[tuple[str, FieldType]]
    | Iterable[Mapping[str, FieldType]]
)


class TypeRegistry:
    """
    Name to wire shape mapping for application-defined types.

    User types carry no self-describing layout on the wire: once the
    decoder knows which name applies, the registered definition tells it
    how many values follow and of which types. The registry is filled at
    startup and only read afterwards; it is handed explicitly to every
    Decoder and Encoder so that independent streams can use different
    registries.
    """

    def __init__(self) -> None:
        self._types: dict[str, UserTypeDef] = {}
        self._logger = logging.getLogger("core.codec.registry")

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __len__(self) -> int:
        return len(self._types)

    def names(self) -> Iterator[str]:
        return iter(self._types)

    def register(self, name: str, shape: UserTypeShape) -> UserTypeDef:
        """
        Store the definition of `name`, replacing any previous one.

        `shape` is a base QType for an alias, or an ordered field list given
        as (field, type) pairs, as single-entry mappings, or as one mapping.
        """
        if not name:
            raise ValueError("User type name must not be empty")

        if isinstance(shape, QType):
            definition = UserTypeDef(name=name, alias=self._check_base(name, shape))
        else:
            fields = tuple(self._parse_fields(name, shape))
            definition = UserTypeDef(name=name, fields=fields)

        if name in self._types:
            self._logger.debug(f"Overwriting user type '{name}'")

        self._types[name] = definition
        return definition

    def lookup(self, name: str) -> UserTypeDef:
        try:
            return self._types[name]
        except KeyError:
            raise UnregisteredUserTypeError(name) from None

    def is_composite(self, name: str) -> bool:
        return self.lookup(name).is_composite

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TypeRegistry":
        """
        Build a registry from configuration data.

        Types are spelled as strings: a QType member name ("INT",
        "BYTEARRAY", ...) designates a base type, anything else is the name
        of a registered user type.

            NetworkId: INT
            BufferInfo:
              - id: INT
              - network: NetworkId
              - name: BYTEARRAY
        """
        registry = cls()
        for name, raw in data.items():
            if isinstance(raw, (str, QType)):
                resolved = parse_field_type(raw)
                if not isinstance(resolved, QType):
                    raise ValueError(
                        f"User type '{name}' must alias a base type, got '{raw}'"
                    )
                registry.register(name, resolved)
            else:
                registry.register(
                    name,
                    [(field, parse_field_type(t)) for field, t in _iter_pairs(name, raw)]
                )
        return registry

    def _parse_fields(self, name: str, shape: Any) -> Iterator[UserTypeField]:
        seen: set[str] = set()
        for field, field_type in _iter_pairs(name, shape):
            if field in seen:
                raise ValueError(f"User type '{name}' declares field '{field}' twice")
            seen.add(field)

            if isinstance(field_type, QType):
                field_type = self._check_base(name, field_type)
            elif not isinstance(field_type, str) or not field_type:
                raise ValueError(
                    f"User type '{name}': invalid type {field_type!r} for field '{field}'"
                )
            yield UserTypeField(name=field, type=field_type)

    @staticmethod
    def _check_base(name: str, qtype: QType) -> QType:
        if qtype is QType.USERTYPE:
            raise ValueError(
                f"User type '{name}' must reference other user types by name"
            )
        return qtype


def parse_field_type(raw: QType | str) -> FieldType:
    if isinstance(raw, QType):
        return raw
    try:
        return QType[raw]
    except KeyError:
        return raw


def _iter_pairs(name: str, shape: Any) -> Iterator[tuple[str, Any]]:
    if isinstance(shape, Mapping):
        yield from shape.items()
        return

    for entry in shape:
        if isinstance(entry, Mapping):
            if len(entry) != 1:
                raise ValueError(
                    f"User type '{name}': field entries must hold exactly one field"
                )
            yield next(iter(entry.items()))
        else:
            field, field_type = entry
            yield field, field_type
