import ssl
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource, YamlConfigSettingsSource

from qtwire.bootstrap.config.loader import get_configfile
from qtwire.core.codec.registry import TypeRegistry
from qtwire.core.models.config import MAX_PACKET_SIZE, CodecConfig
from qtwire.core.models.qtypes import QType, Shape, VARIANT


class CodecSettings(BaseModel):
    max_packet_size: Annotated[
        int,
        Field(
            description=(
                "Largest packet body accepted, in bytes.\n"
                "A length prefix above this value terminates the stream.\n"
                "Cannot exceed 64 MiB."
            ),
            ge=0,
            le=MAX_PACKET_SIZE,
            default=MAX_PACKET_SIZE
        )
    ]

    framed: Annotated[
        bool,
        Field(
            description=(
                "Prefix every outgoing body with its 4-byte length.\n"
                "Disable when an outer channel already delimits messages."
            ),
            default=True
        )
    ]

    message_type: Annotated[
        str,
        Field(
            description=(
                "Shape of every top-level message.\n"
                "'QVariant' for a self-describing envelope, a base type name such\n"
                "as 'LIST' or 'MAP', or the name of a type declared in user_types."
            ),
            default=VARIANT.value
        )
    ]

    variant_null_flag: Annotated[
        bool,
        Field(
            description=(
                "Whether QVariant envelopes carry the 1-byte is-null flag.\n"
                "Qt writes it for stream versions 4.2 and later."
            ),
            default=True
        )
    ]

    max_depth: Annotated[
        int,
        Field(
            description="Deepest container nesting accepted while decoding.",
            ge=1,
            default=64
        )
    ]

    def shape(self) -> Shape:
        if self.message_type == VARIANT.value:
            return VARIANT
        try:
            return QType[self.message_type]
        except KeyError:
            return self.message_type

    def to_codec_config(self) -> CodecConfig:
        return CodecConfig(
            max_packet_size=self.max_packet_size,
            framed=self.framed,
            message_shape=self.shape(),
            variant_null_flag=self.variant_null_flag,
            max_depth=self.max_depth,
        )


class ServerSettings(BaseModel):
    host: Annotated[
        str,
        Field(
            description="Bind address of the server.",
            default="127.0.0.1"
        )
    ]

    port: Annotated[
        int,
        Field(
            description="TCP port of the server. 0 lets the OS pick one.",
            default=4242
        )
    ]

    backlog: Annotated[
        int,
        Field(
            description="Maximum number of pending TCP connections.",
            default=128
        )
    ]

    timeout_graceful_shutdown: Annotated[
        float,
        Field(
            description="Maximum time allowed for graceful shutdown.",
            default=5.0
        )
    ]

    limit_concurrency: Annotated[
        int,
        Field(
            description="Maximum number of simultaneous connections.",
            default=1024
        )
    ]


class TLSSettings(BaseModel):
    certfile: Annotated[
        Path,
        Field(description="Path to the server TLS certificate (PEM).")
    ]

    keyfile: Annotated[
        Path,
        Field(description="Path to the server TLS private key (PEM).")
    ]

    cafile: Annotated[
        Path | None,
        Field(
            description=(
                "Path to a CA certificate (PEM). When set, clients must present\n"
                "a certificate signed by this CA."
            ),
            default=None
        )
    ]

    @field_validator("certfile", "keyfile", "cafile")
    @classmethod
    def validate_path(cls, v: Path | None) -> Path | None:
        if v is not None and not v.exists():
            raise ValueError(f"Path {v} does not exist.")
        return v


class QtWireConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="QTWIRE_",
        extra="ignore"
    )

    codec: Annotated[
        CodecSettings,
        Field(
            description="Wire format settings shared by every connection.",
            default_factory=CodecSettings
        )
    ]

    server: Annotated[
        ServerSettings,
        Field(
            description="Listening socket and runtime limits of the server.",
            default_factory=ServerSettings
        )
    ]

    tls: Annotated[
        TLSSettings | None,
        Field(
            description="TLS configuration. Plain TCP when omitted.",
            default=None
        )
    ]

    user_types: Annotated[
        dict[str, str | list[dict[str, str]]],
        Field(
            description=(
                "Application-defined types, keyed by name.\n"
                "A string aliases a base type ('INT'); a list declares the fields\n"
                "in wire order, each typed by a base type or another user type:\n\n"
                "  BufferInfo:\n"
                "    - id: INT\n"
                "    - network: NetworkId\n"
                "    - name: BYTEARRAY"
            ),
            default_factory=dict
        )
    ]

    @model_validator(mode="after")
    def validate_user_types(self) -> "QtWireConfig":
        registry = self.build_registry()
        shape = self.codec.shape()
        if isinstance(shape, str) and shape not in registry:
            raise ValueError(
                f"codec.message_type '{shape}' is neither a base type nor a declared user type"
            )
        for name in registry.names():
            for field in registry.lookup(name).fields:
                if isinstance(field.type, str) and field.type not in registry:
                    raise ValueError(
                        f"user type '{name}' references undeclared type '{field.type}'"
                    )
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Command line overrides come first and are merged over the file
        return (init_settings, YamlConfigSettingsSource(settings_cls, yaml_file=get_configfile()))

    def build_registry(self) -> TypeRegistry:
        return TypeRegistry.from_mapping(self.user_types)

    def get_server_ssl_ctx(self) -> ssl.SSLContext | None:
        if self.tls is None:
            return None

        ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        ctx.load_cert_chain(
            certfile=self.tls.certfile,
            keyfile=self.tls.keyfile
        )
        if self.tls.cafile is not None:
            ctx.verify_mode = ssl.CERT_REQUIRED
            ctx.load_verify_locations(cafile=self.tls.cafile)

        return ctx
