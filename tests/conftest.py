import os
import ssl
from typing import Generator

import pytest
import yaml

from tests.fake.fake_transport import FakeTransport
from tests.helpers import FakeQtWireConfig
from tests.utils import generate_cert_pair, write_pem

from qtwire.bootstrap.config.settings import QtWireConfig, TLSSettings
from qtwire.core.codec.reader import Decoder
from qtwire.core.codec.registry import TypeRegistry
from qtwire.core.codec.writer import Encoder
from qtwire.core.models.qtypes import QType


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def registry() -> TypeRegistry:
    registry = TypeRegistry()
    registry.register("NetworkId", QType.INT)
    registry.register("BufferInfo", [
        ("id", QType.INT),
        ("network", "NetworkId"),
        ("type", QType.SHORT),
        ("name", QType.BYTEARRAY),
    ])
    return registry


@pytest.fixture
def decoder(registry) -> Decoder:
    return Decoder(registry)


@pytest.fixture
def encoder(registry) -> Encoder:
    return Encoder(registry)


@pytest.fixture(scope="session")
def tls_settings(tmp_path_factory) -> tuple[TLSSettings, TLSSettings]:
    ca_cert, server_key, server_cert, client_key, client_cert = generate_cert_pair()
    base = tmp_path_factory.mktemp("mtls")

    for obj, name in (
        (ca_cert, "ca.pem"),
        (server_cert, "server.pem"),
        (server_key, "server.key"),
        (client_cert, "client.pem"),
        (client_key, "client.key"),
    ):
        write_pem(obj, base / name)

    server_tls = TLSSettings(
        certfile=base / "server.pem",
        keyfile=base / "server.key",
        cafile=base / "ca.pem"
    )
    client_tls = TLSSettings(
        certfile=base / "client.pem",
        keyfile=base / "client.key",
        cafile=base / "ca.pem"
    )

    return server_tls, client_tls


@pytest.fixture(scope="session")
def config_file(tmp_path_factory, tls_settings):
    server_tls, _ = tls_settings
    base = tmp_path_factory.mktemp("config")
    file = base / "qtwire.yaml"

    data = {
        "codec": {
            "max_packet_size": 1024 * 1024,
            "message_type": "QVariant",
            "max_depth": 16,
        },
        "server": {
            "host": "127.0.0.1",
            "port": 0,
            "backlog": 10,
            "timeout_graceful_shutdown": 1,
            "limit_concurrency": 10,
        },
        "tls": {
            "certfile": str(server_tls.certfile),
            "keyfile": str(server_tls.keyfile),
            "cafile": str(server_tls.cafile),
        },
        "user_types": {
            "NetworkId": "INT",
            "BufferInfo": [
                {"id": "INT"},
                {"network": "NetworkId"},
                {"type": "SHORT"},
                {"name": "BYTEARRAY"},
            ],
        },
    }

    file.write_text(yaml.dump(data, sort_keys=False))
    return file


@pytest.fixture(scope="session")
def qtwire_config(config_file, tls_settings) -> Generator[QtWireConfig, None, None]:
    backup = os.environ.copy()

    try:
        os.environ["TEST_QTWIRECONFIG"] = str(config_file)
        yield FakeQtWireConfig()
    finally:
        os.environ.clear()
        os.environ.update(backup)


@pytest.fixture(scope="session")
def mtls_contexts(tls_settings, qtwire_config):
    _, client_tls = tls_settings

    # Requires a client certificate signed by the test CA
    server_ctx = qtwire_config.get_server_ssl_ctx()

    client_ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    client_ctx.load_cert_chain(client_tls.certfile, client_tls.keyfile)
    client_ctx.load_verify_locations(cafile=client_tls.cafile)

    return server_ctx, client_ctx
