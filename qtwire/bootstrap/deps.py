import asyncio
import json
from functools import lru_cache

from pydantic import ValidationError

from qtwire.bootstrap.config.loader import get_cli_overrides
from qtwire.bootstrap.config.settings import QtWireConfig
from qtwire.core.apps.echo import EchoApplication
from qtwire.core.codec.registry import TypeRegistry
from qtwire.core.models.config import ServerConfig
from qtwire.core.transport.server import MessageServer


@lru_cache
def get_config() -> QtWireConfig:
    try:
        return QtWireConfig(**get_cli_overrides())
    except FileNotFoundError as ex:
        raise SystemExit(f"Provide a correct configuration file path: {ex}")
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            loc = ".".join(str(part) for part in err["loc"]) or "<root>"
            msg.append(f"  {loc}: {err['msg']}")
        raise SystemExit("\n".join(msg))


@lru_cache
def get_registry() -> TypeRegistry:
    return get_config().build_registry()


@lru_cache
def get_app() -> EchoApplication:
    return EchoApplication()


def get_server(loop: asyncio.AbstractEventLoop | None = None) -> MessageServer:
    config = get_config()
    server_config = ServerConfig(
        app=get_app(),
        host=config.server.host,
        port=config.server.port,
        backlog=config.server.backlog,
        ssl_ctx=config.get_server_ssl_ctx(),
        limit_concurrency=config.server.limit_concurrency,
        timeout_graceful_shutdown=config.server.timeout_graceful_shutdown,
        codec=config.codec.to_codec_config(),
    )
    return MessageServer(server_config, registry=get_registry(), loop=loop)
