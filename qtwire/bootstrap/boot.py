import asyncio
import signal

from qtwire.bootstrap.config.loader import get_cli_args
from qtwire.bootstrap.deps import get_server
from qtwire.core.helpers.utils import setup_logging

SHUTDOWN_SIGNALS = (
    signal.SIGINT,
    signal.SIGTERM,
)


async def serve() -> None:
    loop = asyncio.get_running_loop()
    server = get_server(loop)
    stop_event = asyncio.Event()

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    await server.start()
    try:
        await stop_event.wait()
    finally:
        await server.shutdown()


def main() -> None:
    cli = get_cli_args()
    setup_logging(cli.log_level)

    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
