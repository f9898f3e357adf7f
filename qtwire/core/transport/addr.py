import asyncio


def get_remote_addr(transport: asyncio.BaseTransport) -> tuple[str, int] | None:
    """
    Return the (host, port) of the peer, or None when the transport cannot
    tell. The socket is asked first, the cached peername second.
    """
    sock = transport.get_extra_info("socket")
    if sock is not None:
        try:
            info = sock.getpeername()
        except OSError:
            info = None
    else:
        info = transport.get_extra_info("peername")

    if isinstance(info, (list, tuple)) and len(info) >= 2:
        return str(info[0]), int(info[1])
    return None
