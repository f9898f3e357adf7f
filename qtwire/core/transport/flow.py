import asyncio


class FlowControl:
    """
    Writable state of a transport, driven by the protocol callbacks
    `pause_writing` and `resume_writing`.

    Senders await `drain()` before writing; it returns immediately while
    the transport accepts data and blocks while its write buffer is above
    the high-water mark.
    """

    def __init__(self) -> None:
        self._resumed = asyncio.Event()
        self._resumed.set()

    @property
    def write_paused(self) -> bool:
        return not self._resumed.is_set()

    async def drain(self) -> None:
        if self.write_paused:
            await self._resumed.wait()

    def pause_writing(self) -> None:
        self._resumed.clear()

    def resume_writing(self) -> None:
        self._resumed.set()
