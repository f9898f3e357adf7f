import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qtwire.core.transport.protocol import ServerProtocol


@dataclass
class ServerState:
    """
    Shared runtime state for a MessageServer.

    This object is mutated by:
    - ServerProtocol: adds/removes active connections and registers the
      application task of each connection
    - MessageServer.shutdown(): waits for connections and tasks to complete
    """
    connections: set["ServerProtocol"] = field(default_factory=set)
    """
    Set of active ServerProtocol instances, one per TCP connection.
    """

    tasks: set[asyncio.Task[None]] = field(default_factory=set)
    """
    Set of running application tasks. Each task removes itself through
    task.add_done_callback(tasks.discard).
    """
