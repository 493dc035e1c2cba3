from collections.abc import Sequence
from typing import Any, Protocol


class SnapshotSource(Protocol):
    """Read-only provider of the entities pushed to websocket clients.

    ``get_snapshot`` runs inside the hub loop and must return quickly with an
    independent, JSON-serializable copy.
    """

    def is_ready(self) -> bool: ...

    def get_snapshot(self) -> Sequence[Any]: ...
