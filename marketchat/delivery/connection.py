# marketchat/delivery/connection.py
from typing import Any, Protocol


class Connection(Protocol):
    """A live client connection as seen by the delivery layer.

    The transport adapter (``api/realtime.py``) implements it on top of a
    WebSocket; tests use an in-memory recorder.
    """

    connection_id: str
    user_id: str

    async def send(self, event: str, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...
