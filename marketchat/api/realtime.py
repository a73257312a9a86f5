# marketchat/api/realtime.py
import uuid
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from marketchat.delivery.channel import DeliveryChannel
from marketchat.domain.exceptions import Unauthorized

router = APIRouter()


class WebSocketConnection:
    def __init__(self, websocket: WebSocket, user_id: str):
        self.websocket = websocket
        self.user_id = user_id
        self.connection_id = uuid.uuid4().hex
        self.closed = False

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": data})

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        await self.websocket.close(code=code, reason=reason)


@router.websocket("/ws")
async def delivery_socket(websocket: WebSocket, token: str | None = Query(None)):
    channel: DeliveryChannel = websocket.app.state.delivery_channel
    await websocket.accept()
    try:
        user = await channel.authenticate(token)
    except Unauthorized as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.public_message)
        return

    connection = WebSocketConnection(websocket, user.id)
    try:
        await channel.connect(connection)
        while not connection.closed:
            raw = await websocket.receive_text()
            await channel.receive(connection, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await channel.disconnect(connection)
