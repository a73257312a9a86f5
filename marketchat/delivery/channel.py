# marketchat/delivery/channel.py
import asyncio
import logging

from pydantic import BaseModel

from marketchat.config import AppConfig
from marketchat.delivery import commands
from marketchat.delivery.connection import Connection
from marketchat.delivery.presence import PresenceRegistry
from marketchat.delivery.rooms import RoomRegistry, chat_room, user_room
from marketchat.domain.exceptions import ChatServiceError, Forbidden, NotFound, Unauthorized
from marketchat.infrastructure import schemas
from marketchat.infrastructure.offline_relay import OfflineRelay
from marketchat.infrastructure.security import SecurityService
from marketchat.infrastructure.time import utc_now
from marketchat.interactors.factory import InteractorFactory

REPLACED_CLOSE_CODE = 4000


class DeliveryChannel:
    """Transport-independent half of the realtime connection.

    ``api/realtime.py`` owns the socket and feeds frames in; everything the
    server pushes back goes out through ``Connection.send``.
    """

    def __init__(
        self,
        config: AppConfig,
        security_service: SecurityService,
        interactors: InteractorFactory,
        presence: PresenceRegistry,
        rooms: RoomRegistry,
        offline_relay: OfflineRelay,
        logger: logging.Logger,
    ):
        self.config = config
        self.security_service = security_service
        self.interactors = interactors
        self.presence = presence
        self.rooms = rooms
        self.offline_relay = offline_relay
        self.logger = logger
        self._handlers = {
            commands.JoinChat: self.join_chat,
            commands.LeaveChat: self.leave_chat,
            commands.SendMessage: self.send_message,
            commands.TypingStart: self.typing_start,
            commands.TypingStop: self.typing_stop,
            commands.MarkMessagesRead: self.mark_messages_read,
            commands.Ping: self.ping,
        }

    async def authenticate(self, token: str | None) -> schemas.CurrentUser:
        if not token:
            raise Unauthorized("Missing delivery token")
        try:
            return await asyncio.wait_for(
                self._verify(token), timeout=self.config.HANDSHAKE_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError as e:
            self.logger.warning("Delivery handshake timed out")
            raise Unauthorized("Handshake timed out") from e
        except Unauthorized:
            raise
        except Exception as e:
            self.logger.exception("Delivery handshake failed")
            raise Unauthorized("Handshake failed") from e

    async def _verify(self, token: str) -> schemas.CurrentUser:
        user_id = self.security_service.decode_delivery_token(token)
        if user_id is None:
            raise Unauthorized("Invalid delivery token")
        async with self.interactors.open() as scope:
            user = await scope.users.get_active_user(user_id)
            if user is None:
                raise Unauthorized("Unknown or inactive user")
            return schemas.CurrentUser.model_validate(user)

    async def connect(self, connection: Connection) -> None:
        user_id = connection.user_id
        self.rooms.join(user_room(user_id), connection)
        replaced = await self.presence.register(user_id, connection)
        if replaced is not None:
            self.rooms.remove_connection(replaced)
            try:
                await replaced.close(REPLACED_CLOSE_CODE, "Replaced by a newer connection")
            except Exception as e:
                self.logger.warning(f"Failed to close replaced connection for {user_id}: {e!s}")
        self.logger.info(f"User {user_id} connected ({connection.connection_id})")

        await self._broadcast_presence(user_id, online=True)

        if self.config.OFFLINE_DRAIN_ON_CONNECT:
            await self.deliver_offline_messages(connection)

    async def deliver_offline_messages(self, connection: Connection) -> None:
        try:
            entries = await self.offline_relay.drain(connection.user_id)
        except ChatServiceError as e:
            self.logger.error(f"Offline relay unavailable for {connection.user_id}: {e.message}")
            return
        if not entries:
            return
        payload = schemas.OfflineMessages(entries=entries)
        try:
            await connection.send("offline_messages", payload.model_dump(mode="json", by_alias=True))
        except Exception as e:
            self.logger.warning(
                f"Failed to deliver offline messages to {connection.user_id}, requeueing: {e!s}"
            )
            await self._requeue(connection.user_id, entries)

    async def _requeue(self, user_id: str, entries: list[schemas.RelayEntry]) -> None:
        try:
            for entry in entries:
                await self.offline_relay.enqueue(user_id, entry.chat_id, entry.message)
        except ChatServiceError as e:
            self.logger.error(f"Lost offline messages for {user_id}: {e.message}")

    async def receive(self, connection: Connection, raw: str | bytes | dict) -> None:
        try:
            command = commands.parse_command(raw)
        except commands.CommandError as e:
            await self._send_error(connection, str(e))
            return

        await self.presence.touch(connection.user_id)
        handler = self._handlers[type(command)]
        try:
            await handler(connection, command)
        except ChatServiceError as e:
            await self._send_error(connection, e.public_message)
        except Exception:
            self.logger.exception(
                f"Unhandled error while processing {type(command).__name__} from {connection.user_id}"
            )
            await self._send_error(connection, "Internal server error")

    async def disconnect(self, connection: Connection) -> None:
        user_id = connection.user_id
        self.rooms.remove_connection(connection)
        if await self.presence.unregister(user_id, connection):
            await self._broadcast_presence(
                user_id, online=False, last_seen_at=self.presence.last_seen(user_id)
            )
        self.logger.info(f"User {user_id} disconnected ({connection.connection_id})")

    async def join_chat(self, connection: Connection, command: commands.JoinChat) -> None:
        async with self.interactors.open() as scope:
            try:
                await scope.chats.get_chat(command.chat_id, connection.user_id)
            except (NotFound, Forbidden):
                self.logger.debug(f"Ignoring join of {command.chat_id} by {connection.user_id}")
                return
        self.rooms.join(chat_room(command.chat_id), connection)
        self.logger.info(f"User {connection.user_id} joined chat {command.chat_id}")

    async def leave_chat(self, connection: Connection, command: commands.LeaveChat) -> None:
        self.rooms.leave(chat_room(command.chat_id), connection)

    async def send_message(self, connection: Connection, command: commands.SendMessage) -> None:
        async with self.interactors.open() as scope:
            await scope.messages.send_message(
                command.chat_id, connection.user_id, command.to_message()
            )

    async def typing_start(self, connection: Connection, command: commands.TypingStart) -> None:
        await self._relay_typing(connection, command.chat_id, "user_typing")

    async def typing_stop(self, connection: Connection, command: commands.TypingStop) -> None:
        await self._relay_typing(connection, command.chat_id, "user_stop_typing")

    async def _relay_typing(self, connection: Connection, chat_id: str, event: str) -> None:
        room = chat_room(chat_id)
        if not self.rooms.is_member(room, connection):
            return
        await self.rooms.emit(
            room,
            event,
            {"userId": connection.user_id, "chatId": chat_id},
            exclude_user=connection.user_id,
        )

    async def mark_messages_read(
        self, connection: Connection, command: commands.MarkMessagesRead
    ) -> None:
        async with self.interactors.open() as scope:
            await scope.messages.mark_read(command.chat_id, connection.user_id)

    async def ping(self, connection: Connection, command: BaseModel) -> None:
        await connection.send("pong", {"serverTime": utc_now().isoformat()})

    async def _broadcast_presence(self, user_id: str, online: bool, last_seen_at=None) -> None:
        audience = None
        if self.config.PRESENCE_SCOPE == "partners":
            async with self.interactors.open() as scope:
                audience = await scope.chats.get_partner_ids(user_id)
        await self.presence.broadcast_presence_change(
            user_id, online, last_seen_at=last_seen_at, audience=audience
        )

    async def _send_error(self, connection: Connection, message: str) -> None:
        try:
            await connection.send("error", {"message": message})
        except Exception as e:
            self.logger.warning(f"Failed to send error to {connection.user_id}: {e!s}")
