# marketchat/infrastructure/event_handlers.py
import json
import logging
from typing import Any

from marketchat.delivery.presence import PresenceRegistry
from marketchat.delivery.rooms import RoomRegistry, chat_room, user_room
from marketchat.domain.events import ChatEnded, ChatReported, MessageCreated, MessagesRead
from marketchat.infrastructure.offline_relay import OfflineRelay
from marketchat.infrastructure.redis_client import RedisClient

MODERATION_CHANNEL = "moderation:reports"


class EventHandlers:
    def __init__(
        self,
        redis_client: RedisClient,
        rooms: RoomRegistry,
        presence: PresenceRegistry,
        offline_relay: OfflineRelay,
        logger: logging.Logger,
    ):
        self.redis_client = redis_client
        self.rooms = rooms
        self.presence = presence
        self.offline_relay = offline_relay
        self.logger = logger

    async def publish_event(self, channel_name: str, data: dict[str, Any]) -> None:
        await self.redis_client.publish(channel_name, json.dumps(data, default=str))

    async def deliver_message_created(self, event: MessageCreated):
        targets = [chat_room(event.chat_id)]
        targets.extend(user_room(user_id) for user_id in event.recipient_ids)
        await self.rooms.emit(
            targets, "new_message", {"chatId": event.chat_id, "message": event.message}
        )

    async def relay_message_created(self, event: MessageCreated):
        for user_id in event.recipient_ids:
            if self.presence.is_online(user_id):
                continue
            await self.offline_relay.enqueue(user_id, event.chat_id, event.message)

    async def publish_message_created(self, event: MessageCreated):
        await self.publish_event(
            f"chat:{event.chat_id}",
            {"chatId": event.chat_id, "senderId": event.sender_id, "message": event.message},
        )

    def _read_payload(self, event: MessagesRead) -> dict[str, Any]:
        return {
            "chatId": event.chat_id,
            "readBy": event.reader_id,
            "messageIds": event.message_ids,
            "readAt": event.read_at.isoformat(),
        }

    async def deliver_messages_read(self, event: MessagesRead):
        await self.rooms.emit(
            chat_room(event.chat_id),
            "messages_read",
            self._read_payload(event),
            exclude_user=event.reader_id,
        )

    async def publish_messages_read(self, event: MessagesRead):
        await self.publish_event(f"chat:{event.chat_id}:status", self._read_payload(event))

    def _ended_payload(self, event: ChatEnded) -> dict[str, Any]:
        return {
            "chatId": event.chat_id,
            "endedBy": event.ended_by,
            "endedAt": event.ended_at.isoformat(),
        }

    async def deliver_chat_ended(self, event: ChatEnded):
        others = [user_room(p) for p in event.participant_ids if p != event.ended_by]
        await self.rooms.emit(
            [chat_room(event.chat_id), *others],
            "chat_ended",
            self._ended_payload(event),
            exclude_user=event.ended_by,
        )

    async def publish_chat_ended(self, event: ChatEnded):
        await self.publish_event(f"chat:{event.chat_id}:ended", self._ended_payload(event))

    async def publish_chat_reported(self, event: ChatReported):
        await self.publish_event(
            MODERATION_CHANNEL,
            {
                "chatId": event.chat_id,
                "reportedBy": event.reported_by,
                "reason": event.reason,
                "reportedAt": event.reported_at.isoformat(),
            },
        )
        self.logger.info(f"Chat {event.chat_id} reported by {event.reported_by}")

    def register_all(self, dispatcher) -> None:
        dispatcher.register("MessageCreated", self.deliver_message_created)
        dispatcher.register("MessageCreated", self.relay_message_created)
        dispatcher.register("MessageCreated", self.publish_message_created)
        dispatcher.register("MessagesRead", self.deliver_messages_read)
        dispatcher.register("MessagesRead", self.publish_messages_read)
        dispatcher.register("ChatEnded", self.deliver_chat_ended)
        dispatcher.register("ChatEnded", self.publish_chat_ended)
        dispatcher.register("ChatReported", self.publish_chat_reported)
