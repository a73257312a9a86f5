# marketchat/interactors/chat_interactor.py
from typing import List

from marketchat.domain.entities import ChatKey, MessageKind
from marketchat.domain.events import ChatEnded, ChatReported
from marketchat.domain.exceptions import InvalidRequest, NotFound
from marketchat.domain.lifecycle import LifecycleAction, plan_transition
from marketchat.gateways.chat_gateway import ChatGateway
from marketchat.gateways.product_gateway import ProductGateway
from marketchat.gateways.user_gateway import UserGateway
from marketchat.infrastructure import schemas
from marketchat.infrastructure.event_dispatcher import EventDispatcher
from marketchat.infrastructure.locks import KeyedLock, chat_lock_name
from marketchat.infrastructure.time import as_utc, utc_now

PREVIEW_LABELS = {
    MessageKind.IMAGE.value: "[image]",
    MessageKind.PRODUCT.value: "[product]",
}


class ChatInteractor:
    def __init__(
        self,
        chat_gateway: ChatGateway,
        user_gateway: UserGateway,
        product_gateway: ProductGateway,
        event_dispatcher: EventDispatcher,
        locks: KeyedLock,
    ):
        self.chat_gateway = chat_gateway
        self.user_gateway = user_gateway
        self.product_gateway = product_gateway
        self.event_dispatcher = event_dispatcher
        self.locks = locks

    async def find_or_create_chat(
        self, requester_id: str, chat: schemas.ChatCreate
    ) -> schemas.Chat:
        if chat.participant_id == requester_id:
            raise InvalidRequest("Cannot start a chat with yourself")
        if await self.user_gateway.get_active_user(chat.participant_id) is None:
            raise NotFound("User not found")
        if chat.product_id and await self.product_gateway.get_product(chat.product_id) is None:
            raise NotFound("Product not found")

        key = ChatKey.for_participants(requester_id, chat.participant_id, chat.product_id)
        async with self.locks.hold(key.lock_name):
            db_chat, _ = await self.chat_gateway.find_or_create_chat(key)
        return schemas.Chat.model_validate(db_chat)

    async def get_chat(self, chat_id: str, user_id: str) -> schemas.Chat:
        chat = await self.chat_gateway.get_chat_for_participant(chat_id, user_id)
        return schemas.Chat.model_validate(chat)

    async def get_chats(self, user_id: str) -> List[schemas.ChatSummary]:
        chats = await self.chat_gateway.list_for_user(user_id)
        chat_ids = [chat.id for chat in chats]
        unread_counts = await self.chat_gateway.get_unread_counts(chat_ids, user_id)
        last_messages = await self.chat_gateway.get_last_messages(chat_ids)

        summaries = []
        for chat in chats:
            summary = schemas.ChatSummary.model_validate(chat)
            summary.unread_count = unread_counts.get(chat.id, 0)
            last_message = last_messages.get(chat.id)
            if last_message is not None:
                summary.last_message_content = last_message.content or PREVIEW_LABELS.get(
                    last_message.message_type, ""
                )
                summary.last_message_time = as_utc(last_message.created_at)
            else:
                summary.last_message_time = as_utc(chat.last_message_at)
            summaries.append(summary)
        return summaries

    async def end_chat(self, chat_id: str, user_id: str) -> schemas.Chat:
        return await self._transition(chat_id, user_id, LifecycleAction.END)

    async def report_chat(self, chat_id: str, user_id: str, reason: str) -> schemas.Chat:
        return await self._transition(chat_id, user_id, LifecycleAction.REPORT, reason)

    async def delete_chat(self, chat_id: str, user_id: str) -> schemas.Chat:
        return await self._transition(chat_id, user_id, LifecycleAction.DELETE)

    async def _transition(
        self,
        chat_id: str,
        user_id: str,
        action: LifecycleAction,
        reason: str | None = None,
    ) -> schemas.Chat:
        async with self.locks.hold(chat_lock_name(chat_id)):
            chat = await self.chat_gateway.get_chat_for_participant(chat_id, user_id)
            transition = plan_transition(chat, user_id, action, utc_now(), reason)
            chat = await self.chat_gateway.apply_transition(chat, transition)
            result = schemas.Chat.model_validate(chat)

            if action is LifecycleAction.END:
                await self.event_dispatcher.dispatch(
                    ChatEnded(
                        chat_id=chat_id,
                        ended_by=user_id,
                        ended_at=result.ended_at,
                        participant_ids=list(chat.participant_ids),
                    )
                )
            elif action is LifecycleAction.REPORT:
                await self.event_dispatcher.dispatch(
                    ChatReported(
                        chat_id=chat_id,
                        reported_by=user_id,
                        reason=result.report_reason or "",
                        reported_at=result.reported_at,
                    )
                )
        return result

    async def get_reported_chats(self, skip: int = 0, limit: int = 100) -> List[schemas.Chat]:
        chats = await self.chat_gateway.get_reported(skip, limit)
        return [schemas.Chat.model_validate(chat) for chat in chats]

    async def get_stats(self, online_users: int = 0) -> schemas.ChatStats:
        counts = await self.chat_gateway.count_by_status()
        return schemas.ChatStats(
            total=sum(counts[status] for status in ("active", "ended", "deleted")),
            active=counts["active"],
            ended=counts["ended"],
            deleted=counts["deleted"],
            reported=counts["reported"],
            online_users=online_users,
        )

    async def get_partner_ids(self, user_id: str) -> List[str]:
        return await self.chat_gateway.get_partner_ids(user_id)
