# marketchat/interactors/message_interactor.py
from marketchat.domain.events import MessageCreated, MessagesRead
from marketchat.domain.exceptions import NotFound
from marketchat.domain.lifecycle import ensure_can_append
from marketchat.gateways.chat_gateway import ChatGateway
from marketchat.gateways.message_gateway import MessageGateway
from marketchat.gateways.product_gateway import ProductGateway
from marketchat.infrastructure import schemas
from marketchat.infrastructure.event_dispatcher import EventDispatcher
from marketchat.infrastructure.locks import KeyedLock, chat_lock_name


class MessageInteractor:
    def __init__(
        self,
        chat_gateway: ChatGateway,
        message_gateway: MessageGateway,
        product_gateway: ProductGateway,
        event_dispatcher: EventDispatcher,
        locks: KeyedLock,
    ):
        self.chat_gateway = chat_gateway
        self.message_gateway = message_gateway
        self.product_gateway = product_gateway
        self.event_dispatcher = event_dispatcher
        self.locks = locks

    async def send_message(
        self, chat_id: str, sender_id: str, message: schemas.MessageCreate
    ) -> schemas.Message:
        # the lock spans commit and dispatch so fan-out follows append order
        async with self.locks.hold(chat_lock_name(chat_id)):
            chat = await self.chat_gateway.find_chat(chat_id)
            if chat is None:
                raise NotFound()
            ensure_can_append(chat, sender_id)
            if message.product_ref and await self.product_gateway.get_product(message.product_ref) is None:
                raise NotFound("Product not found")

            new_message = await self.message_gateway.append_message(chat, sender_id, message)
            result = schemas.Message.model_validate(new_message)
            await self.event_dispatcher.dispatch(
                MessageCreated(
                    chat_id=chat_id,
                    sender_id=sender_id,
                    recipient_ids=[chat.other_participant(sender_id)],
                    message=result.model_dump(mode="json", by_alias=True),
                )
            )
        return result

    async def get_messages(
        self, chat_id: str, user_id: str, page: int = 1, limit: int = 50
    ) -> schemas.MessagePage:
        chat = schemas.Chat.model_validate(
            await self.chat_gateway.get_chat_for_participant(chat_id, user_id)
        )
        messages, has_more = await self.message_gateway.get_page(chat_id, page, limit)

        unread_ids = [
            message.id
            for message in messages
            if message.sender_id != user_id
            and not any(read.user_id == user_id for read in message.reads)
        ]
        if unread_ids:
            await self._mark_read(chat_id, user_id, unread_ids)
            # reload with the receipts, a retried batch also expires the loaded page
            messages, has_more = await self.message_gateway.get_page(chat_id, page, limit)

        return schemas.MessagePage(
            chat=chat,
            messages=[schemas.Message.model_validate(message) for message in messages],
            page=page,
            limit=limit,
            has_more=has_more,
        )

    async def mark_read(self, chat_id: str, user_id: str) -> schemas.ReadReceiptBatch:
        await self.chat_gateway.get_chat_for_participant(chat_id, user_id)
        read_ids, read_at = await self._mark_read(chat_id, user_id)
        return schemas.ReadReceiptBatch(
            chat_id=chat_id, read_by=user_id, message_ids=read_ids, read_at=read_at
        )

    async def _mark_read(self, chat_id: str, user_id: str, message_ids: list[str] | None = None):
        # readers of one chat store receipts one batch at a time
        async with self.locks.hold(chat_lock_name(chat_id)):
            read_ids, read_at = await self.message_gateway.mark_read(chat_id, user_id, message_ids)
            if read_ids:
                await self.event_dispatcher.dispatch(
                    MessagesRead(
                        chat_id=chat_id, reader_id=user_id, message_ids=read_ids, read_at=read_at
                    )
                )
        return read_ids, read_at
