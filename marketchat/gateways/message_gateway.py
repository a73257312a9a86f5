# marketchat/gateways/message_gateway.py
from datetime import datetime

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketchat.domain.exceptions import Unavailable
from marketchat.gateways.interfaces import IMessageGateway
from marketchat.infrastructure import models, schemas
from marketchat.infrastructure.data_mappers import ChatMapper, MessageMapper, MessageReadMapper
from marketchat.infrastructure.time import as_utc, utc_now
from marketchat.infrastructure.uow import UnitOfWork, UoWModel


class MessageGateway(IMessageGateway):
    def __init__(self, session: AsyncSession, uow: UnitOfWork):
        self.session = session
        self.uow = uow
        uow.mappers[models.Message] = MessageMapper(session)
        uow.mappers[models.MessageRead] = MessageReadMapper(session)
        # appends also bump counters on the owning chat
        uow.mappers.setdefault(models.Chat, ChatMapper(session))

    def _message_query(self):
        return (
            select(models.Message)
            .options(
                selectinload(models.Message.sender),
                selectinload(models.Message.product),
                selectinload(models.Message.reads),
            )
            .execution_options(populate_existing=True)
        )

    async def get_message(self, message_id: str) -> UoWModel | None:
        stmt = self._message_query().filter(models.Message.id == message_id)
        result = await self.session.execute(stmt)
        message = result.scalar_one_or_none()
        return UoWModel(message, self.uow) if message else None

    async def append_message(
        self, chat: UoWModel, sender_id: str, payload: schemas.MessageCreate
    ) -> UoWModel:
        now = utc_now()
        last_message_at = as_utc(chat.last_message_at)
        # clock skew must never reorder a chat's history
        created_at = max(now, last_message_at) if last_message_at else now
        seq = chat.message_count + 1

        db_message = models.Message(
            id=models.new_id(),
            chat_id=chat.id,
            seq=seq,
            sender_id=sender_id,
            message_type=payload.message_type.value,
            content=payload.content,
            product_ref=payload.product_ref,
            image_url=payload.image_url,
            created_at=created_at,
        )
        self.uow.register_new(db_message)
        chat.message_count = seq
        chat.last_message_at = created_at
        try:
            await self.uow.commit()
        except IntegrityError as e:
            # another writer took this seq
            await self.uow.rollback()
            raise Unavailable("Message could not be stored, please retry") from e

        return await self.get_message(db_message.id)

    async def get_page(
        self, chat_id: str, page: int = 1, limit: int = 50
    ) -> tuple[list[UoWModel], bool]:
        """Return the ``page``-th block of ``limit`` messages counted from the newest.

        Messages within the block are in chronological order.
        """
        stmt = (
            self._message_query()
            .filter(models.Message.chat_id == chat_id)
            .order_by(models.Message.seq.desc())
            .offset((page - 1) * limit)
            .limit(limit + 1)
        )
        result = await self.session.execute(stmt)
        messages = list(result.scalars().all())
        has_more = len(messages) > limit
        messages = messages[:limit]
        messages.reverse()
        return [UoWModel(message, self.uow) for message in messages], has_more

    async def get_unread_ids(
        self, chat_id: str, reader_id: str, message_ids: list[str] | None = None
    ) -> list[str]:
        already_read = exists().where(
            models.MessageRead.message_id == models.Message.id,
            models.MessageRead.user_id == reader_id,
        )
        stmt = select(models.Message.id).filter(
            models.Message.chat_id == chat_id,
            models.Message.sender_id != reader_id,
            ~already_read,
        )
        if message_ids is not None:
            if not message_ids:
                return []
            stmt = stmt.filter(models.Message.id.in_(message_ids))
        stmt = stmt.order_by(models.Message.seq)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_read(
        self, chat_id: str, reader_id: str, message_ids: list[str] | None = None
    ) -> tuple[list[str], datetime | None]:
        """Insert receipts for the reader's unread messages and return the ids newly read.

        A concurrent reader session may store some of the same receipts first;
        the batch is then recomputed once against what has been committed.
        """
        try:
            return await self._insert_reads(chat_id, reader_id, message_ids)
        except IntegrityError:
            await self.uow.rollback()
        try:
            return await self._insert_reads(chat_id, reader_id, message_ids)
        except IntegrityError as e:
            await self.uow.rollback()
            raise Unavailable("Read receipts could not be stored, please retry") from e

    async def _insert_reads(
        self, chat_id: str, reader_id: str, message_ids: list[str] | None
    ) -> tuple[list[str], datetime | None]:
        unread_ids = await self.get_unread_ids(chat_id, reader_id, message_ids)
        if not unread_ids:
            return [], None

        read_at = utc_now()
        for message_id in unread_ids:
            self.uow.register_new(
                models.MessageRead(message_id=message_id, user_id=reader_id, read_at=read_at)
            )
        await self.uow.commit()
        return unread_ids, read_at
