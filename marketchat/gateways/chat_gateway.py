# marketchat/gateways/chat_gateway.py
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketchat.domain.entities import ChatKey, ChatStatus
from marketchat.domain.exceptions import NotFound
from marketchat.domain.lifecycle import Transition, ensure_participant
from marketchat.gateways.interfaces import IChatGateway
from marketchat.infrastructure import models
from marketchat.infrastructure.data_mappers import ChatMapper
from marketchat.infrastructure.uow import UnitOfWork, UoWModel


class ChatGateway(IChatGateway):
    def __init__(self, session: AsyncSession, uow: UnitOfWork):
        self.session = session
        self.uow = uow
        uow.mappers[models.Chat] = ChatMapper(session)

    def _chat_query(self):
        return (
            select(models.Chat)
            .options(
                selectinload(models.Chat.low_user),
                selectinload(models.Chat.high_user),
                selectinload(models.Chat.product_context),
            )
            .execution_options(populate_existing=True)
        )

    async def find_chat(self, chat_id: str) -> UoWModel | None:
        stmt = self._chat_query().filter(models.Chat.id == chat_id)
        result = await self.session.execute(stmt)
        chat = result.scalar_one_or_none()
        return UoWModel(chat, self.uow) if chat else None

    async def find_by_key(self, key: ChatKey) -> UoWModel | None:
        stmt = self._chat_query().filter(
            models.Chat.participant_low == key.participant_low,
            models.Chat.participant_high == key.participant_high,
            models.Chat.context_key == key.context_key,
        )
        result = await self.session.execute(stmt)
        chat = result.scalar_one_or_none()
        return UoWModel(chat, self.uow) if chat else None

    async def find_or_create_chat(self, key: ChatKey) -> Tuple[UoWModel, bool]:
        """Return the chat for ``key`` and whether it was created by this call.

        Callers in this process serialise on the key; the unique constraint
        catches a concurrent insert from another process, in which case the
        winner's row is returned.
        """
        existing = await self.find_by_key(key)
        if existing:
            return existing, False

        db_chat = models.Chat(
            participant_low=key.participant_low,
            participant_high=key.participant_high,
            context_key=key.context_key,
            product_context_id=key.product_id,
            chat_type=key.chat_type.value,
            status=ChatStatus.ACTIVE.value,
            is_active=True,
            message_count=0,
        )
        self.uow.register_new(db_chat)
        try:
            await self.uow.commit()
        except IntegrityError:
            await self.uow.rollback()
            existing = await self.find_by_key(key)
            if existing is None:
                raise
            return existing, False

        created = await self.find_chat(db_chat.id)
        return created, True

    async def get_chat_for_participant(self, chat_id: str, user_id: str) -> UoWModel:
        chat = await self.find_chat(chat_id)
        if chat is None:
            raise NotFound()
        ensure_participant(chat, user_id)
        return chat

    async def list_for_user(self, user_id: str) -> List[UoWModel]:
        stmt = (
            self._chat_query()
            .filter(
                or_(
                    models.Chat.participant_low == user_id,
                    models.Chat.participant_high == user_id,
                ),
                models.Chat.is_active.is_(True),
            )
            .order_by(models.Chat.last_message_at.desc())
        )
        result = await self.session.execute(stmt)
        chats = result.scalars().all()
        return [UoWModel(chat, self.uow) for chat in chats]

    async def get_unread_counts(self, chat_ids: List[str], user_id: str) -> Dict[str, int]:
        if not chat_ids:
            return {}
        already_read = exists().where(
            models.MessageRead.message_id == models.Message.id,
            models.MessageRead.user_id == user_id,
        )
        stmt = (
            select(models.Message.chat_id, func.count(models.Message.id).label("unread_count"))
            .filter(
                models.Message.chat_id.in_(chat_ids),
                models.Message.sender_id != user_id,
                ~already_read,
            )
            .group_by(models.Message.chat_id)
        )
        result = await self.session.execute(stmt)
        return {row.chat_id: row.unread_count for row in result}

    async def get_last_messages(self, chat_ids: List[str]) -> Dict[str, UoWModel]:
        if not chat_ids:
            return {}
        latest = (
            select(models.Message.chat_id, func.max(models.Message.seq).label("max_seq"))
            .filter(models.Message.chat_id.in_(chat_ids))
            .group_by(models.Message.chat_id)
            .subquery()
        )
        stmt = select(models.Message).join(
            latest,
            and_(
                models.Message.chat_id == latest.c.chat_id,
                models.Message.seq == latest.c.max_seq,
            ),
        )
        result = await self.session.execute(stmt)
        return {message.chat_id: UoWModel(message, self.uow) for message in result.scalars()}

    async def apply_transition(self, chat: UoWModel, transition: Transition) -> UoWModel:
        for key, value in transition.changes.items():
            setattr(chat, key, value)
        await self.uow.commit()
        return chat

    async def get_partner_ids(self, user_id: str) -> List[str]:
        stmt = select(models.Chat.participant_low, models.Chat.participant_high).filter(
            or_(
                models.Chat.participant_low == user_id,
                models.Chat.participant_high == user_id,
            ),
            models.Chat.status == ChatStatus.ACTIVE.value,
        )
        result = await self.session.execute(stmt)
        partners = set()
        for low, high in result:
            partners.add(high if low == user_id else low)
        return sorted(partners)

    async def get_reported(self, skip: int = 0, limit: int = 100) -> List[UoWModel]:
        stmt = (
            self._chat_query()
            .filter(models.Chat.reported_by.is_not(None))
            .order_by(models.Chat.reported_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [UoWModel(chat, self.uow) for chat in result.scalars().all()]

    async def count_by_status(self) -> Dict[str, int]:
        stmt = select(models.Chat.status, func.count(models.Chat.id)).group_by(models.Chat.status)
        result = await self.session.execute(stmt)
        counts = {status.value: 0 for status in ChatStatus}
        counts.update({status: count for status, count in result})

        reported = await self.session.scalar(
            select(func.count(models.Chat.id)).filter(models.Chat.reported_by.is_not(None))
        )
        counts["reported"] = reported or 0
        return counts
