# marketchat/infrastructure/data_mappers.py

from typing import Protocol, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from marketchat.infrastructure import models

ModelT_contra = TypeVar("ModelT_contra", contravariant=True)


class DataMapper(Protocol[ModelT_contra]):
    async def insert(self, model: ModelT_contra):
        raise NotImplementedError

    async def delete(self, model: ModelT_contra):
        raise NotImplementedError

    async def update(self, model: ModelT_contra):
        raise NotImplementedError


class SessionMapper:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, model):
        self.session.add(model)

    async def update(self, model):
        await self.session.merge(model)

    async def delete(self, model):
        await self.session.delete(model)


class ChatMapper(SessionMapper, DataMapper[models.Chat]):
    pass


class MessageMapper(SessionMapper, DataMapper[models.Message]):
    pass


class MessageReadMapper(SessionMapper, DataMapper[models.MessageRead]):
    async def update(self, model: models.MessageRead):
        # read receipts are insert-only
        raise RuntimeError("Read receipts cannot be modified")

    async def delete(self, model: models.MessageRead):
        raise RuntimeError("Read receipts cannot be removed")
