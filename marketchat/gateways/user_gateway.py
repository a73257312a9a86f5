# marketchat/gateways/user_gateway.py
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketchat.gateways.interfaces import IUserGateway
from marketchat.infrastructure import models
from marketchat.infrastructure.uow import UnitOfWork, UoWModel


class UserGateway(IUserGateway):
    """Read-only view of the identity service's users."""

    def __init__(self, session: AsyncSession, uow: UnitOfWork):
        self.session = session
        self.uow = uow

    async def get_user(self, user_id: str) -> UoWModel | None:
        stmt = select(models.User).filter(models.User.id == user_id)
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        return UoWModel(user, self.uow) if user else None

    async def get_active_user(self, user_id: str) -> UoWModel | None:
        user = await self.get_user(user_id)
        return user if user is not None and user.is_active else None
