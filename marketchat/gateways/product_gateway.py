# marketchat/gateways/product_gateway.py
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketchat.gateways.interfaces import IProductGateway
from marketchat.infrastructure import models
from marketchat.infrastructure.uow import UnitOfWork, UoWModel


class ProductGateway(IProductGateway):
    def __init__(self, session: AsyncSession, uow: UnitOfWork):
        self.session = session
        self.uow = uow

    async def get_product(self, product_id: str) -> UoWModel | None:
        stmt = select(models.Product).filter(models.Product.id == product_id)
        result = await self.session.execute(stmt)
        product = result.scalar_one_or_none()
        return UoWModel(product, self.uow) if product else None
