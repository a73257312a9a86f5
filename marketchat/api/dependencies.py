# marketchat/api/dependencies.py
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from marketchat.config import AppConfig
from marketchat.delivery.presence import PresenceRegistry
from marketchat.domain.entities import UserRole
from marketchat.gateways.chat_gateway import ChatGateway
from marketchat.gateways.message_gateway import MessageGateway
from marketchat.gateways.product_gateway import ProductGateway
from marketchat.gateways.user_gateway import UserGateway
from marketchat.infrastructure import schemas
from marketchat.infrastructure.event_dispatcher import EventDispatcher
from marketchat.infrastructure.locks import KeyedLock
from marketchat.infrastructure.offline_relay import OfflineRelay
from marketchat.infrastructure.security import SecurityService
from marketchat.infrastructure.uow import UnitOfWork
from marketchat.interactors.chat_interactor import ChatInteractor
from marketchat.interactors.message_interactor import MessageInteractor

# session credentials are issued by the identity service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_security_service(request: Request) -> SecurityService:
    return request.app.state.security_service


def get_event_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.event_dispatcher


def get_locks(request: Request) -> KeyedLock:
    return request.app.state.locks


def get_presence(request: Request) -> PresenceRegistry:
    return request.app.state.presence


def get_offline_relay(request: Request) -> OfflineRelay:
    return request.app.state.offline_relay


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_uow(session: AsyncSession = Depends(get_session)) -> UnitOfWork:
    return UnitOfWork(session)


async def get_user_gateway(
    session: AsyncSession = Depends(get_session), uow: UnitOfWork = Depends(get_uow)
):
    return UserGateway(session, uow)


async def get_chat_gateway(
    session: AsyncSession = Depends(get_session), uow: UnitOfWork = Depends(get_uow)
):
    return ChatGateway(session, uow)


async def get_message_gateway(
    session: AsyncSession = Depends(get_session), uow: UnitOfWork = Depends(get_uow)
):
    return MessageGateway(session, uow)


async def get_product_gateway(
    session: AsyncSession = Depends(get_session), uow: UnitOfWork = Depends(get_uow)
):
    return ProductGateway(session, uow)


async def get_chat_interactor(
    chat_gateway: ChatGateway = Depends(get_chat_gateway),
    user_gateway: UserGateway = Depends(get_user_gateway),
    product_gateway: ProductGateway = Depends(get_product_gateway),
    event_dispatcher: EventDispatcher = Depends(get_event_dispatcher),
    locks: KeyedLock = Depends(get_locks),
):
    return ChatInteractor(chat_gateway, user_gateway, product_gateway, event_dispatcher, locks)


async def get_message_interactor(
    chat_gateway: ChatGateway = Depends(get_chat_gateway),
    message_gateway: MessageGateway = Depends(get_message_gateway),
    product_gateway: ProductGateway = Depends(get_product_gateway),
    event_dispatcher: EventDispatcher = Depends(get_event_dispatcher),
    locks: KeyedLock = Depends(get_locks),
):
    return MessageInteractor(chat_gateway, message_gateway, product_gateway, event_dispatcher, locks)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    security_service: SecurityService = Depends(get_security_service),
    user_gateway: UserGateway = Depends(get_user_gateway),
) -> schemas.CurrentUser:
    user_id = security_service.decode_access_token(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_model = await user_gateway.get_user(user_id)
    if user_model is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user_model.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Inactive user",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return schemas.CurrentUser.model_validate(user_model)


async def require_admin(
    current_user: schemas.CurrentUser = Depends(get_current_user),
) -> schemas.CurrentUser:
    if current_user.role is not UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return current_user


def page_size(limit: int | None, config: AppConfig) -> int:
    if limit is None:
        return config.DEFAULT_PAGE_SIZE
    return min(limit, config.MAX_PAGE_SIZE)
