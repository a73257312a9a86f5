# marketchat/interactors/factory.py
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from marketchat.gateways.chat_gateway import ChatGateway
from marketchat.gateways.message_gateway import MessageGateway
from marketchat.gateways.product_gateway import ProductGateway
from marketchat.gateways.user_gateway import UserGateway
from marketchat.infrastructure.database import Database
from marketchat.infrastructure.event_dispatcher import EventDispatcher
from marketchat.infrastructure.locks import KeyedLock
from marketchat.infrastructure.uow import UnitOfWork
from marketchat.interactors.chat_interactor import ChatInteractor
from marketchat.interactors.message_interactor import MessageInteractor


@dataclass
class Interactors:
    chats: ChatInteractor
    messages: MessageInteractor
    users: UserGateway


class InteractorFactory:
    """Builds session-scoped interactors outside of FastAPI's dependency injection.

    The delivery channel opens one scope per inbound command so every command
    sees committed state and never shares a session with another connection.
    """

    def __init__(self, database: Database, event_dispatcher: EventDispatcher, locks: KeyedLock):
        self.database = database
        self.event_dispatcher = event_dispatcher
        self.locks = locks

    @asynccontextmanager
    async def open(self) -> AsyncIterator[Interactors]:
        async with self.database.session() as session:
            uow = UnitOfWork(session)
            chat_gateway = ChatGateway(session, uow)
            message_gateway = MessageGateway(session, uow)
            product_gateway = ProductGateway(session, uow)
            user_gateway = UserGateway(session, uow)
            yield Interactors(
                chats=ChatInteractor(
                    chat_gateway, user_gateway, product_gateway, self.event_dispatcher, self.locks
                ),
                messages=MessageInteractor(
                    chat_gateway, message_gateway, product_gateway, self.event_dispatcher, self.locks
                ),
                users=user_gateway,
            )
