# marketchat/gateways/interfaces.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from marketchat.domain.entities import ChatKey
from marketchat.domain.lifecycle import Transition
from marketchat.infrastructure import schemas
from marketchat.infrastructure.uow import UoWModel


class IChatGateway(ABC):
    @abstractmethod
    async def find_chat(self, chat_id: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def find_by_key(self, key: ChatKey) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def find_or_create_chat(self, key: ChatKey) -> Tuple[UoWModel, bool]:
        pass

    @abstractmethod
    async def get_chat_for_participant(self, chat_id: str, user_id: str) -> UoWModel:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[UoWModel]:
        pass

    @abstractmethod
    async def get_unread_counts(self, chat_ids: List[str], user_id: str) -> Dict[str, int]:
        pass

    @abstractmethod
    async def get_last_messages(self, chat_ids: List[str]) -> Dict[str, UoWModel]:
        pass

    @abstractmethod
    async def apply_transition(self, chat: UoWModel, transition: Transition) -> UoWModel:
        pass

    @abstractmethod
    async def get_partner_ids(self, user_id: str) -> List[str]:
        pass

    @abstractmethod
    async def get_reported(self, skip: int = 0, limit: int = 100) -> List[UoWModel]:
        pass

    @abstractmethod
    async def count_by_status(self) -> Dict[str, int]:
        pass


class IMessageGateway(ABC):
    @abstractmethod
    async def append_message(
        self, chat: UoWModel, sender_id: str, payload: schemas.MessageCreate
    ) -> UoWModel:
        pass

    @abstractmethod
    async def get_page(
        self, chat_id: str, page: int = 1, limit: int = 50
    ) -> Tuple[List[UoWModel], bool]:
        pass

    @abstractmethod
    async def get_unread_ids(
        self, chat_id: str, reader_id: str, message_ids: Optional[List[str]] = None
    ) -> List[str]:
        pass

    @abstractmethod
    async def mark_read(
        self, chat_id: str, reader_id: str, message_ids: Optional[List[str]] = None
    ) -> Tuple[List[str], Optional[datetime]]:
        pass


class IUserGateway(ABC):
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def get_active_user(self, user_id: str) -> Optional[UoWModel]:
        pass


class IProductGateway(ABC):
    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[UoWModel]:
        pass
