# marketchat/api/admin.py

from fastapi import APIRouter, Depends, Query

from marketchat.api.dependencies import get_chat_interactor, get_presence, require_admin
from marketchat.delivery.presence import PresenceRegistry
from marketchat.infrastructure import schemas
from marketchat.interactors.chat_interactor import ChatInteractor

router = APIRouter()


@router.get("/chats/reported", response_model=list[schemas.Chat])
async def read_reported_chats(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    admin: schemas.CurrentUser = Depends(require_admin),
):
    return await chat_interactor.get_reported_chats(skip=skip, limit=limit)


@router.get("/chats/stats", response_model=schemas.ChatStats)
async def read_chat_stats(
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    presence: PresenceRegistry = Depends(get_presence),
    admin: schemas.CurrentUser = Depends(require_admin),
):
    return await chat_interactor.get_stats(online_users=len(presence.online_user_ids()))
