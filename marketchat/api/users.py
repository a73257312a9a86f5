# marketchat/api/users.py

from fastapi import APIRouter, Depends

from marketchat.api.dependencies import (
    get_current_user,
    get_offline_relay,
    get_presence,
    get_user_gateway,
)
from marketchat.delivery.presence import PresenceRegistry
from marketchat.domain.exceptions import NotFound
from marketchat.gateways.user_gateway import UserGateway
from marketchat.infrastructure import schemas
from marketchat.infrastructure.offline_relay import OfflineRelay

router = APIRouter()


@router.get("/me", response_model=schemas.CurrentUser)
async def read_users_me(current_user: schemas.CurrentUser = Depends(get_current_user)):
    return current_user


@router.get("/me/offline-messages", response_model=schemas.OfflineMessages)
async def drain_offline_messages(
    offline_relay: OfflineRelay = Depends(get_offline_relay),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    entries = await offline_relay.drain(current_user.id)
    return schemas.OfflineMessages(entries=entries)


@router.get("/{user_id}/presence", response_model=schemas.PresenceStatus)
async def read_presence(
    user_id: str,
    presence: PresenceRegistry = Depends(get_presence),
    user_gateway: UserGateway = Depends(get_user_gateway),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    if await user_gateway.get_user(user_id) is None:
        raise NotFound("User not found")
    return schemas.PresenceStatus(
        user_id=user_id,
        online=presence.is_online(user_id),
        last_seen_at=presence.last_seen(user_id),
    )
