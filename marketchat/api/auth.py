# marketchat/api/auth.py

from fastapi import APIRouter, Depends

from marketchat.api.dependencies import get_current_user, get_security_service
from marketchat.infrastructure import schemas
from marketchat.infrastructure.security import SecurityService

router = APIRouter()


@router.post("/delivery-token", response_model=schemas.DeliveryTokenResponse)
async def issue_delivery_token(
    security_service: SecurityService = Depends(get_security_service),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    """Exchange the session credential for a short-lived realtime credential."""
    token, expire = security_service.create_delivery_token(current_user.id)
    return schemas.DeliveryTokenResponse(delivery_token=token, expires_at=expire)
