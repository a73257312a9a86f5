# marketchat/infrastructure/security.py
import datetime
import secrets
from typing import Optional

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError

DELIVERY_TOKEN_TYPE = "delivery"


class SecurityService:
    def __init__(self, config):
        self.config = config

    def create_access_token(
        self, data: dict, expires_delta: Optional[datetime.timedelta] = None
    ):
        # session credentials normally come from the identity service; this is
        # kept for tooling and tests that need to mint one
        to_encode = data.copy()
        expire = datetime.datetime.now(datetime.timezone.utc) + (
            expires_delta or datetime.timedelta(minutes=15)
        )
        to_encode.update({"exp": expire})
        encoded_jwt = jwt.encode(
            to_encode, self.config.SECRET_KEY, algorithm=self.config.ALGORITHM
        )
        return encoded_jwt, expire

    def decode_access_token(self, token: str) -> Optional[str]:
        try:
            payload = jwt.decode(
                token, self.config.SECRET_KEY, algorithms=[self.config.ALGORITHM]
            )
        except (ExpiredSignatureError, InvalidTokenError):
            return None
        if payload.get("typ") == DELIVERY_TOKEN_TYPE:
            return None
        return payload.get("sub")

    def create_delivery_token(self, user_id: str):
        expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
            seconds=self.config.DELIVERY_TOKEN_EXPIRE_SECONDS
        )
        to_encode = {
            "sub": user_id,
            "typ": DELIVERY_TOKEN_TYPE,
            "nonce": secrets.token_hex(8),
            "exp": expire,
        }
        encoded_jwt = jwt.encode(
            to_encode, self.config.DELIVERY_SECRET_KEY, algorithm=self.config.ALGORITHM
        )
        return encoded_jwt, expire

    def decode_delivery_token(self, token: str) -> Optional[str]:
        try:
            payload = jwt.decode(
                token,
                self.config.DELIVERY_SECRET_KEY,
                algorithms=[self.config.ALGORITHM],
            )
        except (ExpiredSignatureError, InvalidTokenError):
            return None
        if payload.get("typ") != DELIVERY_TOKEN_TYPE:
            return None
        return payload.get("sub")
