import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Caller identity resolved from a credential: who is calling, and as what."""

    user_id: UUID
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_access_token(data: dict[str, Any]) -> str:
    to_encode = data.copy()
    expire = datetime.now(UTC) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "iat": datetime.now(UTC), "type": "access"})
    encoded_jwt: str = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> dict[str, Any] | None:
    try:
        payload: dict[str, Any] = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        return payload
    except JWTError:
        return None


def resolve_identity(token: str) -> Identity | None:
    """Turn a raw credential into an Identity, or None if it is not acceptable.

    Accepts either the configured service-account token or a signed access
    JWT carrying the user id in ``sub``.
    """
    if settings.BOT_ACCESS_TOKEN and token == settings.BOT_ACCESS_TOKEN:
        if not settings.BOT_USER_ID:
            raise RuntimeError("BOT_ACCESS_TOKEN is set but BOT_USER_ID is empty")
        return Identity(user_id=UUID(settings.BOT_USER_ID), role=settings.BOT_ROLE)

    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        return None

    subject = payload.get("sub")
    if not subject:
        return None
    try:
        user_id = UUID(str(subject))
    except ValueError:
        logger.info("Rejected token with malformed subject")
        return None

    return Identity(user_id=user_id, role=str(payload.get("role") or "user"))


def extract_bearer(authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
        return token or None
    return None
