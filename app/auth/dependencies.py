import logging
from typing import Annotated
from uuid import UUID

from fastapi import Cookie, Depends, Header, Path, status

from app.core import security
from app.core.exceptions import AppError, ForbiddenError, UnauthorizedError
from app.core.security import Identity

logger = logging.getLogger(__name__)


def authenticate_token(token: str | None) -> Identity:
    """Resolve a raw credential or raise the matching AppError."""
    if not token:
        raise UnauthorizedError("Authentication required")

    try:
        identity = security.resolve_identity(token)
    except RuntimeError as exc:
        logger.error("Service-account authentication misconfigured: %s", exc)
        raise AppError(
            "Authentication is misconfigured",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="MISCONFIGURED",
        ) from None

    if identity is None:
        raise UnauthorizedError("Could not validate credentials")
    return identity


async def get_identity(
    access_token: Annotated[str | None, Cookie()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> Identity:
    """Authenticate from the ``access_token`` cookie or an ``Authorization: Bearer`` header."""
    token = access_token or security.extract_bearer(authorization)
    return authenticate_token(token)


async def get_current_user(
    user_id: Annotated[UUID, Path()],
    identity: Identity = Depends(get_identity),
) -> UUID:
    """Authorise access to ``/user/{user_id}/...`` and return the id the request acts as.

    Callers may only act as themselves; admins may act as anyone.
    """
    if identity.user_id != user_id and not identity.is_admin:
        raise ForbiddenError("You can only access your own resources")
    if identity.user_id != user_id:
        logger.info("Admin %s acting as user %s", identity.user_id, user_id)
    return user_id
