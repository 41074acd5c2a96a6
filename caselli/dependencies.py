"""
FastAPI dependencies shared by the routers.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from caselli.clients.auth import AuthenticatedUser, AuthError
from caselli.config import Settings
from caselli.services.container import Services
from caselli.utils.logging import get_logger, set_request_context

logger = get_logger(__name__)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_app_settings(request: Request) -> Settings:
    return request.app.state.services.settings


async def get_current_user(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),  # noqa: B008
) -> AuthenticatedUser:
    """
    Resolve the bearer token to the calling user.

    Raises:
        HTTPException: 401 when the header is missing or the token is rejected
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        user = await services.auth.get_user(token.strip())
    except AuthError as e:
        logger.warning("Authentication failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        ) from e

    set_request_context(user_id=str(user.id))
    return user
