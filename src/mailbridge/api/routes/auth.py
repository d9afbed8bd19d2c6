"""OAuth connection endpoints."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Query

from mailbridge.api.dependencies import ConnectionServiceDep, UserIdDep
from mailbridge.core.exceptions import OAuthError
from mailbridge.schemas.api import AuthUrlResponse, CallbackResponse

router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


@router.get("/{provider}", response_model=AuthUrlResponse)
async def start_authorization(
    provider: str,
    user_id: UserIdDep,
    connections: ConnectionServiceDep,
) -> AuthUrlResponse:
    """Get the provider consent URL for the current user."""
    auth_url = connections.authorization_url(provider, user_id)
    await logger.ainfo("oauth_started", provider=provider, user_id=user_id)
    return AuthUrlResponse(auth_url=auth_url)


@router.get("/{provider}/callback", response_model=CallbackResponse)
async def oauth_callback(
    provider: str,
    connections: ConnectionServiceDep,
    code: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    error: Annotated[str | None, Query()] = None,
    error_description: Annotated[str | None, Query()] = None,
) -> CallbackResponse:
    """Handle the provider redirect after consent.

    The ``state`` parameter carries the platform user id set when the
    consent URL was built.
    """
    if error:
        raise OAuthError(error, error_description, provider=provider)

    integration = await connections.complete_oauth_callback(provider, code, state)
    return CallbackResponse(
        integration_id=integration.id,
        provider=integration.provider,
        email=integration.email,
        state=integration.state,
    )
