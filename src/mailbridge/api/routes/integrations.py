"""Integration management, sync and send endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, status

from mailbridge.api.dependencies import (
    ConnectionServiceDep,
    SendServiceDep,
    SyncServiceDep,
    UserIdDep,
)
from mailbridge.schemas.api import (
    MessageResponse,
    SendRequest,
    SendResponse,
    SyncResponse,
    UserSyncResponse,
)
from mailbridge.schemas.integration import IntegrationResponse, SmtpSettings

router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.get("", response_model=list[IntegrationResponse])
async def list_integrations(
    user_id: UserIdDep,
    connections: ConnectionServiceDep,
) -> list[IntegrationResponse]:
    """List the current user's integrations without secret fields."""
    integrations = await connections.list_integrations(user_id)
    return [IntegrationResponse.model_validate(i) for i in integrations]


@router.get("/messages", response_model=list[MessageResponse])
async def list_messages(
    user_id: UserIdDep,
    connections: ConnectionServiceDep,
    sync: SyncServiceDep,
    integration_id: UUID | None = None,
    limit: int = Query(default=50, ge=1, le=500),
) -> list[MessageResponse]:
    """List the current user's synced messages, newest first."""
    if integration_id is not None:
        await connections.get_owned(integration_id, user_id)
    messages = await sync.list_messages(user_id, integration_id=integration_id, limit=limit)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post("/smtp", response_model=IntegrationResponse, status_code=status.HTTP_201_CREATED)
async def connect_smtp(
    settings: SmtpSettings,
    user_id: UserIdDep,
    connections: ConnectionServiceDep,
) -> IntegrationResponse:
    """Test relay settings and store them as an active integration."""
    integration = await connections.connect_smtp(user_id, settings)
    return IntegrationResponse.model_validate(integration)


@router.post("/sync", response_model=UserSyncResponse)
async def sync_all(user_id: UserIdDep, sync: SyncServiceDep) -> UserSyncResponse:
    """Sync every active integration of the current user."""
    report = await sync.sync_user(user_id)
    return UserSyncResponse(
        results=[SyncResponse.model_validate(r, from_attributes=True) for r in report.results],
        failures=report.failures,
    )


@router.post("/{integration_id}/sync", response_model=SyncResponse)
async def sync_integration(
    integration_id: UUID,
    user_id: UserIdDep,
    connections: ConnectionServiceDep,
    sync: SyncServiceDep,
) -> SyncResponse:
    """Sync one integration now."""
    await connections.get_owned(integration_id, user_id)
    result = await sync.sync_integration(integration_id)
    return SyncResponse.model_validate(result, from_attributes=True)


@router.post("/{integration_id}/send", response_model=SendResponse)
async def send_message(
    integration_id: UUID,
    request: SendRequest,
    user_id: UserIdDep,
    connections: ConnectionServiceDep,
    send: SendServiceDep,
) -> SendResponse:
    """Send a message, threaded under ``reply_to_id`` where supported."""
    await connections.get_owned(integration_id, user_id)
    result = await send.send_reply(
        integration_id,
        to=str(request.to),
        subject=request.subject,
        body=request.body,
        reply_to_id=request.reply_to_id,
    )
    return SendResponse(provider_message_id=result.provider_message_id, threaded=result.threaded)


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_integration(
    integration_id: UUID,
    user_id: UserIdDep,
    connections: ConnectionServiceDep,
) -> None:
    """Disconnect and delete an integration."""
    await connections.disconnect(integration_id, user_id)
