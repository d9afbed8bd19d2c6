"""Service layer for business logic orchestration."""

from mailbridge.services.connection_service import ConnectionService
from mailbridge.services.send_service import SendResult, SendService
from mailbridge.services.sync_service import SyncResult, SyncService, UserSyncReport
from mailbridge.services.token_manager import RefreshCycle, RefreshPhase, TokenManager

__all__ = [
    "ConnectionService",
    "RefreshCycle",
    "RefreshPhase",
    "SendResult",
    "SendService",
    "SyncResult",
    "SyncService",
    "TokenManager",
    "UserSyncReport",
]
