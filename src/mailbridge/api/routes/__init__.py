"""API route modules."""

from mailbridge.api.routes.auth import router as auth_router
from mailbridge.api.routes.integrations import router as integrations_router

__all__ = ["auth_router", "integrations_router"]
