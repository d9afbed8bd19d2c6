"""Provider API clients."""

from mailbridge.integrations.base import BaseApiClient
from mailbridge.integrations.throttle import TokenBucket

__all__ = ["BaseApiClient", "TokenBucket"]
