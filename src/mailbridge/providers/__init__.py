"""Provider adapters behind one fetch/send interface.

Example:
    from mailbridge.providers import ProviderRegistry, GmailAdapter

    registry = ProviderRegistry()
    registry.register(GmailAdapter(token_manager))

    adapter = registry.get_adapter(integration.provider)
    result = await adapter.fetch_messages(integration)
"""

from mailbridge.providers.base import FetchResult, ProviderAdapter
from mailbridge.providers.gmail import GmailAdapter, build_raw_message
from mailbridge.providers.outlook import OutlookAdapter
from mailbridge.providers.registry import ProviderRegistry, build_default_registry
from mailbridge.providers.smtp import SmtpRelayAdapter

__all__ = [
    "FetchResult",
    "GmailAdapter",
    "OutlookAdapter",
    "ProviderAdapter",
    "ProviderRegistry",
    "SmtpRelayAdapter",
    "build_default_registry",
    "build_raw_message",
]
