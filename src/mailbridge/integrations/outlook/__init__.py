"""Microsoft Graph mail integration."""

from mailbridge.integrations.outlook.client import GraphClient, build_graph_message

__all__ = ["GraphClient", "build_graph_message"]
