"""Storage implementations for integrations and synchronized messages."""

from mailbridge.repositories.base import IntegrationStore
from mailbridge.repositories.memory import InMemoryIntegrationStore
from mailbridge.repositories.postgres import SqlAlchemyIntegrationStore

__all__ = [
    "InMemoryIntegrationStore",
    "IntegrationStore",
    "SqlAlchemyIntegrationStore",
]
