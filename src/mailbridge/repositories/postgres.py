"""PostgreSQL-backed integration store."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert

from mailbridge.core.database import Database
from mailbridge.core.exceptions import IntegrationNotFound
from mailbridge.models.integration import EmailIntegration
from mailbridge.models.message import SynchronizedEmail
from mailbridge.schemas.integration import Integration, IntegrationState, ProviderType
from mailbridge.schemas.message import NormalizedMessage


def _column_value(value: Any) -> Any:
    """Store enum members by their value."""
    return getattr(value, "value", value)


class SqlAlchemyIntegrationStore:
    """Integration store on the async SQLAlchemy ORM."""

    def __init__(self, database: Database) -> None:
        """Initialize store.

        Args:
            database: Connected database manager.
        """
        self.database = database

    async def get_integration(self, integration_id: UUID) -> Integration | None:
        async with self.database.session() as session:
            row = await session.get(EmailIntegration, integration_id)
            return Integration.model_validate(row) if row else None

    async def list_integrations(
        self,
        user_id: str,
        state: IntegrationState | None = None,
    ) -> list[Integration]:
        query = select(EmailIntegration).where(EmailIntegration.user_id == user_id)
        if state is not None:
            query = query.where(EmailIntegration.state == state.value)
        async with self.database.session() as session:
            result = await session.execute(query.order_by(EmailIntegration.created_at))
            return [Integration.model_validate(row) for row in result.scalars().all()]

    async def find_integration(
        self,
        user_id: str,
        provider: ProviderType,
        email: str,
    ) -> Integration | None:
        async with self.database.session() as session:
            result = await session.execute(
                select(EmailIntegration).where(
                    EmailIntegration.user_id == user_id,
                    EmailIntegration.provider == provider.value,
                    EmailIntegration.email == email.lower(),
                )
            )
            row = result.scalar_one_or_none()
            return Integration.model_validate(row) if row else None

    async def create_integration(self, integration: Integration) -> Integration:
        values = {key: _column_value(value) for key, value in integration.model_dump().items()}
        async with self.database.session() as session:
            row = EmailIntegration(**values)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return Integration.model_validate(row)

    async def update_integration(self, integration_id: UUID, **fields: Any) -> Integration:
        async with self.database.session() as session:
            row = await session.get(EmailIntegration, integration_id)
            if row is None:
                raise IntegrationNotFound(integration_id)
            for key, value in fields.items():
                setattr(row, key, _column_value(value))
            await session.commit()
            await session.refresh(row)
            return Integration.model_validate(row)

    async def update_integration_credentials(
        self,
        integration_id: UUID,
        encrypted_tokens: str,
        token_expires_at: datetime | None,
    ) -> None:
        await self.update_integration(
            integration_id,
            encrypted_tokens=encrypted_tokens,
            token_expires_at=token_expires_at,
        )

    async def delete_integration(self, integration_id: UUID) -> bool:
        async with self.database.session() as session:
            result = await session.execute(
                delete(EmailIntegration).where(EmailIntegration.id == integration_id)
            )
            await session.commit()
            return bool(result.rowcount)

    async def upsert_normalized_message(self, record: NormalizedMessage) -> bool:
        """Insert a message, or refresh only its read and importance flags.

        Returns:
            True if the message did not exist before.
        """
        async with self.database.session() as session:
            existing = await session.execute(
                select(SynchronizedEmail.id).where(
                    SynchronizedEmail.integration_id == record.integration_id,
                    SynchronizedEmail.provider_message_id == record.provider_message_id,
                )
            )
            created = existing.scalar_one_or_none() is None

            stmt = insert(SynchronizedEmail).values(**record.model_dump())
            stmt = stmt.on_conflict_do_update(
                index_elements=["integration_id", "provider_message_id"],
                set_={
                    "is_read": stmt.excluded.is_read,
                    "is_important": stmt.excluded.is_important,
                    "updated_at": func.now(),
                },
            )
            await session.execute(stmt)
            await session.commit()
            return created

    async def get_message(
        self,
        integration_id: UUID,
        provider_message_id: str,
    ) -> NormalizedMessage | None:
        async with self.database.session() as session:
            result = await session.execute(
                select(SynchronizedEmail).where(
                    SynchronizedEmail.integration_id == integration_id,
                    SynchronizedEmail.provider_message_id == provider_message_id,
                )
            )
            row = result.scalar_one_or_none()
            return NormalizedMessage.model_validate(row) if row else None

    async def list_messages(
        self,
        user_id: str,
        integration_id: UUID | None = None,
        limit: int = 50,
    ) -> list[NormalizedMessage]:
        query = select(SynchronizedEmail).where(SynchronizedEmail.user_id == user_id)
        if integration_id is not None:
            query = query.where(SynchronizedEmail.integration_id == integration_id)
        query = query.order_by(SynchronizedEmail.received_at.desc()).limit(limit)
        async with self.database.session() as session:
            result = await session.execute(query)
            return [NormalizedMessage.model_validate(row) for row in result.scalars().all()]
