"""Synchronized email model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ARRAY, Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mailbridge.models.base import Base

if TYPE_CHECKING:
    from mailbridge.models.integration import EmailIntegration


class SynchronizedEmail(Base):
    """Normalized inbound message, unique per integration and provider id."""

    __tablename__ = "synchronized_emails"
    __table_args__ = (
        UniqueConstraint(
            "integration_id",
            "provider_message_id",
            name="uq_synchronized_email_provider_id",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    integration_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("email_integrations.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    provider_message_id: Mapped[str] = mapped_column(String, nullable=False)
    thread_id: Mapped[str | None] = mapped_column(String, nullable=True)

    from_email: Mapped[str] = mapped_column(String, default="", server_default="")
    from_name: Mapped[str | None] = mapped_column(String, nullable=True)
    to_email: Mapped[str] = mapped_column(String, default="", server_default="")
    to_name: Mapped[str | None] = mapped_column(String, nullable=True)

    subject: Mapped[str | None] = mapped_column(String, nullable=True)
    body_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    snippet: Mapped[str] = mapped_column(String(200), default="", server_default="")

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    is_important: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    has_attachments: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    labels: Mapped[list[str]] = mapped_column(ARRAY(String), default=list)

    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    integration: Mapped[EmailIntegration] = relationship(
        "EmailIntegration",
        back_populates="messages",
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"SynchronizedEmail(integration_id={self.integration_id}, "
            f"provider_message_id={self.provider_message_id!r})"
        )
