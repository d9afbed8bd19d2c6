"""Tests for Graph message normalization."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import patch

import pytest

from mailbridge.core.exceptions import MalformedMessage
from mailbridge.normalizer import normalize_graph_message
from mailbridge.schemas.integration import Integration, ProviderType

RawFactory = Callable[..., dict[str, Any]]


@pytest.fixture
def integration() -> Integration:
    return Integration(user_id="user-2", provider=ProviderType.OUTLOOK, email="owner@contoso.com")


class TestNormalizeGraphMessage:
    """Tests for normalize_graph_message."""

    def test_full_message(self, graph_raw: RawFactory, integration: Integration) -> None:
        """Graph fields map onto the normalized schema."""
        message = normalize_graph_message(graph_raw(), integration)

        assert message.provider_message_id == "AAMk-1"
        assert message.thread_id == "conv-1"
        assert message.from_email == "sam@contoso.com"
        assert message.from_name == "Sam Smith"
        assert message.to_email == "owner@contoso.com"
        assert message.subject == "Lunch?"
        assert message.body_html == "<p>Hi there</p>"
        assert message.body_text is None
        assert message.snippet == "Hi there"
        assert message.labels == ["Blue category"]
        assert message.received_at == datetime(2024, 1, 2, 9, 30, tzinfo=UTC)
        assert message.sent_at == datetime(2024, 1, 2, 9, 29, 58, tzinfo=UTC)

    def test_text_body(self, graph_raw: RawFactory, integration: Integration) -> None:
        """contentType text fills body_text."""
        message = normalize_graph_message(
            graph_raw(content_type="text", content="plain"), integration
        )
        assert message.body_text == "plain"
        assert message.body_html is None

    def test_flags(self, graph_raw: RawFactory, integration: Integration) -> None:
        """isRead and high importance are carried over."""
        message = normalize_graph_message(graph_raw(importance="high", is_read=True), integration)
        assert message.is_read is True
        assert message.is_important is True

    def test_draft_without_sender(self, graph_raw: RawFactory, integration: Integration) -> None:
        """Messages without from or recipients get empty addresses."""
        raw = graph_raw()
        raw.pop("from")
        raw["toRecipients"] = []

        message = normalize_graph_message(raw, integration)

        assert message.from_email == ""
        assert message.to_email == ""

    @pytest.mark.parametrize(
        ("key", "value", "field"),
        [
            ("id", None, "id"),
            ("from", "sam@contoso.com", "from"),
            ("toRecipients", "owner@contoso.com", "toRecipients"),
            ("body", "text", "body"),
            ("categories", "Blue", "categories"),
        ],
    )
    def test_malformed_message(
        self,
        graph_raw: RawFactory,
        integration: Integration,
        key: str,
        value: object,
        field: str,
    ) -> None:
        """Shape errors raise MalformedMessage naming the field."""
        raw = graph_raw()
        raw[key] = value

        with pytest.raises(MalformedMessage) as exc_info:
            normalize_graph_message(raw, integration)

        assert exc_info.value.field == field
        assert exc_info.value.provider == "outlook"

    def test_parse_failure_becomes_malformed(
        self, graph_raw: RawFactory, integration: Integration
    ) -> None:
        """Errors raised while reading fields are reported as MalformedMessage."""
        with patch(
            "mailbridge.normalizer.outlook.parse_date",
            side_effect=OverflowError("date value out of range"),
        ):
            with pytest.raises(MalformedMessage) as exc_info:
                normalize_graph_message(graph_raw("AAMk-9"), integration)

        assert exc_info.value.provider == "outlook"
        assert exc_info.value.message_id == "AAMk-9"
