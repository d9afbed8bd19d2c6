"""Error taxonomy shared by every mailbridge component.

Provider calls surface one of a small set of exceptions so callers can decide
between retrying, skipping a single message, or flagging the integration for
user action:

- ``CredentialError``: a stored secret could not be decrypted.
- ``AuthExpired``: the refresh token was revoked or expired. Needs the user.
- ``ProviderUnavailable``: network or server-side failure. Retryable.
- ``MalformedMessage``: one message had an unexpected shape. Skip it.
- ``UnsupportedProvider``: no adapter is registered for a provider tag.
"""

from __future__ import annotations


class MailBridgeError(Exception):
    """Base class for mailbridge errors.

    Attributes:
        message: Human-readable error message.
        provider: Provider tag the error relates to, if any.
        retryable: Whether the operation may succeed if retried unchanged.
    """

    retryable: bool = False

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider


class CredentialError(MailBridgeError):
    """Raised when a stored secret cannot be decrypted or decoded."""


class AuthExpired(MailBridgeError):
    """Raised when a provider rejects the refresh token."""


class ProviderUnavailable(MailBridgeError):
    """Raised on network failures and provider-side 5xx responses.

    Attributes:
        status_code: HTTP status code, if a response was received.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.status_code = status_code


class ProviderRequestError(MailBridgeError):
    """Raised when a provider rejects a request with a non-auth 4xx response.

    Attributes:
        status_code: HTTP status code from the provider.
        error_code: Provider-specific error code, if present.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.status_code = status_code
        self.error_code = error_code


class TokenExpiredError(MailBridgeError):
    """Raised when a provider rejects the current access token (HTTP 401).

    This is recovered locally by refreshing the token and retrying once.
    """


class MalformedMessage(MailBridgeError):
    """Raised when a provider message does not have the expected shape.

    Attributes:
        message_id: Provider message ID, if known.
        field: The field that failed to parse.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        message_id: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.message_id = message_id
        self.field = field


class UnsupportedProvider(MailBridgeError):
    """Raised when no adapter exists for a provider tag."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported email provider: {provider}", provider)


class OAuthError(MailBridgeError):
    """Raised when an OAuth authorization or code exchange fails.

    Attributes:
        error: OAuth error code (e.g. ``invalid_grant``).
        description: Optional error description from the provider.
    """

    def __init__(
        self,
        error: str,
        description: str | None = None,
        provider: str | None = None,
    ) -> None:
        message = f"{error}: {description}" if description else error
        super().__init__(message, provider)
        self.error = error
        self.description = description


class RelayConnectionError(MailBridgeError):
    """Raised when an SMTP relay connection test fails."""


class IntegrationNotFound(MailBridgeError):
    """Raised when an integration does not exist or belongs to another user."""

    def __init__(self, integration_id: object) -> None:
        super().__init__(f"Integration {integration_id} not found")
        self.integration_id = integration_id


class IntegrationInactive(MailBridgeError):
    """Raised when an operation requires an active integration."""

    def __init__(self, integration_id: object, state: str) -> None:
        super().__init__(f"Integration {integration_id} is {state}, not active")
        self.integration_id = integration_id
        self.state = state


class InvalidStateTransition(MailBridgeError):
    """Raised when an integration lifecycle transition is not allowed."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move integration from {current} to {target}")
        self.current = current
        self.target = target
