"""RFC 7807 Problem Details and the mapping from domain errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mailbridge.core.exceptions import (
    AuthExpired,
    CredentialError,
    IntegrationInactive,
    IntegrationNotFound,
    InvalidStateTransition,
    MailBridgeError,
    MalformedMessage,
    OAuthError,
    ProviderRequestError,
    ProviderUnavailable,
    RelayConnectionError,
    UnsupportedProvider,
)


@dataclass(frozen=True, slots=True)
class ProblemDetail:
    """RFC 7807 Problem Details response.

    See: https://datatracker.ietf.org/doc/html/rfc7807
    """

    type: str = field(default="about:blank")
    title: str = field(default="An error occurred")
    status: int = field(default=500)
    detail: str | None = field(default=None)
    extensions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "status": self.status,
        }
        if self.detail is not None:
            result["detail"] = self.detail
        result.update(self.extensions)
        return result


class APIError(Exception):
    """Base exception for API errors with Problem Details support."""

    def __init__(
        self,
        title: str = "An error occurred",
        detail: str | None = None,
        status: int = 500,
        error_type: str = "about:blank",
        **extensions: Any,
    ) -> None:
        super().__init__(detail or title)
        self.problem = ProblemDetail(
            type=error_type,
            title=title,
            status=status,
            detail=detail,
            extensions=extensions,
        )

    @property
    def status_code(self) -> int:
        """Get the HTTP status code."""
        return self.problem.status


class UnauthorizedError(APIError):
    """Authentication required error (401)."""

    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(
            title="Unauthorized",
            detail=detail,
            status=401,
            error_type="/errors/unauthorized",
        )


# Most specific classes first; the first isinstance match wins.
_DOMAIN_PROBLEMS: list[tuple[type[MailBridgeError], int, str, str]] = [
    (AuthExpired, 401, "/errors/auth-expired", "Reauthorization Required"),
    (UnsupportedProvider, 400, "/errors/unsupported-provider", "Unsupported Provider"),
    (OAuthError, 400, "/errors/oauth", "Authorization Failed"),
    (RelayConnectionError, 400, "/errors/relay-connection", "Relay Connection Failed"),
    (IntegrationNotFound, 404, "/errors/not-found", "Not Found"),
    (IntegrationInactive, 409, "/errors/integration-inactive", "Integration Not Active"),
    (InvalidStateTransition, 409, "/errors/invalid-state", "Invalid State Transition"),
    (ProviderUnavailable, 503, "/errors/provider-unavailable", "Provider Unavailable"),
    (ProviderRequestError, 502, "/errors/provider-rejected", "Provider Rejected Request"),
    (MalformedMessage, 502, "/errors/malformed-message", "Malformed Provider Data"),
    (CredentialError, 500, "/errors/credentials", "Stored Credentials Unreadable"),
]


def problem_for(exc: MailBridgeError) -> ProblemDetail:
    """Build the Problem Details response for a domain error."""
    extensions: dict[str, Any] = {}
    if exc.provider:
        extensions["provider"] = exc.provider

    for error_class, status, error_type, title in _DOMAIN_PROBLEMS:
        if isinstance(exc, error_class):
            # Secret decryption failures never echo internals to clients.
            detail = "Stored credentials could not be read" if status == 500 else exc.message
            return ProblemDetail(
                type=error_type,
                title=title,
                status=status,
                detail=detail,
                extensions=extensions,
            )

    return ProblemDetail(
        type="/errors/internal",
        title="Internal Server Error",
        status=500,
        detail="An unexpected error occurred",
        extensions=extensions,
    )
