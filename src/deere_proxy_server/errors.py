"""Exception hierarchy for Deere Proxy Server.

Every error carries the HTTP status it maps to at the request boundary.
"""

from __future__ import annotations

from typing import Any


class DeereProxyError(Exception):
    """Base class for all proxy errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for a JSON response body."""
        return {"error": self.message}


class AuthenticationError(DeereProxyError):
    """Caller identity is missing or invalid."""

    status_code = 401


class NoConnection(DeereProxyError):
    """No John Deere credential is stored for the caller."""

    status_code = 404

    def __init__(self, message: str = "No John Deere connection found") -> None:
        super().__init__(message)


class ValidationError(DeereProxyError):
    """Request is missing data it needs."""

    status_code = 400


class MissingField(ValidationError):
    """A required request body field is absent."""

    def __init__(self, *names: str) -> None:
        self.fields = names
        super().__init__(f"Missing {' or '.join(names)}")


class OrganizationNotSelected(ValidationError):
    """A data action needs a selected organization."""

    def __init__(self) -> None:
        super().__init__("No organization selected")


class UnknownAction(DeereProxyError):
    """The action discriminator is not handled by this endpoint."""

    status_code = 400

    def __init__(self, action: str | None = None) -> None:
        self.action = action
        super().__init__("Unknown action")


class MethodNotAllowed(DeereProxyError):
    """A state-changing action was sent with a method other than POST."""

    status_code = 405

    def __init__(self, action: str, method: str) -> None:
        self.action = action
        self.method = method
        super().__init__(f"Action {action} requires POST")


class UpstreamError(DeereProxyError):
    """John Deere API answered with a non-2xx status or was unreachable."""

    def __init__(self, status: int, body: str, message: str | None = None) -> None:
        self.status = status
        self.body = body
        super().__init__(message or f"John Deere API error: {status}", status)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "details": self.body}


class RefreshFailed(DeereProxyError):
    """Token endpoint rejected the stored refresh token.

    Surfaced as an authentication failure: the user has to reconnect.
    """

    status_code = 401

    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"Token refresh failed: {status}")


class ExchangeFailed(DeereProxyError):
    """Token endpoint rejected an authorization code."""

    status_code = 500

    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"Token exchange failed: {status} {body}".rstrip())
