# barkada/errors.py

from typing import Any, Optional


class BarkadaError(Exception):
    """Base for every failure that is turned into a JSON error envelope."""

    status_code = 500
    default_message = "Something went wrong"

    def __init__(
            self,
            message: Optional[str] = None,
            status_code: Optional[int] = None,
            details: Any = None,
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    def to_envelope(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


# ================================================
# 400: CLIENT INPUT
# ================================================

class MissingInput(BarkadaError):
    status_code = 400
    default_message = "Missing required input"


class MissingCode(MissingInput):
    default_message = "Authorization code is required"


class NoRefreshToken(MissingInput):
    default_message = "No refresh token provided"


class StateMismatch(MissingInput):
    default_message = "Invalid state parameter"


# ================================================
# PROVIDER FAILURES
# ================================================

class UpstreamAuthFailure(BarkadaError):
    """Spotify rejected a code or refresh token; the user must log in again."""

    status_code = 400
    default_message = "Spotify rejected the authorization request"

    def __init__(self, message=None, upstream_status=None, details=None):
        self.upstream_status = upstream_status
        status = 502 if upstream_status and upstream_status >= 500 else None
        super().__init__(message, status_code=status, details=details)


class TokenExchangeFailed(UpstreamAuthFailure):
    default_message = "Failed to exchange code for tokens"


class ProfileFetchFailed(UpstreamAuthFailure):
    default_message = "Failed to fetch user profile"


class RefreshFailed(UpstreamAuthFailure):
    default_message = "Failed to refresh token"


class UpstreamUnavailable(BarkadaError):
    status_code = 503
    default_message = "Spotify is unavailable, please try again"


class UpstreamRequestFailed(BarkadaError):
    """A proxied Spotify call answered non-2xx; mirrors the upstream status."""

    default_message = "Spotify request failed"

    def __init__(self, message=None, upstream_status: int = 502, details=None):
        super().__init__(message, status_code=upstream_status, details=details)


# ================================================
# ACCESS / LOOKUP
# ================================================

class Unauthorized(BarkadaError):
    status_code = 401
    default_message = "No access token found"


class NotFound(BarkadaError):
    status_code = 404
    default_message = "Not found"


class Forbidden(BarkadaError):
    status_code = 403
    default_message = "Not allowed"


class Internal(BarkadaError):
    status_code = 500
    default_message = "Internal server error"
