"""Application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidSyncRequestError(AppException):
    """Caller error: missing tenant, inverted date range, bad override."""

    status_code = 400


class CredentialNotFoundError(AppException):
    """No active HighLevel connection stored for the tenant."""

    status_code = 401


class TokenRefreshError(AppException):
    """Refresh token exchange failed or the per-run refresh was already spent."""

    status_code = 401


class HighLevelAPIError(AppException):
    """HighLevel API error.

    Carries the upstream HTTP status and response body so callers can
    pass them through.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 502,
        body: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
        self.body = body
        self.details.setdefault("upstream_status", status_code)
        if body is not None:
            self.details.setdefault("upstream_body", body[:2000])


class HighLevelAuthError(HighLevelAPIError):
    """HighLevel rejected the bearer token (401)."""

    def __init__(self, message: str, body: str | None = None):
        super().__init__(message, status_code=401, body=body)


class HighLevelRateLimitError(HighLevelAPIError):
    """HighLevel rate limit exceeded (429)."""

    def __init__(self, message: str, body: str | None = None):
        super().__init__(message, status_code=429, body=body)


class DatabaseError(AppException):
    """Database operation error."""

    pass


class InvalidRunTransitionError(AppException):
    """A sync run was asked to leave a terminal state."""

    pass


class SyncError(AppException):
    """Synchronization error."""

    pass
