"""
Exception classes for appstore-whatsnew.
"""

from typing import Optional


class AppStoreConnectError(Exception):
    """Base exception class for App Store Connect API errors."""

    def __init__(
        self,
        message: str = "",
        status_code: Optional[int] = None,
        title: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.title = title
        self.detail = detail


class AuthenticationError(AppStoreConnectError):
    """Raised when authentication fails."""

    pass


class RateLimitError(AppStoreConnectError):
    """Raised when rate limits are exceeded."""

    pass


class ValidationError(AppStoreConnectError):
    """Raised when request validation fails."""

    pass


class NotFoundError(AppStoreConnectError):
    """Raised when requested resource is not found."""

    pass


class PermissionError(AppStoreConnectError):
    """Raised when insufficient permissions for operation."""

    pass


class ConflictError(AppStoreConnectError):
    """Raised when the server answers 409 (resource already exists)."""

    pass


class ServerError(AppStoreConnectError):
    """Raised when server returns 5xx error."""

    pass


class MissingAPIKeyError(AppStoreConnectError):
    """Raised when no API key has been saved."""

    def __init__(self, message: str = "No App Store Connect API key is saved"):
        super().__init__(message)


class UnsupportedPlatformError(AppStoreConnectError):
    """Raised when a version is created for an unknown platform."""

    pass


class UnexpectedResponseError(AppStoreConnectError):
    """Raised when a response cannot be mapped onto a model."""

    pass


class CredentialStoreError(AppStoreConnectError):
    """Raised when the stored API key cannot be read or written."""

    pass


class SubmissionError(AppStoreConnectError):
    """Base class for submit-for-review validation failures."""

    pass


class MissingAppReferenceError(SubmissionError):
    """Raised when a version has no owning app."""

    pass


class MissingScheduledDateError(SubmissionError):
    """Raised when a scheduled release has no date."""

    pass


class SubmissionInProgressError(SubmissionError):
    """Raised when the app already has a review submission under way."""

    pass


def requires_key_reset(error: BaseException) -> bool:
    """Whether the error means the saved API key must be replaced."""
    return isinstance(
        error, (MissingAPIKeyError, AuthenticationError, PermissionError)
    )
