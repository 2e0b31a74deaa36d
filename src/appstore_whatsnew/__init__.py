"""
appstore-whatsnew

Edit App Store "what's new" texts, pick builds and submit versions for
review through the Apple App Store Connect API.
"""

from .client import AppStoreConnectAPI, create_api
from .app_detail import AppDetailState, AppDetailViewModel, create_app_detail
from .portfolio import AppPortfolio, create_portfolio
from .credentials import APIKeyStore, make_api_key, normalize_private_key
from .config import Settings, configure_logging, load_settings
from .models import (
    APIKey,
    AppChangelog,
    AppStoreApp,
    AppStoreBuild,
    AppStoreVersionSummary,
    AsyncOperationState,
    ReleaseOption,
    VersionKind,
)
from .submission import SubmissionProgress, SubmissionStep, SubmissionWorkflow
from .exceptions import (
    AppStoreConnectError,
    AuthenticationError,
    RateLimitError,
    ValidationError,
    NotFoundError,
    PermissionError,
    ConflictError,
    MissingAPIKeyError,
    SubmissionError,
    SubmissionInProgressError,
)
from . import utils

__version__ = "0.1.0"

__all__ = [
    "AppStoreConnectAPI",
    "AppDetailState",
    "AppDetailViewModel",
    "AppPortfolio",
    "APIKeyStore",
    "Settings",
    "create_api",
    "create_app_detail",
    "create_portfolio",
    "configure_logging",
    "load_settings",
    "make_api_key",
    "normalize_private_key",
    "APIKey",
    "AppChangelog",
    "AppStoreApp",
    "AppStoreBuild",
    "AppStoreVersionSummary",
    "AsyncOperationState",
    "ReleaseOption",
    "VersionKind",
    "SubmissionProgress",
    "SubmissionStep",
    "SubmissionWorkflow",
    "AppStoreConnectError",
    "AuthenticationError",
    "RateLimitError",
    "ValidationError",
    "NotFoundError",
    "PermissionError",
    "ConflictError",
    "MissingAPIKeyError",
    "SubmissionError",
    "SubmissionInProgressError",
    "utils",
]
