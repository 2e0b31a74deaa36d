"""
Apple App Store Connect API client.

This module provides the client used by the app-detail and portfolio
models: apps, versions, "what's new" localizations, builds, releases and
review submissions.
"""

import jwt
import requests
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
from ratelimit import limits, sleep_and_retry
import logging

from .config import (
    DEFAULT_BASE_URL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TOKEN_TTL,
    Settings,
    load_settings,
)
from .credentials import APIKeyStore, private_key_to_pem
from .exceptions import (
    AppStoreConnectError,
    AuthenticationError,
    ConflictError,
    MissingAPIKeyError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    ServerError,
    UnexpectedResponseError,
    UnsupportedPlatformError,
    ValidationError,
)
from .models import (
    APIKey,
    AppChangelog,
    AppStoreApp,
    AppStoreBuild,
    AppStoreVersionSummary,
    ReleaseOption,
    VersionKind,
    latest_version,
    make_version_summary,
    parse_build,
    parse_changelog,
    select_version_summaries,
    sort_builds,
)
from .submission import SubmissionWorkflow
from .utils import format_api_datetime

logger = logging.getLogger(__name__)

SUPPORTED_PLATFORMS = ("IOS", "MAC_OS", "TV_OS", "VISION_OS")
ICON_SIZE = 128


class AppStoreConnectAPI:
    """
    Apple App Store Connect API client.

    Either a fixed API key or a key store must be given. With a key store
    the key is read on every token refresh, so replacing or deleting the
    stored key takes effect immediately.

    Args:
        api_key: Credentials to sign requests with
        key_store: Store to load credentials from when no api_key is given
        base_url: API root, without trailing slash
        token_ttl: Lifetime of generated tokens in seconds
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        api_key: Optional[APIKey] = None,
        key_store: Optional[APIKeyStore] = None,
        base_url: str = DEFAULT_BASE_URL,
        token_ttl: int = DEFAULT_TOKEN_TTL,
        timeout: int = DEFAULT_REQUEST_TIMEOUT,
    ):
        """Initialize the App Store Connect API client."""
        if api_key is None and key_store is None:
            raise ValidationError("Either api_key or key_store must be provided")

        self.api_key = api_key
        self.key_store = key_store
        self.base_url = base_url.rstrip("/")
        self.token_ttl = token_ttl
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_expiry: Optional[int] = None
        self._token_key_id: Optional[str] = None
        self._pending_submissions: Dict[str, Tuple[Tuple, SubmissionWorkflow]] = {}

    def _load_api_key(self) -> APIKey:
        """Return the key to sign with."""
        if self.api_key is not None:
            return self.api_key

        key = self.key_store.load()
        if key is None:
            raise MissingAPIKeyError()
        return key

    def _generate_token(self) -> str:
        """Generate a JWT token for App Store Connect API."""
        current_time = int(datetime.now(timezone.utc).timestamp())
        api_key = self._load_api_key()

        if (
            self._token
            and self._token_expiry
            and current_time < self._token_expiry
            and self._token_key_id == api_key.key_id
        ):
            return self._token

        expiry = current_time + self.token_ttl

        payload = {
            "iss": api_key.issuer_id,
            "iat": current_time,
            "exp": expiry,
            "aud": "appstoreconnect-v1",
        }

        headers = {"alg": "ES256", "kid": api_key.key_id, "typ": "JWT"}

        try:
            self._token = jwt.encode(
                payload,
                private_key_to_pem(api_key.private_key),
                algorithm="ES256",
                headers=headers,
            )
        except Exception as e:
            raise AuthenticationError(
                f"Invalid private key. Check the .p8 file contents ({e})"
            )

        self._token_expiry = expiry - 60  # Refresh 1 minute before expiry
        self._token_key_id = api_key.key_id
        return self._token

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests."""
        token = self._generate_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _make_request_raw(
        self,
        method: str = "GET",
        url: Optional[str] = None,
        endpoint: Optional[str] = None,
        params: Optional[Dict] = None,
        data: Optional[Dict] = None,
    ) -> requests.Response:
        """Make a request to the API and map error statuses to exceptions."""
        if url is None and endpoint is not None:
            url = f"{self.base_url}{endpoint}"
        elif url is None:
            raise ValidationError("Either url or endpoint must be provided")

        headers = self._get_headers()

        logger.info(f"_make_request: {method} {url}")
        if params:
            logger.info(f"_make_request: params={params}")

        try:
            response = requests.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=data,
                timeout=self.timeout,
            )
            logger.info(
                f"_make_request: Response received - status={response.status_code}"
            )
        except requests.exceptions.Timeout as e:
            logger.error(
                f"_make_request: Request timed out after {self.timeout}s: {e}"
            )
            raise AppStoreConnectError(f"Request failed: {e}")
        except requests.exceptions.RequestException as e:
            logger.error(f"_make_request: Request failed: {e}")
            raise AppStoreConnectError(f"Request failed: {e}")

        if response.status_code < 400:
            return response

        status = response.status_code
        title, detail = self._error_details(response)
        suffix = f": {detail}" if detail else ""

        if status == 401:
            raise AuthenticationError(
                f"Authentication failed - check credentials{suffix}",
                status_code=status,
                title=title,
                detail=detail,
            )
        elif status == 403:
            raise PermissionError(
                f"Insufficient permissions for this operation{suffix}",
                status_code=status,
                title=title,
                detail=detail,
            )
        elif status == 404:
            raise NotFoundError(
                f"Requested resource not found{suffix}",
                status_code=status,
                title=title,
                detail=detail,
            )
        elif status == 409:
            raise ConflictError(
                f"Conflict{suffix}", status_code=status, title=title, detail=detail
            )
        elif status == 429:
            raise RateLimitError("Rate limit exceeded", status_code=status)

        logger.error(f"API Error {status}: {detail or response.text}")
        error_class = ServerError if status >= 500 else AppStoreConnectError
        raise error_class(
            f"API Error {status}: {detail or title or response.text}",
            status_code=status,
            title=title,
            detail=detail,
        )

    @staticmethod
    def _error_details(response: requests.Response) -> Tuple[Optional[str], Optional[str]]:
        """First JSON:API error's title and detail, if the body has one."""
        try:
            errors = response.json().get("errors") or [{}]
        except Exception:
            return None, None
        first = errors[0] if isinstance(errors[0], dict) else {}
        return first.get("title"), first.get("detail")

    @sleep_and_retry
    @limits(calls=3500, period=3600)  # Apple's rate limit
    def _make_request(self, *args, **kwargs) -> requests.Response:
        """Rate-limited wrapper for _make_request_raw."""
        return self._make_request_raw(*args, **kwargs)

    def _get_json(self, endpoint: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        response = self._make_request(method="GET", endpoint=endpoint, params=params)
        return response.json()

    def _send(self, method: str, endpoint: str, data: Dict) -> Dict[str, Any]:
        response = self._make_request(method=method, endpoint=endpoint, data=data)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    @classmethod
    def validate_api_key(cls, api_key: APIKey, **kwargs) -> None:
        """
        Check that a key can authenticate, with one cheap request.

        Args:
            api_key: Key to check
            **kwargs: Extra client options (base_url, timeout, ...)

        Raises:
            ValidationError: If any field of the key is empty
            AppStoreConnectError: If the request fails
        """
        if not api_key.is_valid:
            raise ValidationError("Please fill in all fields")

        api = cls(api_key=api_key, **kwargs)
        api._make_request(
            method="GET",
            endpoint="/apps",
            params={"sort": "name", "fields[apps]": "appInfos,name,bundleId", "limit": 1},
        )

    # ===== APPS =====

    def fetch_apps(self) -> List[AppStoreApp]:
        """Get all apps for the account with their latest version info."""
        payload = self._get_json(
            "/apps",
            params={
                "sort": "name",
                "fields[apps]": "name,bundleId,sku,primaryLocale,appStoreIcon",
                "include": "appStoreIcon",
            },
        )
        icons = {
            item["id"]: item
            for item in payload.get("included") or []
            if item.get("type") == "buildIcons"
        }

        apps = []
        for resource in payload.get("data") or []:
            attributes = resource.get("attributes") or {}
            required = [attributes.get(k) for k in ("name", "bundleId", "primaryLocale", "sku")]
            if not all(required):
                logger.info(f"fetch_apps: Skipping app {resource.get('id')} with missing attributes")
                continue

            versions = self._get_version_resources(resource["id"])
            chosen = latest_version(versions)
            chosen_attributes = (chosen or {}).get("attributes") or {}

            apps.append(
                AppStoreApp(
                    id=resource["id"],
                    name=attributes["name"],
                    bundle_id=attributes["bundleId"],
                    sku=attributes["sku"],
                    primary_locale=attributes["primaryLocale"],
                    platform=chosen_attributes.get("platform"),
                    version=chosen_attributes.get("versionString"),
                    version_state=chosen_attributes.get("appStoreState"),
                    has_released=self._has_released_version(resource["id"]),
                    icon_url=self._icon_url(resource, icons),
                )
            )

        logger.info(f"fetch_apps: Found {len(apps)} apps")
        return apps

    @staticmethod
    def _icon_url(app: Dict[str, Any], icons: Dict[str, Dict[str, Any]]) -> Optional[str]:
        relationship = ((app.get("relationships") or {}).get("appStoreIcon") or {}).get("data")
        if not relationship:
            return None
        icon = icons.get(relationship.get("id"))
        if not icon:
            return None
        template = ((icon.get("attributes") or {}).get("iconAsset") or {}).get("templateUrl")
        if not template:
            return None
        return (
            template.replace("{w}", str(ICON_SIZE))
            .replace("{h}", str(ICON_SIZE))
            .replace("{f}", "png")
        )

    def _get_version_resources(self, app_id: str) -> List[Dict[str, Any]]:
        payload = self._get_json(
            f"/apps/{app_id}/appStoreVersions",
            params={
                "fields[appStoreVersions]": "versionString,appStoreState,createdDate,platform",
                "limit": 5,
            },
        )
        return payload.get("data") or []

    def _has_released_version(self, app_id: str) -> bool:
        payload = self._get_json(
            f"/apps/{app_id}/appStoreVersions",
            params={
                "filter[appStoreState]": "READY_FOR_SALE",
                "fields[appStoreVersions]": "appStoreState",
                "limit": 1,
            },
        )
        return bool(payload.get("data"))

    # ===== VERSIONS =====

    def fetch_app_versions(self, app_id: str) -> List[AppStoreVersionSummary]:
        """Get the upcoming and current version summaries for an app."""
        logger.info(f"fetch_app_versions: Getting versions for app_id={app_id}")
        return select_version_summaries(self._get_version_resources(app_id))

    def create_app_version(
        self, app_id: str, version_string: str, platform: Optional[str]
    ) -> AppStoreVersionSummary:
        """Create a new App Store version."""
        if platform not in SUPPORTED_PLATFORMS:
            raise UnsupportedPlatformError(f"Unsupported platform: {platform}")

        data = {
            "data": {
                "type": "appStoreVersions",
                "attributes": {
                    "platform": platform,
                    "versionString": version_string,
                },
                "relationships": {"app": {"data": {"type": "apps", "id": app_id}}},
            }
        }
        payload = self._send("POST", "/appStoreVersions", data)
        summary = make_version_summary(payload.get("data"), VersionKind.UPCOMING)
        if summary is None:
            raise UnexpectedResponseError(
                f"Could not read the created version {version_string}"
            )
        return summary

    def release_version(self, version_id: str) -> None:
        """Release a version that is pending developer release."""
        data = {
            "data": {
                "type": "appStoreVersionReleaseRequests",
                "relationships": {
                    "appStoreVersion": {
                        "data": {"type": "appStoreVersions", "id": version_id}
                    }
                },
            }
        }
        self._send("POST", "/appStoreVersionReleaseRequests", data)

    # ===== CHANGELOGS =====

    def fetch_changelogs(self, version_id: str) -> List[AppChangelog]:
        """Get the "what's new" text of every localization of a version."""
        payload = self._get_json(
            f"/appStoreVersions/{version_id}/appStoreVersionLocalizations",
            params={
                "fields[appStoreVersionLocalizations]": "locale,whatsNew",
                "limit": 200,
            },
        )
        changelogs = []
        for resource in payload.get("data") or []:
            changelog = parse_changelog(resource)
            if changelog:
                changelogs.append(changelog)
        return changelogs

    def update_changelog(self, localization_id: str, text: str) -> None:
        """Update the "what's new" text of one version localization."""
        data = {
            "data": {
                "type": "appStoreVersionLocalizations",
                "id": localization_id,
                "attributes": {"whatsNew": text},
            }
        }
        self._send("PATCH", f"/appStoreVersionLocalizations/{localization_id}", data)

    # ===== BUILDS =====

    def fetch_selected_build(self, version_id: str) -> Optional[AppStoreBuild]:
        """Get the build currently attached to a version, if any."""
        payload = self._get_json(f"/appStoreVersions/{version_id}/build")
        return parse_build(payload.get("data"))

    def update_build_selection(self, version_id: str, build_id: str) -> None:
        """Attach a build to a version."""
        data = {
            "data": {
                "type": "appStoreVersions",
                "id": version_id,
                "relationships": {
                    "build": {"data": {"type": "builds", "id": build_id}}
                },
            }
        }
        self._send("PATCH", f"/appStoreVersions/{version_id}", data)

    def fetch_builds(self, app_id: str, version_string: str) -> List[AppStoreBuild]:
        """Get builds uploaded for a version string, newest first."""
        payload = self._get_json(
            "/builds",
            params={
                "filter[preReleaseVersion.version]": version_string,
                "filter[app]": app_id,
                "limit": 200,
            },
        )
        builds = []
        for resource in payload.get("data") or []:
            build = parse_build(resource)
            if build:
                builds.append(build)
        return sort_builds(builds)

    # ===== REVIEW SUBMISSION =====

    def get_version_detail(self, version_id: str) -> Dict[str, Any]:
        """Get a version resource including its app relationship."""
        payload = self._get_json(
            f"/appStoreVersions/{version_id}", params={"include": "app"}
        )
        return payload.get("data") or {}

    def update_version_release_type(
        self,
        version_id: str,
        release_type: str,
        earliest_release_date: Optional[datetime] = None,
    ) -> None:
        """Set how a version is released after approval."""
        attributes: Dict[str, Any] = {"releaseType": release_type}
        if earliest_release_date is not None:
            attributes["earliestReleaseDate"] = format_api_datetime(earliest_release_date)

        data = {
            "data": {
                "type": "appStoreVersions",
                "id": version_id,
                "attributes": attributes,
            }
        }
        self._send("PATCH", f"/appStoreVersions/{version_id}", data)

    def get_phased_release(self, version_id: str) -> Optional[Dict[str, Any]]:
        """Get a version's phased release resource, or None if it has none."""
        try:
            payload = self._get_json(
                f"/appStoreVersions/{version_id}/appStoreVersionPhasedRelease"
            )
        except NotFoundError:
            return None
        return payload.get("data") or None

    def create_phased_release(self, version_id: str, state: str = "ACTIVE") -> Dict[str, Any]:
        data = {
            "data": {
                "type": "appStoreVersionPhasedReleases",
                "attributes": {"phasedReleaseState": state},
                "relationships": {
                    "appStoreVersion": {
                        "data": {"type": "appStoreVersions", "id": version_id}
                    }
                },
            }
        }
        return self._send("POST", "/appStoreVersionPhasedReleases", data).get("data") or {}

    def update_phased_release(self, phased_release_id: str, state: str) -> None:
        data = {
            "data": {
                "type": "appStoreVersionPhasedReleases",
                "id": phased_release_id,
                "attributes": {"phasedReleaseState": state},
            }
        }
        self._send("PATCH", f"/appStoreVersionPhasedReleases/{phased_release_id}", data)

    def get_review_submissions(
        self, app_id: str, states: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """List an app's review submissions, optionally filtered by state."""
        params = {"filter[app]": app_id}
        if states:
            params["filter[state]"] = ",".join(states)
        return self._get_json("/reviewSubmissions", params=params).get("data") or []

    def create_review_submission(
        self, app_id: str, platform: Optional[str] = None
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "data": {
                "type": "reviewSubmissions",
                "relationships": {"app": {"data": {"type": "apps", "id": app_id}}},
            }
        }
        if platform:
            data["data"]["attributes"] = {"platform": platform}

        payload = self._send("POST", "/reviewSubmissions", data)
        if not payload.get("data", {}).get("id"):
            raise UnexpectedResponseError("Review submission was created without an id")
        return payload["data"]

    def create_review_submission_item(self, submission_id: str, version_id: str) -> None:
        data = {
            "data": {
                "type": "reviewSubmissionItems",
                "relationships": {
                    "reviewSubmission": {
                        "data": {"type": "reviewSubmissions", "id": submission_id}
                    },
                    "appStoreVersion": {
                        "data": {"type": "appStoreVersions", "id": version_id}
                    },
                },
            }
        }
        self._send("POST", "/reviewSubmissionItems", data)

    def submit_review_submission(self, submission_id: str) -> None:
        data = {
            "data": {
                "type": "reviewSubmissions",
                "id": submission_id,
                "attributes": {"submitted": True},
            }
        }
        self._send("PATCH", f"/reviewSubmissions/{submission_id}", data)

    def submit_for_review(
        self,
        version_id: str,
        release_type: Union[str, ReleaseOption.Kind],
        scheduled_date: Optional[datetime] = None,
        phased_release_enabled: bool = False,
    ) -> None:
        """
        Submit a version for App Review.

        A run that failed part-way is kept and resumed from its failed step
        when the same submission is retried.

        Args:
            version_id: The version to submit
            release_type: MANUAL, AFTER_APPROVAL or SCHEDULED
            scheduled_date: Earliest release date, required for SCHEDULED
            phased_release_enabled: Roll out in phases (AFTER_APPROVAL only)
        """
        kind = ReleaseOption.Kind(release_type)
        if kind is ReleaseOption.Kind.SCHEDULED:
            option = ReleaseOption.scheduled(scheduled_date)
        else:
            option = ReleaseOption(kind)

        # Only the latest failed run of a version is kept
        signature = (option, phased_release_enabled)
        pending = self._pending_submissions.pop(version_id, None)
        if pending is not None and pending[0] == signature:
            workflow = pending[1]
        else:
            workflow = None

        if workflow is None:
            workflow = SubmissionWorkflow(self, version_id, option, phased_release_enabled)
        else:
            logger.info(
                f"submit_for_review: Resuming submission of {version_id} "
                f"at {workflow.progress.next_step.name}"
            )

        try:
            workflow.run()
        except Exception:
            self._pending_submissions[version_id] = (signature, workflow)
            raise


def create_api(settings: Optional[Settings] = None) -> AppStoreConnectAPI:
    """
    Convenience function to create a client backed by the saved API key.

    Args:
        settings: Settings to use (default: loaded from the environment)

    Returns:
        Configured AppStoreConnectAPI instance
    """
    settings = settings or load_settings()
    return AppStoreConnectAPI(
        key_store=APIKeyStore(settings.key_store_path),
        base_url=settings.base_url,
        token_ttl=settings.token_ttl,
        timeout=settings.request_timeout,
    )
