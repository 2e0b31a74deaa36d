"""
Value types for appstore-whatsnew.

Snapshots built from App Store Connect JSON:API payloads, plus the small
state types shared by the release and submit-for-review flows.
"""

import functools
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .utils import parse_api_datetime

FINAL_VERSION_STATES = ("READY_FOR_SALE", "PENDING_DEVELOPER_RELEASE")


@dataclass(frozen=True)
class APIKey:
    """Credentials for signing App Store Connect tokens."""

    key_id: str
    issuer_id: str
    private_key: str

    @property
    def is_valid(self) -> bool:
        return bool(self.key_id and self.issuer_id and self.private_key)


@dataclass(frozen=True)
class AppStoreApp:
    id: str
    name: str
    bundle_id: str
    sku: str
    primary_locale: str
    platform: Optional[str] = None
    version: Optional[str] = None
    version_state: Optional[str] = None
    has_released: bool = False
    icon_url: Optional[str] = None


class VersionKind(str, Enum):
    CURRENT = "current"
    UPCOMING = "upcoming"


@dataclass(frozen=True)
class AppStoreVersionSummary:
    id: str
    version: str
    state: Optional[str]
    platform: Optional[str]
    kind: VersionKind
    is_editable: bool

    @staticmethod
    def editable_for_state(state: Optional[str]) -> bool:
        """Versions are editable until they are released or pending release."""
        normalized = state.upper() if state else None
        return normalized not in FINAL_VERSION_STATES


@dataclass(frozen=True)
class AppChangelog:
    """The "what's new" text of one version localization."""

    id: str
    locale: str
    text: str


@dataclass(frozen=True)
class AppStoreBuild:
    id: str
    version: str
    uploaded_date: Optional[datetime]
    processing_state: Optional[str]
    is_selectable: bool


class ReleaseOption:
    """
    How a version is released once approved.

    Exactly one case carries data: a scheduled release holds its date,
    which may still be None while the user is picking it.
    """

    class Kind(str, Enum):
        MANUAL = "MANUAL"
        AFTER_APPROVAL = "AFTER_APPROVAL"
        SCHEDULED = "SCHEDULED"

        @property
        def display_name(self) -> str:
            return {
                "MANUAL": "Manually release this version",
                "AFTER_APPROVAL": "Automatically release this version",
                "SCHEDULED": "Automatically release after a date",
            }[self.value]

        @property
        def description(self) -> str:
            return {
                "MANUAL": "Release the version yourself after it is approved.",
                "AFTER_APPROVAL": "Release the version as soon as it is approved.",
                "SCHEDULED": (
                    "Release the version on the chosen date, "
                    "but not before it is approved."
                ),
            }[self.value]

        def default_option(self) -> "ReleaseOption":
            if self is ReleaseOption.Kind.SCHEDULED:
                return ReleaseOption.scheduled(ReleaseOption.default_scheduled_date())
            return ReleaseOption(self)

    def __init__(self, kind: "ReleaseOption.Kind", scheduled_date: Optional[datetime] = None):
        if kind is not ReleaseOption.Kind.SCHEDULED and scheduled_date is not None:
            raise ValueError(f"{kind.value} releases do not take a date")
        self._kind = kind
        self._scheduled_date = scheduled_date

    @classmethod
    def manual(cls) -> "ReleaseOption":
        return cls(cls.Kind.MANUAL)

    @classmethod
    def after_approval(cls) -> "ReleaseOption":
        return cls(cls.Kind.AFTER_APPROVAL)

    @classmethod
    def scheduled(cls, date: Optional[datetime]) -> "ReleaseOption":
        return cls(cls.Kind.SCHEDULED, date)

    @staticmethod
    def default_scheduled_date(now: Optional[datetime] = None) -> datetime:
        """One day ahead, rounded up to the next full hour."""
        now = now or datetime.now(timezone.utc)
        ahead = now + timedelta(days=1)
        rounded = ahead.replace(minute=0, second=0, microsecond=0)
        if rounded < ahead:
            rounded += timedelta(hours=1)
        return rounded

    @property
    def kind(self) -> "ReleaseOption.Kind":
        return self._kind

    @property
    def scheduled_date(self) -> Optional[datetime]:
        return self._scheduled_date

    @property
    def release_type(self) -> str:
        """The remote `releaseType` attribute value."""
        return self._kind.value

    @property
    def is_complete(self) -> bool:
        """Scheduled releases need a date before they can be submitted."""
        if self._kind is ReleaseOption.Kind.SCHEDULED:
            return self._scheduled_date is not None
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReleaseOption):
            return NotImplemented
        return (self._kind, self._scheduled_date) == (other._kind, other._scheduled_date)

    def __hash__(self) -> int:
        return hash((self._kind, self._scheduled_date))

    def __repr__(self) -> str:
        if self._kind is ReleaseOption.Kind.SCHEDULED:
            return f"ReleaseOption.scheduled({self._scheduled_date!r})"
        return f"ReleaseOption.{self._kind.name.lower()}()"


class OperationStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class AsyncOperationState:
    """
    Progress of a user-triggered long operation (release, submit).

    Moves idle -> in_progress -> success|error -> idle (on dismiss). The
    transition helpers raise ValueError when called out of order.
    """

    status: OperationStatus = OperationStatus.IDLE
    label: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def idle(cls) -> "AsyncOperationState":
        return cls()

    @property
    def is_idle(self) -> bool:
        return self.status is OperationStatus.IDLE

    @property
    def is_in_progress(self) -> bool:
        return self.status is OperationStatus.IN_PROGRESS

    @property
    def is_success(self) -> bool:
        return self.status is OperationStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is OperationStatus.ERROR

    def start(self) -> "AsyncOperationState":
        if not self.is_idle:
            raise ValueError(f"Cannot start an operation that is {self.status.value}")
        return AsyncOperationState(OperationStatus.IN_PROGRESS)

    def succeed(self, label: Optional[str] = None) -> "AsyncOperationState":
        if not self.is_in_progress:
            raise ValueError(f"Cannot succeed an operation that is {self.status.value}")
        return AsyncOperationState(OperationStatus.SUCCESS, label=label)

    def fail(self, message: Optional[str] = None) -> "AsyncOperationState":
        if not self.is_in_progress:
            raise ValueError(f"Cannot fail an operation that is {self.status.value}")
        return AsyncOperationState(OperationStatus.ERROR, message=message)

    def dismiss(self) -> "AsyncOperationState":
        if self.is_in_progress:
            raise ValueError("Cannot dismiss an operation that is still running")
        return AsyncOperationState()


# ===== JSON:API PARSING =====


def _attributes(resource: Dict[str, Any]) -> Dict[str, Any]:
    return resource.get("attributes") or {}


def parse_changelog(resource: Dict[str, Any]) -> Optional[AppChangelog]:
    """Build a changelog from an appStoreVersionLocalizations resource."""
    attributes = _attributes(resource)
    locale = attributes.get("locale")
    if not locale:
        return None
    return AppChangelog(
        id=resource["id"], locale=locale, text=attributes.get("whatsNew") or ""
    )


def parse_build(resource: Optional[Dict[str, Any]]) -> Optional[AppStoreBuild]:
    """Build a build snapshot from a builds resource."""
    if not resource:
        return None
    attributes = _attributes(resource)
    build_number = attributes.get("version")
    if not build_number:
        return None
    processing_state = attributes.get("processingState")
    return AppStoreBuild(
        id=resource["id"],
        version=build_number,
        uploaded_date=parse_api_datetime(attributes.get("uploadedDate")),
        processing_state=processing_state,
        is_selectable=processing_state in ("VALID", None),
    )


def make_version_summary(
    resource: Optional[Dict[str, Any]], kind: VersionKind
) -> Optional[AppStoreVersionSummary]:
    """Build a summary from an appStoreVersions resource."""
    if not resource:
        return None
    attributes = _attributes(resource)
    version_string = attributes.get("versionString")
    if not version_string:
        return None
    state = attributes.get("appStoreState")
    return AppStoreVersionSummary(
        id=resource["id"],
        version=version_string,
        state=state,
        platform=attributes.get("platform"),
        kind=kind,
        is_editable=AppStoreVersionSummary.editable_for_state(state),
    )


def _created_date(resource: Dict[str, Any]) -> datetime:
    created = parse_api_datetime(_attributes(resource).get("createdDate"))
    return created or datetime.min.replace(tzinfo=timezone.utc)


def latest_version(versions: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """The most recently created version resource."""
    if not versions:
        return None
    return max(versions, key=_created_date)


def select_version_summaries(
    versions: List[Dict[str, Any]]
) -> List[AppStoreVersionSummary]:
    """
    Pick the versions worth showing from an app's recent versions.

    The newest unreleased version comes first as `upcoming`, followed by
    the newest released (or pending release) one as `current`.

    Args:
        versions: appStoreVersions resources

    Returns:
        Zero to two summaries
    """
    if not versions:
        return []

    released = latest_version(
        [v for v in versions if _attributes(v).get("appStoreState") in FINAL_VERSION_STATES]
    )
    upcoming = latest_version(
        [
            v
            for v in versions
            if _attributes(v).get("appStoreState") not in FINAL_VERSION_STATES
        ]
    )

    summaries = []
    upcoming_summary = make_version_summary(upcoming, VersionKind.UPCOMING)
    if upcoming_summary:
        summaries.append(upcoming_summary)

    if released and (upcoming is None or released["id"] != upcoming["id"]):
        current_summary = make_version_summary(released, VersionKind.CURRENT)
        if current_summary:
            summaries.append(current_summary)

    if not summaries:
        fallback = make_version_summary(latest_version(versions), VersionKind.CURRENT)
        if fallback:
            summaries.append(fallback)

    return summaries


def _compare_builds(lhs: AppStoreBuild, rhs: AppStoreBuild) -> int:
    # Newest first; fall back to build number when a date is missing
    if lhs.uploaded_date is None or rhs.uploaded_date is None:
        left, right = lhs.version, rhs.version
    else:
        left, right = lhs.uploaded_date, rhs.uploaded_date
    if left > right:
        return -1
    if left < right:
        return 1
    return 0


def sort_builds(builds: List[AppStoreBuild]) -> List[AppStoreBuild]:
    """Order builds newest upload first."""
    return sorted(builds, key=functools.cmp_to_key(_compare_builds))
