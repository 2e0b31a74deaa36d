"""
App detail view-model.

This module holds the state behind the app detail screen and the operations
the screen triggers: loading versions and changelogs, editing "what's new"
texts per locale, picking a build, saving, releasing and submitting for
review. Every operation catches its own errors and reports them through
`error_message`, so callers never have to handle exceptions.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .builds import BuildSelection
from .changelogs import (
    DraftStore,
    VersionDraft,
    apply_text_to_locales,
    build_changelog_maps,
    locales_to_be_overridden,
    merge_previous_changelogs,
)
from .client import AppStoreConnectAPI, create_api
from .config import Settings
from .exceptions import requires_key_reset
from .models import (
    AppStoreApp,
    AppStoreBuild,
    AppStoreVersionSummary,
    AsyncOperationState,
    ReleaseOption,
)
from .utils import validate_version_string

logger = logging.getLogger(__name__)

PENDING_DEVELOPER_RELEASE = "PENDING_DEVELOPER_RELEASE"
SUBMITTABLE_STATES = ("PREPARE_FOR_SUBMISSION", "DEVELOPER_REJECTED", "REJECTED")


def _normalized_state(version: Optional[AppStoreVersionSummary]) -> Optional[str]:
    if version is None or not version.state:
        return None
    return version.state.upper()


@dataclass
class AppDetailState:
    """Everything the app detail screen shows, plus what it derives from it."""

    app: AppStoreApp
    versions: List[AppStoreVersionSummary] = field(default_factory=list)
    selected_version_id: Optional[str] = None
    changelog_by_locale: Dict[str, str] = field(default_factory=dict)
    changelog_id_by_locale: Dict[str, str] = field(default_factory=dict)
    dirty_locales: Set[str] = field(default_factory=set)
    locales: List[str] = field(default_factory=list)
    selected_locale: Optional[str] = None
    locales_to_be_overridden: List[str] = field(default_factory=list)
    builds: BuildSelection = field(default_factory=BuildSelection)

    is_loading_versions: bool = False
    is_loading_changelogs: bool = False
    is_saving: bool = False
    is_releasing: bool = False
    is_loading_builds: bool = False
    is_submitting: bool = False

    error_message: Optional[str] = None
    action_message: Optional[str] = None
    show_reset_action: bool = False

    show_new_version_sheet: bool = False
    new_version_string: str = ""

    release_option: ReleaseOption = field(default_factory=ReleaseOption.manual)
    is_phased_release_enabled: bool = False
    release_state: AsyncOperationState = field(default_factory=AsyncOperationState)
    submit_state: AsyncOperationState = field(default_factory=AsyncOperationState)

    # ===== VERSIONS =====

    @property
    def selected_version(self) -> Optional[AppStoreVersionSummary]:
        for version in self.versions:
            if version.id == self.selected_version_id:
                return version
        return None

    @property
    def previous_version(self) -> Optional[AppStoreVersionSummary]:
        """The entry right after the selected one in the fetched list."""
        for index, version in enumerate(self.versions[:-1]):
            if version.id == self.selected_version_id:
                return self.versions[index + 1]
        return None

    @property
    def can_create_version(self) -> bool:
        return _normalized_state(self.selected_version) != PENDING_DEVELOPER_RELEASE

    @property
    def platform_for_new_version(self) -> Optional[str]:
        if not self.can_create_version:
            return None
        selected = self.selected_version
        if selected and selected.platform:
            return selected.platform
        if self.versions and self.versions[0].platform:
            return self.versions[0].platform
        return self.app.platform

    # ===== CHANGELOGS =====

    @property
    def can_edit_changelog(self) -> bool:
        selected = self.selected_version
        return selected.is_editable if selected else False

    @property
    def changelog_footer_text(self) -> str:
        if _normalized_state(self.selected_version) == PENDING_DEVELOPER_RELEASE:
            return "Changelog editing is unavailable while the app is pending developer release."
        return "Changelog editing is unavailable for released versions."

    @property
    def selected_changelog_text(self) -> str:
        if not self.selected_locale:
            return ""
        return self.changelog_by_locale.get(self.selected_locale, "")

    @property
    def can_save_changelog(self) -> bool:
        locale = self.selected_locale
        if not locale or locale not in self.dirty_locales:
            return False
        if not self.changelog_id_by_locale.get(locale):
            return False
        return self.can_edit_changelog and not self.is_saving

    @property
    def can_copy_changelog_from_previous_version(self) -> bool:
        if self.previous_version is None:
            return False
        return bool(self.locales) and self.can_edit_changelog

    @property
    def can_apply_to_all_languages(self) -> bool:
        return (
            self.can_edit_changelog
            and bool(self.selected_locale)
            and len(self.locales) > 1
            and bool(self.selected_changelog_text)
        )

    # ===== BUILDS =====

    @property
    def selected_build_id(self) -> Optional[str]:
        return self.builds.selected_build_id

    @property
    def initial_selected_build_id(self) -> Optional[str]:
        return self.builds.initial_selected_build_id

    @property
    def available_builds(self) -> List[AppStoreBuild]:
        return self.builds.available_builds

    @property
    def selected_build(self) -> Optional[AppStoreBuild]:
        return self.builds.selected_build

    @property
    def build_error_message(self) -> Optional[str]:
        return self.builds.error_message

    @property
    def is_build_selection_dirty(self) -> bool:
        return self.builds.is_dirty

    @property
    def can_select_build(self) -> bool:
        return self.can_edit_changelog

    # ===== SAVE / RELEASE / SUBMIT =====

    @property
    def should_save_changelogs(self) -> bool:
        if not self.can_edit_changelog or self.is_saving:
            return False
        return any(self.changelog_id_by_locale.get(locale) for locale in self.dirty_locales)

    @property
    def should_save_build(self) -> bool:
        return (
            self.builds.is_dirty
            and self.builds.selected_build_id is not None
            and self.can_edit_changelog
        )

    @property
    def has_unsaved_changes(self) -> bool:
        return self.should_save_changelogs or self.should_save_build

    @property
    def can_release(self) -> bool:
        return _normalized_state(self.selected_version) == PENDING_DEVELOPER_RELEASE

    @property
    def can_submit_for_review(self) -> bool:
        return _normalized_state(self.selected_version) in SUBMITTABLE_STATES


class AppDetailViewModel:
    """
    Operations of the app detail screen over an AppDetailState.

    Calls are sequential and blocking; each one sets its loading flag for
    its duration.

    Args:
        app: The app being shown
        api: App Store Connect client
    """

    def __init__(self, app: AppStoreApp, api: AppStoreConnectAPI):
        self.api = api
        self.state = AppDetailState(app=app)
        self.drafts = DraftStore()

    @property
    def app(self) -> AppStoreApp:
        return self.state.app

    def _failure(self, prefix: str, error: Exception) -> str:
        logger.error(f"{prefix}: {error}")
        if requires_key_reset(error):
            self.state.show_reset_action = True
        return f"{prefix}: {error}"

    def _clear_messages(self) -> None:
        s = self.state
        s.error_message = None
        s.action_message = None
        s.show_reset_action = False

    def _snapshot(self) -> VersionDraft:
        s = self.state
        return VersionDraft(
            changelog_by_locale=s.changelog_by_locale,
            changelog_id_by_locale=s.changelog_id_by_locale,
            locales=s.locales,
            selected_locale=s.selected_locale,
            dirty_locales=s.dirty_locales,
        )

    # ===== VERSIONS =====

    def set_selected_version_id(self, version_id: Optional[str]) -> None:
        """
        Change the selected version.

        Unsaved edits of the version being left are kept as a draft. Changelogs
        and build selection belong to one version and are cleared when the id
        changes, so nothing shown can be saved against the wrong version.
        """
        s = self.state
        current = s.selected_version_id
        if current != version_id:
            if current is not None and s.dirty_locales:
                self.drafts.stash(current, self._snapshot())
                logger.info(f"Stashed draft for version {current}")
            s.changelog_by_locale = {}
            s.changelog_id_by_locale = {}
            s.locales = []
            s.dirty_locales = set()
            s.builds.reset()
        s.selected_version_id = version_id

    def select_version(self, version_id: Optional[str]) -> None:
        """Select a version and load its changelogs and build."""
        self.set_selected_version_id(version_id)
        self.load_changelogs()
        self.load_selected_build()

    def load_versions(self) -> None:
        """Fetch the app's versions, keeping the selection when possible."""
        s = self.state
        s.is_loading_versions = True
        self._clear_messages()

        try:
            fetched = self.api.fetch_app_versions(s.app.id)
            s.versions = fetched
            if any(v.id == s.selected_version_id for v in fetched):
                self.set_selected_version_id(s.selected_version_id)
            else:
                self.set_selected_version_id(fetched[0].id if fetched else None)
        except Exception as e:
            s.error_message = self._failure("Failed to load versions", e)
        finally:
            s.is_loading_versions = False

    def create_new_version(self) -> None:
        """Create the version typed into `new_version_string` and select it."""
        s = self.state
        platform = s.platform_for_new_version
        if platform is None:
            return
        version_string = s.new_version_string.strip()
        if not version_string:
            return

        s.is_saving = True
        self._clear_messages()

        try:
            version_string = validate_version_string(version_string)
            created = self.api.create_app_version(s.app.id, version_string, platform)
            s.new_version_string = ""
            s.show_new_version_sheet = False
            self.load_versions()
            self.select_version(created.id)
            s.action_message = f"Created version {created.version}."
        except Exception as e:
            s.error_message = self._failure("Failed to create version", e)
        finally:
            s.is_saving = False

    # ===== CHANGELOGS =====

    def load_changelogs(self) -> None:
        """
        Load the changelogs of the selected version.

        A stashed draft is restored instead of fetching, so edits made before
        switching away are not lost.
        """
        s = self.state
        version_id = s.selected_version_id
        if version_id is None:
            s.changelog_by_locale = {}
            s.changelog_id_by_locale = {}
            s.locales = []
            s.selected_locale = None
            s.dirty_locales = set()
            return

        draft = self.drafts.restore(version_id)
        if draft is not None:
            s.changelog_by_locale = draft.changelog_by_locale
            s.changelog_id_by_locale = draft.changelog_id_by_locale
            s.locales = draft.locales
            s.selected_locale = draft.selected_locale or (
                draft.locales[0] if draft.locales else None
            )
            s.dirty_locales = draft.dirty_locales
            s.error_message = None
            s.action_message = "Loaded unsaved draft."
            return

        s.is_loading_changelogs = True
        self._clear_messages()

        try:
            changelogs = self.api.fetch_changelogs(version_id)
            texts, ids, locales = build_changelog_maps(changelogs)
            s.changelog_by_locale = texts
            s.changelog_id_by_locale = ids
            s.locales = locales
            if s.selected_locale not in locales:
                s.selected_locale = locales[0] if locales else None
            s.dirty_locales = set()
        except Exception as e:
            s.error_message = self._failure("Failed to load changelogs", e)
        finally:
            s.is_loading_changelogs = False

    def select_locale(self, locale: Optional[str]) -> None:
        self.state.selected_locale = locale

    def update_selected_changelog_text(self, text: str) -> None:
        s = self.state
        if not s.selected_locale:
            return
        s.changelog_by_locale[s.selected_locale] = text
        s.dirty_locales.add(s.selected_locale)
        s.action_message = None

    def save_current_changelog(self) -> None:
        """Save the selected locale's text."""
        s = self.state
        locale = s.selected_locale
        if not locale:
            return
        localization_id = s.changelog_id_by_locale.get(locale)
        text = s.changelog_by_locale.get(locale)
        if not localization_id or text is None:
            return

        s.is_saving = True
        self._clear_messages()

        try:
            self.api.update_changelog(localization_id, text)
            s.dirty_locales.discard(locale)
            if not s.dirty_locales and s.selected_version_id:
                self.drafts.discard(s.selected_version_id)
            s.action_message = "Changelog updated."
        except Exception as e:
            s.error_message = self._failure("Failed to update changelog", e)
        finally:
            s.is_saving = False

    def copy_changelog_from_previous_version(self) -> None:
        """Fill the current locales with the previous version's texts."""
        s = self.state
        previous = s.previous_version
        if previous is None or not s.can_edit_changelog:
            return

        s.is_loading_changelogs = True
        self._clear_messages()

        try:
            previous_changelogs = self.api.fetch_changelogs(previous.id)
            merged, copied = merge_previous_changelogs(
                s.changelog_by_locale, s.locales, previous_changelogs
            )
            s.changelog_by_locale = merged
            s.dirty_locales.update(copied)

            if copied:
                s.action_message = (
                    f"Copied changelogs from version {previous.version} "
                    f"for {len(copied)} locale(s)."
                )
            else:
                s.error_message = (
                    f"No changelogs found in version {previous.version} "
                    "for any of the current locales."
                )
        except Exception as e:
            s.error_message = self._failure("Failed to copy changelog", e)
        finally:
            s.is_loading_changelogs = False

    def compute_locales_to_be_overridden(self) -> List[str]:
        """Locales whose text "apply to all" would replace, for confirmation."""
        s = self.state
        if not s.can_edit_changelog:
            overridden = []
        else:
            overridden = locales_to_be_overridden(
                s.changelog_by_locale, s.locales, s.selected_locale
            )
        s.locales_to_be_overridden = overridden
        return overridden

    def apply_current_text_to_all_languages(self) -> None:
        s = self.state
        if not s.can_edit_changelog or not s.selected_locale:
            return
        if not s.selected_changelog_text:
            return

        updated, targets = apply_text_to_locales(
            s.changelog_by_locale, s.locales, s.selected_locale
        )
        s.changelog_by_locale = updated
        s.dirty_locales.update(targets)
        s.locales_to_be_overridden = []
        s.action_message = f"Applied text to {len(targets)} other locale(s)."

    # ===== BUILDS =====

    def load_selected_build(self) -> None:
        """Fetch the build attached to the selected version."""
        s = self.state
        version_id = s.selected_version_id
        if version_id is None:
            s.builds.reset()
            return

        s.is_loading_builds = True
        try:
            s.builds.set_assigned(self.api.fetch_selected_build(version_id))
            s.builds.error_message = None
        except Exception as e:
            logger.warning(f"Failed to load build for version {version_id}: {e}")
            s.builds.reset()
            s.builds.error_message = self._failure("Failed to load build", e)
        finally:
            s.is_loading_builds = False

    def load_available_builds(self) -> None:
        """Fetch the builds that can be attached, once per selected version."""
        s = self.state
        version = s.selected_version
        if version is None or s.builds.has_loaded_available_builds:
            return

        s.is_loading_builds = True
        try:
            builds = self.api.fetch_builds(s.app.id, version.version)
            s.builds.accept_candidates(builds)
            s.builds.error_message = None
        except Exception as e:
            logger.warning(f"Failed to load builds for version {version.id}: {e}")
            s.builds.error_message = self._failure("Failed to load builds", e)
        finally:
            s.is_loading_builds = False

    def select_build(self, build_id: Optional[str]) -> None:
        self.state.builds.select(build_id)

    # ===== SAVE / RELEASE / SUBMIT =====

    def save_changes(self) -> None:
        """
        Save dirty changelogs and then the build selection.

        The first failing call stops the save. Nothing is marked clean
        unless every call succeeded.
        """
        s = self.state
        save_changelogs = s.should_save_changelogs
        save_build = s.should_save_build
        if not save_changelogs and not save_build:
            return

        version_id = s.selected_version_id
        s.is_saving = True
        self._clear_messages()

        try:
            saved_locales = []
            if save_changelogs:
                for locale in s.locales:
                    localization_id = s.changelog_id_by_locale.get(locale)
                    if locale not in s.dirty_locales or not localization_id:
                        continue
                    try:
                        self.api.update_changelog(
                            localization_id, s.changelog_by_locale.get(locale, "")
                        )
                    except Exception as e:
                        s.error_message = self._failure("Failed to update changelog", e)
                        return
                    saved_locales.append(locale)

            if save_build:
                try:
                    self.api.update_build_selection(version_id, s.builds.selected_build_id)
                except Exception as e:
                    s.error_message = self._failure("Failed to update build", e)
                    return

            s.dirty_locales.difference_update(saved_locales)
            if not s.dirty_locales and version_id:
                self.drafts.discard(version_id)
            if save_build:
                s.builds.mark_saved()

            if save_changelogs and save_build:
                s.action_message = "Changelog and build updated."
            elif save_build:
                s.action_message = "Build updated."
            else:
                s.action_message = "Changelog updated."
        finally:
            s.is_saving = False

    def set_release_option(self, option: ReleaseOption) -> None:
        s = self.state
        s.release_option = option
        if option.kind is not ReleaseOption.Kind.AFTER_APPROVAL:
            s.is_phased_release_enabled = False

    def set_phased_release_enabled(self, enabled: bool) -> None:
        s = self.state
        s.is_phased_release_enabled = (
            enabled and s.release_option.kind is ReleaseOption.Kind.AFTER_APPROVAL
        )

    def release_version(self) -> None:
        """Release a version that is pending developer release."""
        s = self.state
        version = s.selected_version
        if version is None or not s.can_release or s.is_releasing:
            return

        s.is_releasing = True
        s.release_state = s.release_state.dismiss().start()
        try:
            self.api.release_version(version.id)
            s.release_state = s.release_state.succeed(version.version)
            logger.info(f"Released version {version.version} of {s.app.name}")
        except Exception as e:
            self._failure("Failed to release version", e)
            s.release_state = s.release_state.fail(str(e))
            return
        finally:
            s.is_releasing = False

        self.load_versions()

    def submit_for_review(self) -> None:
        """Submit the selected version with the chosen release option."""
        s = self.state
        version = s.selected_version
        if version is None or not s.can_submit_for_review or s.is_submitting:
            return

        option = s.release_option
        phased = (
            s.is_phased_release_enabled
            and option.kind is ReleaseOption.Kind.AFTER_APPROVAL
        )

        s.is_submitting = True
        s.submit_state = s.submit_state.dismiss().start()
        try:
            self.api.submit_for_review(
                version.id, option.release_type, option.scheduled_date, phased
            )
            s.submit_state = s.submit_state.succeed(version.version)
            logger.info(f"Submitted version {version.version} of {s.app.name}")
        except Exception as e:
            self._failure("Failed to submit for review", e)
            s.submit_state = s.submit_state.fail(str(e))
            return
        finally:
            s.is_submitting = False

        self.load_versions()

    def dismiss_release_state(self) -> None:
        if not self.state.release_state.is_in_progress:
            self.state.release_state = self.state.release_state.dismiss()

    def dismiss_submit_state(self) -> None:
        if not self.state.submit_state.is_in_progress:
            self.state.submit_state = self.state.submit_state.dismiss()


def create_app_detail(
    app: AppStoreApp, settings: Optional[Settings] = None
) -> AppDetailViewModel:
    """
    Convenience function to create an AppDetailViewModel with API client.

    Args:
        app: App to show
        settings: Settings to build the client from (default: environment)

    Returns:
        Configured AppDetailViewModel instance
    """
    return AppDetailViewModel(app, create_api(settings))
