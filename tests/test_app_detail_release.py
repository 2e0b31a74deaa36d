"""
Tests for builds, saving, releasing and submitting in AppDetailViewModel.
"""

from datetime import datetime, timezone

import pytest

from appstore_whatsnew.exceptions import (
    AppStoreConnectError,
    PermissionError,
    SubmissionInProgressError,
)
from appstore_whatsnew.models import AppStoreBuild, ReleaseOption

from conftest import summary


def build(id, number):
    return AppStoreBuild(id, number, None, "VALID", True)


class TestBuilds:
    """Test build selection."""

    def test_load_selected_build(self, loaded, api):
        api.fetch_selected_build.return_value = build("b1", "10")

        loaded.load_selected_build()

        state = loaded.state
        assert state.selected_build_id == "b1"
        assert state.initial_selected_build_id == "b1"
        assert state.selected_build.version == "10"
        assert not state.is_build_selection_dirty
        assert not state.is_loading_builds

    def test_load_selected_build_failure_clears(self, loaded, api):
        api.fetch_selected_build.return_value = build("b1", "10")
        loaded.load_selected_build()
        api.fetch_selected_build.side_effect = AppStoreConnectError("boom")

        loaded.load_selected_build()

        state = loaded.state
        assert state.selected_build_id is None
        assert state.initial_selected_build_id is None
        assert state.build_error_message == "Failed to load build: boom"

    def test_load_available_builds_once(self, loaded, api):
        api.fetch_builds.return_value = [build("b2", "11"), build("b1", "10")]

        loaded.load_available_builds()
        loaded.load_available_builds()

        api.fetch_builds.assert_called_once_with("app1", "1.1")
        assert [b.id for b in loaded.state.available_builds] == ["b2", "b1"]

    def test_load_available_builds_failure_retries(self, loaded, api):
        api.fetch_builds.side_effect = [AppStoreConnectError("boom"), [build("b1", "10")]]

        loaded.load_available_builds()
        assert loaded.state.build_error_message == "Failed to load builds: boom"

        loaded.load_available_builds()
        assert loaded.state.build_error_message is None
        assert api.fetch_builds.call_count == 2

    def test_available_builds_drop_stale_selection(self, loaded, api):
        api.fetch_selected_build.return_value = build("gone", "9")
        loaded.load_selected_build()
        api.fetch_builds.return_value = [build("b1", "10")]

        loaded.load_available_builds()

        assert loaded.state.selected_build_id is None
        assert loaded.state.is_build_selection_dirty

    def test_select_build_marks_dirty(self, loaded):
        loaded.select_build("b2")

        state = loaded.state
        assert state.is_build_selection_dirty
        assert state.can_select_build
        assert state.has_unsaved_changes


class TestSaveChanges:
    """Test saving changelogs and build together."""

    def test_nothing_to_save(self, loaded, api):
        assert not loaded.state.has_unsaved_changes

        loaded.save_changes()

        api.update_changelog.assert_not_called()
        api.update_build_selection.assert_not_called()

    def test_saves_every_dirty_locale(self, loaded, api):
        loaded.update_selected_changelog_text("Fixes")
        loaded.state.selected_locale = "de-DE"
        loaded.update_selected_changelog_text("Korrekturen")

        loaded.save_changes()

        assert [c.args for c in api.update_changelog.call_args_list] == [
            ("loc-en", "Fixes"),
            ("loc-de", "Korrekturen"),
        ]
        state = loaded.state
        assert state.dirty_locales == set()
        assert state.action_message == "Changelog updated."
        assert not state.is_saving

    def test_saves_build_only(self, loaded, api):
        loaded.select_build("b2")

        loaded.save_changes()

        api.update_build_selection.assert_called_once_with("v2", "b2")
        assert not loaded.state.is_build_selection_dirty
        assert loaded.state.action_message == "Build updated."

    def test_saves_both(self, loaded, api):
        loaded.update_selected_changelog_text("Fixes")
        loaded.select_build("b2")

        loaded.save_changes()

        assert loaded.state.action_message == "Changelog and build updated."
        assert not loaded.state.has_unsaved_changes

    def test_changelog_failure_skips_build(self, loaded, api):
        api.update_changelog.side_effect = AppStoreConnectError("API Error 500")
        loaded.update_selected_changelog_text("Fixes")
        loaded.select_build("b2")

        loaded.save_changes()

        api.update_build_selection.assert_not_called()
        state = loaded.state
        assert state.error_message == "Failed to update changelog: API Error 500"
        assert state.dirty_locales == {"en-US"}
        assert state.is_build_selection_dirty
        assert not state.is_saving

    def test_build_failure_leaves_changelogs_dirty(self, loaded, api):
        api.update_build_selection.side_effect = AppStoreConnectError("API Error 409")
        loaded.update_selected_changelog_text("Fixes")
        loaded.select_build("b2")

        loaded.save_changes()

        state = loaded.state
        assert state.error_message == "Failed to update build: API Error 409"
        assert state.dirty_locales == {"en-US"}
        assert state.is_build_selection_dirty

    def test_permission_failure_offers_key_reset(self, loaded, api):
        api.update_changelog.side_effect = PermissionError("Insufficient permissions")
        loaded.update_selected_changelog_text("Fixes")

        loaded.save_changes()

        assert loaded.state.show_reset_action

    def test_success_discards_draft(self, loaded):
        loaded.update_selected_changelog_text("Fixes")
        loaded.select_version("v1")
        loaded.select_version("v2")
        assert loaded.drafts.has("v2")

        loaded.save_changes()

        assert not loaded.drafts.has("v2")


class TestRelease:
    """Test releasing a version pending developer release."""

    @pytest.fixture
    def pending(self, view_model, api):
        api.fetch_app_versions.return_value = [
            summary("v2", "1.1", state="PENDING_DEVELOPER_RELEASE")
        ]
        view_model.load_versions()
        return view_model

    def test_release_success(self, pending, api):
        pending.release_version()

        api.release_version.assert_called_once_with("v2")
        state = pending.state
        assert state.release_state.is_success
        assert state.release_state.label == "1.1"
        assert not state.is_releasing
        assert api.fetch_app_versions.call_count == 2

    def test_release_failure(self, pending, api):
        api.release_version.side_effect = AppStoreConnectError("API Error 500")

        pending.release_version()

        state = pending.state
        assert state.release_state.is_error
        assert state.release_state.message == "API Error 500"
        assert not state.is_releasing
        assert api.fetch_app_versions.call_count == 1

    def test_release_requires_pending_state(self, loaded, api):
        loaded.release_version()

        api.release_version.assert_not_called()
        assert loaded.state.release_state.is_idle

    def test_dismiss(self, pending):
        pending.release_version()

        pending.dismiss_release_state()

        assert pending.state.release_state.is_idle


class TestSubmitForReview:
    """Test submitting the selected version."""

    def test_submit_success(self, loaded, api):
        loaded.submit_for_review()

        api.submit_for_review.assert_called_once_with("v2", "MANUAL", None, False)
        state = loaded.state
        assert state.submit_state.is_success
        assert state.submit_state.label == "1.1"
        assert not state.is_submitting

    def test_submit_after_approval_with_phased_release(self, loaded, api):
        loaded.set_release_option(ReleaseOption.after_approval())
        loaded.set_phased_release_enabled(True)

        loaded.submit_for_review()

        api.submit_for_review.assert_called_once_with("v2", "AFTER_APPROVAL", None, True)

    def test_scheduled_submission(self, loaded, api):
        date = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)
        loaded.set_release_option(ReleaseOption.scheduled(date))

        loaded.submit_for_review()

        api.submit_for_review.assert_called_once_with("v2", "SCHEDULED", date, False)

    def test_release_option_turns_off_phased_release(self, loaded):
        loaded.set_release_option(ReleaseOption.after_approval())
        loaded.set_phased_release_enabled(True)

        loaded.set_release_option(ReleaseOption.manual())

        assert not loaded.state.is_phased_release_enabled

    def test_submit_conflict(self, loaded, api):
        api.submit_for_review.side_effect = SubmissionInProgressError(
            "This app has already been submitted for review."
        )

        loaded.submit_for_review()

        state = loaded.state
        assert state.submit_state.is_error
        assert "already been submitted" in state.submit_state.message
        assert not state.is_submitting

    def test_submit_requires_submittable_state(self, loaded, api):
        loaded.select_version("v1")

        loaded.submit_for_review()

        api.submit_for_review.assert_not_called()

    def test_resubmit_after_error(self, loaded, api):
        api.submit_for_review.side_effect = [AppStoreConnectError("boom"), None]

        loaded.submit_for_review()
        loaded.submit_for_review()

        assert loaded.state.submit_state.is_success

    def test_dismiss(self, loaded):
        loaded.submit_for_review()

        loaded.dismiss_submit_state()

        assert loaded.state.submit_state.is_idle
