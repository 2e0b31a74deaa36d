"""
Tests for changelog helpers and build selection.
"""

from appstore_whatsnew.builds import BuildSelection
from appstore_whatsnew.changelogs import (
    DraftStore,
    VersionDraft,
    apply_text_to_locales,
    build_changelog_maps,
    locales_to_be_overridden,
    merge_previous_changelogs,
)
from appstore_whatsnew.models import AppChangelog, AppStoreBuild


class TestChangelogMaps:
    """Test indexing fetched changelogs."""

    def test_first_occurrence_wins_and_sorted_by_name(self):
        texts, ids, locales = build_changelog_maps(
            [
                AppChangelog("1", "ja", "日本語"),
                AppChangelog("2", "de-DE", "Deutsch"),
                AppChangelog("3", "en-US", "English"),
                AppChangelog("4", "de-DE", "Duplicate"),
            ]
        )

        assert texts == {"ja": "日本語", "de-DE": "Deutsch", "en-US": "English"}
        assert ids == {"ja": "1", "de-DE": "2", "en-US": "3"}
        # English (U.S.), German, Japanese
        assert locales == ["en-US", "de-DE", "ja"]


class TestMergePrevious:
    """Test copying from the previous version."""

    def test_only_non_empty_previous_texts_copied(self):
        merged, copied = merge_previous_changelogs(
            {"en-US": "current", "de-DE": "aktuell", "fr-FR": ""},
            ["en-US", "de-DE", "fr-FR"],
            [
                AppChangelog("p1", "en-US", "previous"),
                AppChangelog("p2", "de-DE", ""),
                AppChangelog("p3", "ja", "not a current locale"),
            ],
        )

        assert merged == {"en-US": "previous", "de-DE": "aktuell", "fr-FR": ""}
        assert copied == ["en-US"]


class TestApplyToAll:
    """Test applying one text to every locale."""

    def test_locales_to_be_overridden(self):
        texts = {"en-US": "Hello", "de-DE": "Hallo", "fr-FR": ""}
        locales = ["en-US", "de-DE", "fr-FR"]

        assert locales_to_be_overridden(texts, locales, "en-US") == ["de-DE"]

    def test_nothing_overridden_without_source_text(self):
        texts = {"en-US": "", "de-DE": "Hallo"}
        assert locales_to_be_overridden(texts, ["en-US", "de-DE"], "en-US") == []
        assert locales_to_be_overridden(texts, ["en-US", "de-DE"], None) == []

    def test_apply_overwrites_every_other_locale(self):
        updated, targets = apply_text_to_locales(
            {"en-US": "Hello", "de-DE": "Hallo", "fr-FR": ""},
            ["en-US", "de-DE", "fr-FR"],
            "en-US",
        )

        assert updated == {"en-US": "Hello", "de-DE": "Hello", "fr-FR": "Hello"}
        assert targets == ["de-DE", "fr-FR"]

    def test_apply_empty_text_is_noop(self):
        texts = {"en-US": "", "de-DE": "Hallo"}
        updated, targets = apply_text_to_locales(texts, ["en-US", "de-DE"], "en-US")
        assert updated == texts
        assert targets == []


class TestDraftStore:
    """Test the in-memory draft store."""

    def test_stash_copies(self):
        store = DraftStore()
        draft = VersionDraft(
            changelog_by_locale={"en-US": "edited"},
            locales=["en-US"],
            dirty_locales={"en-US"},
        )

        store.stash("v1", draft)
        draft.changelog_by_locale["en-US"] = "changed later"

        assert store.restore("v1").changelog_by_locale == {"en-US": "edited"}

    def test_one_draft_per_version(self):
        store = DraftStore()
        store.stash("v1", VersionDraft(changelog_by_locale={"en-US": "first"}))
        store.stash("v1", VersionDraft(changelog_by_locale={"en-US": "second"}))

        assert len(store) == 1
        assert store.restore("v1").changelog_by_locale["en-US"] == "second"

    def test_discard(self):
        store = DraftStore()
        store.stash("v1", VersionDraft())
        store.discard("v1")
        store.discard("missing")

        assert not store.has("v1")
        assert store.restore("v1") is None


class TestBuildSelection:
    """Test build selection state."""

    def build(self, id):
        return AppStoreBuild(id, id, None, "VALID", True)

    def test_dirty_after_select(self):
        selection = BuildSelection()
        selection.set_assigned(self.build("b1"))
        assert not selection.is_dirty

        selection.select("b2")
        assert selection.is_dirty

        selection.select("b1")
        assert not selection.is_dirty

    def test_candidates_clear_missing_selection(self):
        selection = BuildSelection()
        selection.set_assigned(self.build("old"))

        selection.accept_candidates([self.build("b1"), self.build("b2")])

        assert selection.selected_build_id is None
        assert selection.has_loaded_available_builds

    def test_selected_build_from_candidates_or_assigned(self):
        selection = BuildSelection()
        selection.set_assigned(self.build("b1"))
        assert selection.selected_build.id == "b1"

        selection.accept_candidates([self.build("b1"), self.build("b2")])
        selection.select("b2")
        assert selection.selected_build.id == "b2"

    def test_reset(self):
        selection = BuildSelection()
        selection.set_assigned(self.build("b1"))
        selection.accept_candidates([self.build("b1")])
        selection.error_message = "Failed"

        selection.reset()

        assert selection.selected_build_id is None
        assert selection.initial_selected_build_id is None
        assert selection.available_builds == []
        assert not selection.has_loaded_available_builds
        assert selection.error_message is None
