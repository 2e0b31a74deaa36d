"""
Changelog editing helpers.

Pure functions over locale -> text maps, and the in-memory store of unsaved
edits kept while the user switches between versions.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import AppChangelog
from .utils import locale_display_name


@dataclass
class VersionDraft:
    """Unsaved changelog edits of one version."""

    changelog_by_locale: Dict[str, str] = field(default_factory=dict)
    changelog_id_by_locale: Dict[str, str] = field(default_factory=dict)
    locales: List[str] = field(default_factory=list)
    selected_locale: Optional[str] = None
    dirty_locales: Set[str] = field(default_factory=set)

    def copy(self) -> "VersionDraft":
        return VersionDraft(
            changelog_by_locale=dict(self.changelog_by_locale),
            changelog_id_by_locale=dict(self.changelog_id_by_locale),
            locales=list(self.locales),
            selected_locale=self.selected_locale,
            dirty_locales=set(self.dirty_locales),
        )


class DraftStore:
    """At most one draft per version id, held in memory only."""

    def __init__(self):
        self._drafts: Dict[str, VersionDraft] = {}

    def stash(self, version_id: str, draft: VersionDraft) -> None:
        """Save a draft, replacing any earlier one for the version."""
        self._drafts[version_id] = draft.copy()

    def restore(self, version_id: str) -> Optional[VersionDraft]:
        draft = self._drafts.get(version_id)
        return draft.copy() if draft else None

    def discard(self, version_id: str) -> None:
        self._drafts.pop(version_id, None)

    def has(self, version_id: str) -> bool:
        return version_id in self._drafts

    def __len__(self) -> int:
        return len(self._drafts)


def sort_locales(locales: Iterable[str]) -> List[str]:
    """De-duplicate locales and order them by display name."""
    return sorted(set(locales), key=lambda code: (locale_display_name(code), code))


def build_changelog_maps(
    changelogs: List[AppChangelog],
) -> Tuple[Dict[str, str], Dict[str, str], List[str]]:
    """
    Index fetched changelogs by locale.

    The first changelog seen for a locale wins.

    Returns:
        (text by locale, localization id by locale, sorted locales)
    """
    texts: Dict[str, str] = {}
    ids: Dict[str, str] = {}
    for changelog in changelogs:
        if changelog.locale in texts:
            continue
        texts[changelog.locale] = changelog.text
        ids[changelog.locale] = changelog.id
    return texts, ids, sort_locales(texts)


def merge_previous_changelogs(
    current: Dict[str, str], locales: List[str], previous: List[AppChangelog]
) -> Tuple[Dict[str, str], List[str]]:
    """
    Copy non-empty texts of a previous version onto the current locales.

    Locales the previous version has no text for keep their current text.

    Returns:
        (updated text map, locales that were overwritten, in list order)
    """
    previous_texts, _, _ = build_changelog_maps(previous)
    merged = dict(current)
    copied = []
    for locale in locales:
        text = previous_texts.get(locale)
        if text:
            merged[locale] = text
            copied.append(locale)
    return merged, copied


def locales_to_be_overridden(
    texts: Dict[str, str], locales: List[str], source_locale: Optional[str]
) -> List[str]:
    """Locales other than the source whose existing text would be replaced."""
    if not source_locale or not texts.get(source_locale):
        return []
    return [
        locale
        for locale in locales
        if locale != source_locale and texts.get(locale)
    ]


def apply_text_to_locales(
    texts: Dict[str, str], locales: List[str], source_locale: str
) -> Tuple[Dict[str, str], List[str]]:
    """
    Copy the source locale's text to every other locale.

    Returns:
        (updated text map, locales that received the text)
    """
    text = texts.get(source_locale) or ""
    if not text:
        return dict(texts), []

    updated = dict(texts)
    targets = [locale for locale in locales if locale != source_locale]
    for locale in targets:
        updated[locale] = text
    return updated, targets
