"""
Shared fixtures for view-model tests.
"""

from unittest.mock import Mock

import pytest

from appstore_whatsnew.app_detail import AppDetailViewModel
from appstore_whatsnew.models import (
    AppChangelog,
    AppStoreApp,
    AppStoreVersionSummary,
    VersionKind,
)


def summary(id, version, state="PREPARE_FOR_SUBMISSION", platform="IOS", kind=None):
    """Build a version summary the way the client would."""
    if kind is None:
        editable = AppStoreVersionSummary.editable_for_state(state)
        kind = VersionKind.UPCOMING if editable else VersionKind.CURRENT
    return AppStoreVersionSummary(
        id=id,
        version=version,
        state=state,
        platform=platform,
        kind=kind,
        is_editable=AppStoreVersionSummary.editable_for_state(state),
    )


@pytest.fixture
def app():
    return AppStoreApp(
        id="app1",
        name="Verbose",
        bundle_id="com.example.verbose",
        sku="VERBOSE",
        primary_locale="en-US",
        platform="MAC_OS",
        version="1.1",
        version_state="PREPARE_FOR_SUBMISSION",
        has_released=True,
    )


@pytest.fixture
def api():
    """A client double with two versions and English/German changelogs."""
    api = Mock()
    api.fetch_app_versions.return_value = [
        summary("v2", "1.1"),
        summary("v1", "1.0", state="READY_FOR_SALE"),
    ]
    api.fetch_changelogs.return_value = [
        AppChangelog("loc-en", "en-US", "Bug fixes"),
        AppChangelog("loc-de", "de-DE", "Fehlerbehebungen"),
    ]
    api.fetch_selected_build.return_value = None
    api.fetch_builds.return_value = []
    return api


@pytest.fixture
def view_model(app, api):
    return AppDetailViewModel(app, api)


@pytest.fixture
def loaded(view_model):
    """A view model with versions loaded and the first version selected."""
    view_model.load_versions()
    view_model.select_version(view_model.state.selected_version_id)
    return view_model
