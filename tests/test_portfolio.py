"""
Tests for the app portfolio.
"""

from unittest.mock import Mock, patch

from appstore_whatsnew.exceptions import (
    AppStoreConnectError,
    AuthenticationError,
    MissingAPIKeyError,
)
from appstore_whatsnew.models import AppStoreApp
from appstore_whatsnew.portfolio import AppPortfolio, create_portfolio


def make_app(id, has_released, version_state):
    return AppStoreApp(
        id=id,
        name=f"App {id}",
        bundle_id=f"com.example.{id}",
        sku=id.upper(),
        primary_locale="en-US",
        version_state=version_state,
        has_released=has_released,
    )


class TestAppPortfolio:
    """Test loading and grouping apps."""

    def test_load_apps(self):
        api = Mock()
        api.fetch_apps.return_value = [
            make_app("live", True, "READY_FOR_SALE"),
            make_app("updating", True, "PREPARE_FOR_SUBMISSION"),
            make_app("new", False, "PREPARE_FOR_SUBMISSION"),
        ]
        portfolio = AppPortfolio(api)

        portfolio.load_apps()

        assert [a.id for a in portfolio.released_apps] == ["live", "updating"]
        assert [a.id for a in portfolio.unreleased_apps] == ["new"]
        assert portfolio.is_live(portfolio.apps[0])
        assert not portfolio.is_live(portfolio.apps[1])
        assert not portfolio.is_loading
        assert portfolio.error_message is None

    def test_load_failure(self):
        api = Mock()
        api.fetch_apps.side_effect = AppStoreConnectError("API Error 500")
        portfolio = AppPortfolio(api)

        portfolio.load_apps()

        assert portfolio.error_message == "Failed to load apps: API Error 500"
        assert not portfolio.show_reset_action
        assert not portfolio.is_loading

    def test_auth_failure_offers_reset(self):
        api = Mock()
        api.fetch_apps.side_effect = AuthenticationError("Authentication failed - check credentials")
        portfolio = AppPortfolio(api)

        portfolio.load_apps()

        assert portfolio.show_reset_action
        assert portfolio.error_message == (
            "Authentication failed - check credentials. Update your API key to continue."
        )

    def test_missing_key_offers_reset(self):
        api = Mock()
        api.fetch_apps.side_effect = MissingAPIKeyError()
        portfolio = AppPortfolio(api)

        portfolio.load_apps()

        assert portfolio.show_reset_action

    def test_reset_action_cleared_on_success(self):
        api = Mock()
        api.fetch_apps.side_effect = [MissingAPIKeyError(), []]
        portfolio = AppPortfolio(api)

        portfolio.load_apps()
        portfolio.load_apps()

        assert not portfolio.show_reset_action
        assert portfolio.error_message is None

    @patch("appstore_whatsnew.portfolio.create_api")
    def test_create_portfolio(self, mock_create_api):
        portfolio = create_portfolio()

        mock_create_api.assert_called_once_with(None)
        assert portfolio.api is mock_create_api.return_value
