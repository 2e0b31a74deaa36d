"""
App portfolio for the home screen.
"""

import logging
from typing import List, Optional

from .client import AppStoreConnectAPI, create_api
from .config import Settings
from .exceptions import requires_key_reset
from .models import AppStoreApp

logger = logging.getLogger(__name__)


class AppPortfolio:
    """
    All apps of the account, split by release status.

    Args:
        api: App Store Connect client
    """

    def __init__(self, api: AppStoreConnectAPI):
        self.api = api
        self.apps: List[AppStoreApp] = []
        self.is_loading = False
        self.error_message: Optional[str] = None
        self.show_reset_action = False

    def load_apps(self) -> None:
        """Fetch the app list. Errors are reported through `error_message`."""
        self.is_loading = True
        self.error_message = None
        self.show_reset_action = False

        try:
            self.apps = self.api.fetch_apps()
        except Exception as e:
            logger.error(f"Failed to load apps: {e}")
            if requires_key_reset(e):
                self.show_reset_action = True
                self.error_message = f"{e}. Update your API key to continue."
            else:
                self.error_message = f"Failed to load apps: {e}"
        finally:
            self.is_loading = False

    @property
    def released_apps(self) -> List[AppStoreApp]:
        return [app for app in self.apps if app.has_released]

    @property
    def unreleased_apps(self) -> List[AppStoreApp]:
        return [app for app in self.apps if not app.has_released]

    @staticmethod
    def is_live(app: AppStoreApp) -> bool:
        return (app.version_state or "").upper() == "READY_FOR_SALE"


def create_portfolio(settings: Optional[Settings] = None) -> AppPortfolio:
    """Convenience function to create an AppPortfolio with API client."""
    return AppPortfolio(create_api(settings))
