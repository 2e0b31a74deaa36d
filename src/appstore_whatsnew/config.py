"""
Configuration loader.

Reads settings from the environment (and a .env file when present) and
makes them available to the rest of the package.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://api.appstoreconnect.apple.com/v1"
DEFAULT_KEY_STORE_PATH = Path.home() / ".appstore-whatsnew" / "api_key.json"

# Apple caps tokens at 20 minutes; five is plenty for interactive use
DEFAULT_TOKEN_TTL = 300
DEFAULT_REQUEST_TIMEOUT = 30


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the API client and key store."""

    base_url: str = DEFAULT_BASE_URL
    key_store_path: Path = DEFAULT_KEY_STORE_PATH
    token_ttl: int = DEFAULT_TOKEN_TTL
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    log_level: str = "WARNING"


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Build settings from environment variables.

    Args:
        env_file: Optional path to a .env file (defaults to searching for one)

    Returns:
        Settings instance
    """
    load_dotenv(env_file)

    key_store_path = os.getenv("ASC_KEY_STORE_PATH")

    return Settings(
        base_url=os.getenv("ASC_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        key_store_path=(
            Path(key_store_path).expanduser()
            if key_store_path
            else DEFAULT_KEY_STORE_PATH
        ),
        token_ttl=int(os.getenv("ASC_TOKEN_TTL", DEFAULT_TOKEN_TTL)),
        request_timeout=int(os.getenv("ASC_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)),
        log_level=os.getenv("ASC_LOG_LEVEL", "WARNING").upper(),
    )


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging for applications embedding the package."""
    settings = settings or load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
