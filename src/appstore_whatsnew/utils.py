"""
Utility functions for appstore-whatsnew.

This module provides helper functions for common operations like
input validation, locale naming, and API date handling.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from .exceptions import ValidationError

# Locales accepted by App Store Connect for version localizations
LOCALE_DISPLAY_NAMES = {
    "ar-SA": "Arabic",
    "ca": "Catalan",
    "cs": "Czech",
    "da": "Danish",
    "de-DE": "German",
    "el": "Greek",
    "en-AU": "English (Australia)",
    "en-CA": "English (Canada)",
    "en-GB": "English (U.K.)",
    "en-US": "English (U.S.)",
    "es-ES": "Spanish (Spain)",
    "es-MX": "Spanish (Mexico)",
    "fi": "Finnish",
    "fr-CA": "French (Canada)",
    "fr-FR": "French",
    "he": "Hebrew",
    "hi": "Hindi",
    "hr": "Croatian",
    "hu": "Hungarian",
    "id": "Indonesian",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "ms": "Malay",
    "nl-NL": "Dutch",
    "no": "Norwegian",
    "pl": "Polish",
    "pt-BR": "Portuguese (Brazil)",
    "pt-PT": "Portuguese (Portugal)",
    "ro": "Romanian",
    "ru": "Russian",
    "sk": "Slovak",
    "sv": "Swedish",
    "th": "Thai",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "vi": "Vietnamese",
    "zh-Hans": "Chinese (Simplified)",
    "zh-Hant": "Chinese (Traditional)",
}


def validate_version_string(version: str) -> str:
    """
    Validate an app version string.

    Args:
        version: The version string to validate

    Returns:
        The validated version string

    Raises:
        ValidationError: If the version string is invalid
    """
    if not version:
        raise ValidationError("Version string cannot be empty")

    version = version.strip()

    # One to three numeric components: X, X.Y or X.Y.Z
    if not re.match(r"^\d+(\.\d+){0,2}$", version):
        raise ValidationError(
            "Invalid version format. Expected one to three dot-separated numbers "
            f"such as '2' or '1.4.2', got: {version}"
        )

    return version


def locale_display_name(locale: str) -> str:
    """
    Human-readable name for a locale code.

    Args:
        locale: Locale code such as 'en-US' or 'ja'

    Returns:
        English display name, or the code itself when unknown
    """
    return LOCALE_DISPLAY_NAMES.get(locale, locale)


def parse_api_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp returned by the API.

    Args:
        value: Timestamp such as '2024-05-01T10:00:00.000+00:00' or '...Z'

    Returns:
        Timezone-aware datetime, or None if missing or unparseable
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_api_datetime(value: datetime) -> str:
    """Format a datetime the way the API expects (UTC, second precision)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
