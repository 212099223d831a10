"""
URL validation and platform detection for meeting URLs.

This module provides:
- Domain whitelisting (SSRF prevention)
- Protocol validation
- Meeting platform detection

Supported meeting platforms:
- Google Meet (meet.google.com)
- Zoom (zoom.us, zoomgov.com)
- Microsoft Teams (teams.microsoft.com, teams.live.com)
"""

from enum import Enum
from typing import ClassVar
from urllib.parse import urlparse

from meeting_bots.errors import UnsupportedPlatformError


class Platform(Enum):
    """Meeting platforms a bot can join."""

    ZOOM = "zoom"
    GOOGLE_MEET = "google_meet"
    TEAMS = "teams"


def _hostname(url: str) -> str | None:
    """Lower-cased host of an http(s) URL, or None."""
    try:
        parsed = urlparse(url.strip())
    except (AttributeError, ValueError):
        return None
    if parsed.scheme not in ("http", "https"):
        return None
    return (parsed.hostname or "").lower() or None


class UrlValidator:
    """Validator for meeting URLs with security domain whitelisting."""

    # Security: Only allow meetings from trusted platforms
    PLATFORM_DOMAINS: ClassVar[dict[str, Platform]] = {
        # Zoom
        "zoom.us": Platform.ZOOM,
        "zoomgov.com": Platform.ZOOM,
        # Google Meet
        "meet.google.com": Platform.GOOGLE_MEET,
        # Microsoft Teams
        "teams.microsoft.com": Platform.TEAMS,
        "teams.live.com": Platform.TEAMS,
    }

    @staticmethod
    def detect_platform(url: str | None) -> Platform | None:
        """
        Map a meeting URL to its platform.

        The host must equal an allowed domain or be a subdomain of one
        (``us02web.zoom.us`` is Zoom; ``zoom.us.example.com`` is not).

        Args:
            url: The meeting URL

        Returns:
            Platform, or None for unsupported or malformed URLs
        """
        if not url:
            return None

        host = _hostname(url)
        if not host:
            return None

        for domain, platform in UrlValidator.PLATFORM_DOMAINS.items():
            if host == domain or host.endswith("." + domain):
                return platform
        return None

    @staticmethod
    def validate_meeting_url(url: str) -> tuple[bool, str]:
        """
        Validate that a meeting URL is from an allowed domain.

        Args:
            url: The meeting URL to validate

        Returns:
            Tuple of (is_valid, error_message)
            - If valid: (True, "")
            - If invalid: (False, "reason")

        Examples:
            >>> UrlValidator.validate_meeting_url("https://zoom.us/j/123")
            (True, '')
        """
        if not url:
            return False, "Meeting URL is required"

        if _hostname(url) is None:
            return False, "Meeting URL must be an http or https URL"

        if UrlValidator.detect_platform(url) is None:
            allowed_str = ", ".join(UrlValidator.PLATFORM_DOMAINS)
            return False, f"Meeting URL domain not supported. Allowed: {allowed_str}"

        return True, ""


def detect_platform(url: str | None) -> Platform | None:
    """Map a meeting URL to a Platform (None when unsupported). No network."""
    return UrlValidator.detect_platform(url)


def require_platform(url: str | None) -> Platform:
    """
    Like detect_platform, but raise for unsupported URLs.

    Raises:
        UnsupportedPlatformError: If the URL is not a supported meeting URL
    """
    platform = detect_platform(url)
    if platform is None:
        raise UnsupportedPlatformError(url or "")
    return platform
