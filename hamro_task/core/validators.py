"""
Reusable field validators.

Schemas call these from ``@validator`` methods so the same rule produces the
same message everywhere.
"""

import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class ValidationPatterns:
    """Common regex patterns for validation."""

    EMAIL = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

    # Hex color code
    HEX_COLOR = re.compile(r'^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$')

    # Runs of anything that is not allowed in a channel slug
    CHANNEL_SEPARATORS = re.compile(r'[\s_]+')
    CHANNEL_INVALID = re.compile(r'[^a-z0-9-]')


class CommonValidators:
    """Collection of reusable validators."""

    @staticmethod
    def validate_name(v: str) -> str:
        """
        Validate a display name (workspace, project, status).

        Rules:
        - Not empty after trimming
        - At most 255 characters
        """
        if v is None or not v.strip():
            raise ValueError('Name cannot be empty or only whitespace')

        v = v.strip()
        if len(v) > 255:
            raise ValueError('Name cannot exceed 255 characters')
        return v

    @staticmethod
    def validate_email(v: str) -> str:
        """Validate and normalize an e-mail address to lowercase."""
        if not v or not v.strip():
            raise ValueError('Email cannot be empty')

        v = v.strip().lower()
        if not ValidationPatterns.EMAIL.match(v):
            raise ValueError('Invalid email address')
        return v

    @staticmethod
    def validate_hex_color(v: str) -> str:
        """
        Validate hex color code.

        Rules:
        - Format: #RRGGBB or #RGB
        - Case insensitive, normalized to upper case
        """
        if not v:
            return v

        v = v.strip().upper()

        if not ValidationPatterns.HEX_COLOR.match(v):
            raise ValueError('Invalid hex color format. Use #RRGGBB or #RGB')

        return v

    @staticmethod
    def slugify_channel_name(v: str) -> str:
        """
        Normalize a channel name: lowercase, whitespace to hyphens.

        ``"Design Team"`` becomes ``"design-team"``.
        """
        if v is None or not v.strip():
            raise ValueError('Channel name cannot be empty')

        v = ValidationPatterns.CHANNEL_SEPARATORS.sub('-', v.strip().lower())
        v = ValidationPatterns.CHANNEL_INVALID.sub('', v).strip('-')
        if not v:
            raise ValueError('Channel name must contain letters or digits')
        if len(v) > 80:
            raise ValueError('Channel name cannot exceed 80 characters')
        return v

    @staticmethod
    def validate_timezone(v: str) -> str:
        """Validate an IANA timezone name such as ``Asia/Kathmandu``."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f'Unknown timezone: {v}')
        return v

    @staticmethod
    def validate_hour(v: int) -> int:
        """Validate an hour of day (0-23)."""
        if v is None:
            return v
        if not 0 <= v <= 23:
            raise ValueError('Hour must be between 0 and 23')
        return v
