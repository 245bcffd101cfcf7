"""
Authentication module.

Users are authenticated by an external identity provider; this module keeps
their profile and turns bearer tokens into users.
"""

from .models import User
from .schemas import ProfileUpdate, UserResponse

__all__ = [
    "User",
    "ProfileUpdate",
    "UserResponse",
]
