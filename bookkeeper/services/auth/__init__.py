"""Session and profile services package."""

from bookkeeper.services.auth.profiles import ProfileService, default_full_name
from bookkeeper.services.auth.session_manager import SessionManager

__all__ = ["ProfileService", "SessionManager", "default_full_name"]
