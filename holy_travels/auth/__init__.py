"""
Authentication: registration, JWT login and the request dependencies that
resolve the current user. Routers import ``holy_travels.auth.router`` directly.
"""

from .dependencies import get_current_user, require_admin
from .service import UserService

__all__ = ["get_current_user", "require_admin", "UserService"]
