from textbook_indents.core.auth.models import Capability, User, UserRole
from textbook_indents.core.auth.service import AuthService
from textbook_indents.core.auth.jwt import create_access_token, create_refresh_token, decode_token
from textbook_indents.core.auth.dependencies import get_current_user, require_capability

__all__ = [
    "Capability",
    "User",
    "UserRole",
    "AuthService",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "get_current_user",
    "require_capability",
]
