"""Request and response bodies of the /auth endpoints."""

from datetime import datetime

from pydantic import EmailStr

from textbook_indents.shared.schemas import BaseSchema


class LoginRequest(BaseSchema):
    """Login request schema."""

    email: EmailStr
    password: str


class TokenResponse(BaseSchema):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseSchema):
    refresh_token: str


class UserResponse(BaseSchema):
    """Current user; `branch_id` is null only for super admins."""

    id: int
    email: str
    full_name: str
    phone: str | None
    role: str
    branch_id: int | None
    capabilities: list[str]
    is_active: bool
    last_login_at: datetime | None
    created_at: datetime


class LoginResponse(BaseSchema):
    """Login response with user and tokens."""

    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
