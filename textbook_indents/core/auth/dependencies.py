from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.auth.jwt import decode_token
from textbook_indents.core.auth.models import Capability, User
from textbook_indents.core.auth.service import AuthService
from textbook_indents.core.database import get_db
from textbook_indents.core.exceptions import AuthenticationError, AuthorizationError


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency to get current authenticated user from JWT token.

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header format")

    payload = decode_token(authorization.removeprefix("Bearer "), token_type="access")

    user = await AuthService(db).get_user_by_id(int(payload["sub"]))
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


def require_capability(capability: Capability):
    """
    Dependency factory to require a capability tag.

    Usage:
        @router.post("/textbooks")
        async def create_textbook(
            user: User = Depends(require_capability(Capability.TEXTBOOKS_CREATE))
        ):
            ...
    """

    async def capability_checker(
        current_user: User = Depends(get_current_user),
    ) -> User:
        if not current_user.has_capability(capability):
            raise AuthorizationError(f"Required permission: {capability.value}")
        return current_user

    return capability_checker


# Convenience dependencies
CurrentUser = Annotated[User, Depends(get_current_user)]
TextbookReader = Annotated[User, Depends(require_capability(Capability.TEXTBOOKS_READ))]
TextbookCreator = Annotated[User, Depends(require_capability(Capability.TEXTBOOKS_CREATE))]
TextbookEditor = Annotated[User, Depends(require_capability(Capability.TEXTBOOKS_UPDATE))]
TextbookRemover = Annotated[User, Depends(require_capability(Capability.TEXTBOOKS_DELETE))]
