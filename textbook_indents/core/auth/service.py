import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.auth.jwt import create_access_token, create_refresh_token, decode_token
from textbook_indents.core.auth.models import Capability, User, UserRole
from textbook_indents.core.auth.password import hash_password, verify_password
from textbook_indents.core.audit import AuditAction, create_audit_log
from textbook_indents.core.exceptions import AuthenticationError, DuplicateError, ValidationError

logger = logging.getLogger(__name__)


class AuthService:
    """Service for authentication operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> User | None:
        stmt = select(User).where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        password: str,
        full_name: str,
        role: UserRole,
        branch_id: int | None = None,
        capabilities: list[Capability] | None = None,
        phone: str | None = None,
        created_by_id: int | None = None,
    ) -> User:
        """Create a new user. Everyone but a super admin needs a branch."""
        existing = await self.get_user_by_email(email)
        if existing:
            raise DuplicateError("User", "email", email)
        if role != UserRole.SUPER_ADMIN and branch_id is None:
            raise ValidationError("branch_id is required for non super-admin users", field="branch_id")

        user = User(
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            phone=phone,
            role=role.value,
            branch_id=branch_id,
            capabilities=[c.value for c in capabilities or []],
            is_active=True,
        )

        self.session.add(user)
        await self.session.flush()

        await create_audit_log(
            session=self.session,
            action=AuditAction.CREATE,
            entity_type="User",
            entity_id=user.id,
            user_id=created_by_id,
            entity_identifier=user.email,
            new_values={"email": user.email, "role": user.role, "branch_id": user.branch_id},
        )

        return user

    async def authenticate(self, email: str, password: str) -> tuple[User, str, str]:
        """
        Authenticate user and return tokens.

        Returns:
            Tuple of (user, access_token, refresh_token)

        Raises:
            AuthenticationError: If credentials are invalid
        """
        user = await self.get_user_by_email(email)

        if not user or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthenticationError("User account is deactivated")

        user.last_login_at = datetime.now(timezone.utc)
        await self.session.flush()

        access_token = create_access_token(user.id, user.role, user.branch_id)
        refresh_token = create_refresh_token(user.id)

        await create_audit_log(
            session=self.session,
            action=AuditAction.LOGIN,
            entity_type="User",
            entity_id=user.id,
            user_id=user.id,
            entity_identifier=user.email,
        )

        return user, access_token, refresh_token

    async def refresh_tokens(self, refresh_token: str) -> tuple[str, str]:
        """Exchange a refresh token for a new (access, refresh) pair."""
        payload = decode_token(refresh_token, token_type="refresh")

        user = await self.get_user_by_id(int(payload["sub"]))
        if not user:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise AuthenticationError("User account is deactivated")

        return (
            create_access_token(user.id, user.role, user.branch_id),
            create_refresh_token(user.id),
        )
