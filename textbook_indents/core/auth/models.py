from datetime import datetime
from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from textbook_indents.core.database.base import BaseModel


class UserRole(StrEnum):
    """User roles in the system."""

    SUPER_ADMIN = "SuperAdmin"
    BRANCH_ADMIN = "BranchAdmin"
    ACCOUNTANT = "Accountant"
    TEACHER = "Teacher"
    STAFF = "Staff"


class Capability(StrEnum):
    """Closed set of permission tags checked at the API boundary."""

    TEXTBOOKS_READ = "textbooks:read"
    TEXTBOOKS_CREATE = "textbooks:create"
    TEXTBOOKS_UPDATE = "textbooks:update"
    TEXTBOOKS_DELETE = "textbooks:delete"


ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.SUPER_ADMIN: frozenset(Capability),
    UserRole.BRANCH_ADMIN: frozenset(Capability),
    UserRole.ACCOUNTANT: frozenset(
        {Capability.TEXTBOOKS_READ, Capability.TEXTBOOKS_CREATE, Capability.TEXTBOOKS_UPDATE}
    ),
    UserRole.TEACHER: frozenset({Capability.TEXTBOOKS_READ}),
    UserRole.STAFF: frozenset(),
}


class User(BaseModel):
    """
    User model for authentication and authorization.

    Every user except a super admin belongs to one branch and only sees that
    branch's textbooks and indents. ``capabilities`` holds grants on top of
    the role defaults.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    branch_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    capabilities: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def has_capability(self, capability: Capability) -> bool:
        granted = ROLE_CAPABILITIES.get(UserRole(self.role), frozenset())
        return capability in granted or capability.value in (self.capabilities or [])

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN.value

    @property
    def scope_branch_id(self) -> int | None:
        """Branch filter for queries; None means all branches."""
        return None if self.is_super_admin else self.branch_id
