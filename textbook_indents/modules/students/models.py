"""Student model (read-only collaborator for indents)."""

from enum import StrEnum

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from textbook_indents.core.database.base import BaseModel


class StudentStatus(StrEnum):
    """Student status enumeration."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Student(BaseModel):
    """Student enrolled in a branch.

    Indents copy name, admission number, class and division at creation time,
    so later edits here do not rewrite issued receipts.
    """

    __tablename__ = "students"

    branch_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    admission_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    class_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    division: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=StudentStatus.ACTIVE.value
    )

    __table_args__ = (
        UniqueConstraint("branch_id", "admission_number", name="uq_students_branch_admission"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == StudentStatus.ACTIVE.value
