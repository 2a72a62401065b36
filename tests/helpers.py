"""Data builders shared by the test modules."""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.auth.jwt import create_access_token
from textbook_indents.core.auth.models import User, UserRole
from textbook_indents.core.auth.service import AuthService
from textbook_indents.modules.students.models import Student
from textbook_indents.modules.students.schemas import StudentCreate
from textbook_indents.modules.students.service import StudentService
from textbook_indents.modules.textbooks.models import Textbook
from textbook_indents.modules.textbooks.schemas import TextbookCreate
from textbook_indents.modules.textbooks.service import TextbookService

BRANCH_ID = 1
OTHER_BRANCH_ID = 2
ACADEMIC_YEAR = "2026-27"


async def create_user(
    db: AsyncSession,
    role: UserRole = UserRole.BRANCH_ADMIN,
    branch_id: int | None = BRANCH_ID,
    email: str | None = None,
) -> User:
    if role == UserRole.SUPER_ADMIN:
        branch_id = None
    user = await AuthService(db).create_user(
        email=email or f"{role.value.lower()}{branch_id or ''}@school.com",
        password="Password123",
        full_name=f"{role.value} User",
        role=role,
        branch_id=branch_id,
    )
    await db.commit()
    return user


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.role, user.branch_id)
    return {"Authorization": f"Bearer {token}"}


async def create_student(
    db: AsyncSession,
    admission_number: str = "ADM-001",
    branch_id: int = BRANCH_ID,
    full_name: str = "Aarav Sharma",
    class_name: str = "Class 5",
) -> Student:
    return await StudentService(db).create_student(
        StudentCreate(
            branch_id=branch_id,
            admission_number=admission_number,
            full_name=full_name,
            class_name=class_name,
            division="A",
        )
    )


async def create_textbook(
    db: AsyncSession,
    user_id: int,
    book_code: str = "MAT5",
    quantity: int = 10,
    price: str = "100.00",
    branch_id: int = BRANCH_ID,
    title: str | None = None,
    subject: str = "Mathematics",
    class_name: str = "Class 5",
) -> Textbook:
    return await TextbookService(db).create_textbook(
        TextbookCreate(
            branch_id=branch_id,
            academic_year=ACADEMIC_YEAR,
            book_code=book_code,
            title=title or f"{subject} {book_code}",
            subject=subject,
            class_name=class_name,
            publisher="NCERT",
            price=Decimal(price),
            quantity=quantity,
        ),
        created_by_id=user_id,
    )
