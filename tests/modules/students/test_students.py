import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.exceptions import DuplicateError, NotFoundError
from textbook_indents.modules.indents.schemas import IndentCreate, IndentItemCreate
from textbook_indents.modules.indents.service import IndentService
from textbook_indents.modules.students.models import StudentStatus
from textbook_indents.modules.students.schemas import StudentCreate
from textbook_indents.modules.students.service import StudentService
from tests.helpers import ACADEMIC_YEAR, BRANCH_ID, OTHER_BRANCH_ID, create_student


class TestStudentService:
    """Tests for student lookup used by indents."""

    async def test_create_student(self, db_session: AsyncSession):
        student = await StudentService(db_session).create_student(
            StudentCreate(
                branch_id=BRANCH_ID,
                admission_number="ADM-100",
                full_name="Kabir Singh",
                class_name="Class 6",
                division="B",
            )
        )

        assert student.id is not None
        assert student.status == StudentStatus.ACTIVE.value
        assert student.is_active is True

    async def test_admission_number_unique_per_branch(self, db_session: AsyncSession):
        await create_student(db_session, admission_number="ADM-100")

        with pytest.raises(DuplicateError):
            await create_student(db_session, admission_number="ADM-100")

        other = await create_student(
            db_session, admission_number="ADM-100", branch_id=OTHER_BRANCH_ID
        )
        assert other.branch_id == OTHER_BRANCH_ID

    async def test_get_by_id_scoped_to_branch(self, db_session: AsyncSession, student):
        service = StudentService(db_session)

        assert (await service.get_by_id(student.id)).id == student.id
        assert (await service.get_by_id(student.id, BRANCH_ID)).id == student.id
        with pytest.raises(NotFoundError):
            await service.get_by_id(student.id, OTHER_BRANCH_ID)
        with pytest.raises(NotFoundError):
            await service.get_by_id(9999)

    async def test_indent_keeps_identity_snapshot(
        self, db_session: AsyncSession, admin, student, make_textbook
    ):
        book = await make_textbook()
        indent, _ = await IndentService(db_session).create_indent(
            IndentCreate(
                student_id=student.id,
                academic_year=ACADEMIC_YEAR,
                items=[IndentItemCreate(textbook_id=book.id, quantity=1)],
            ),
            created_by_id=admin.id,
        )

        student.full_name = "Aarav S. Sharma"
        student.class_name = "Class 6"
        await db_session.commit()

        indent = await IndentService(db_session).get_by_id(indent.id)
        assert indent.student_name == "Aarav Sharma"
        assert indent.class_name == "Class 5"
