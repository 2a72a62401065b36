"""Service for Students module."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.audit.service import AuditAction, AuditService
from textbook_indents.core.exceptions import DuplicateError, NotFoundError
from textbook_indents.modules.students.models import Student, StudentStatus
from textbook_indents.modules.students.schemas import StudentCreate


class StudentService:
    """Point lookup of students for the indent workflow."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def create_student(
        self, data: StudentCreate, created_by_id: int | None = None, commit: bool = True
    ) -> Student:
        existing = await self.db.execute(
            select(Student.id).where(
                Student.branch_id == data.branch_id,
                Student.admission_number == data.admission_number,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateError("Student", "admission_number", data.admission_number)

        student = Student(
            branch_id=data.branch_id,
            admission_number=data.admission_number,
            full_name=data.full_name,
            class_name=data.class_name,
            division=data.division,
            status=StudentStatus.ACTIVE.value,
        )
        self.db.add(student)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="Student",
            entity_id=student.id,
            user_id=created_by_id,
            entity_identifier=student.admission_number,
        )

        if commit:
            await self.db.commit()
        return student

    async def get_by_id(self, student_id: int, branch_id: int | None = None) -> Student:
        """Get student by ID, optionally restricted to one branch."""
        query = select(Student).where(Student.id == student_id)
        if branch_id is not None:
            query = query.where(Student.branch_id == branch_id)
        student = (await self.db.execute(query)).scalar_one_or_none()
        if not student:
            raise NotFoundError("Student", student_id)
        return student
