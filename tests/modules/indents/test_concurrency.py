import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from textbook_indents.core.auth.models import UserRole
from textbook_indents.core.exceptions import InsufficientStockError
from textbook_indents.modules.indents.models import ItemCondition, TextbookIndent
from textbook_indents.modules.indents.schemas import IndentCreate, IndentItemCreate, ReturnLine
from textbook_indents.modules.indents.service import IndentService
from textbook_indents.modules.textbooks.ledger import InventoryLedger
from textbook_indents.modules.textbooks.models import TextbookMovement
from tests.helpers import ACADEMIC_YEAR, create_student, create_textbook, create_user


class TestConcurrentCreates:
    """Two requests racing for the same copies on separate connections."""

    async def test_last_copies_go_to_exactly_one_indent(
        self, file_session_factory: async_sessionmaker
    ):
        async with file_session_factory() as db:
            user = await create_user(db, UserRole.BRANCH_ADMIN)
            first = await create_student(db, admission_number="ADM-001")
            second = await create_student(db, admission_number="ADM-002")
            textbook = await create_textbook(db, user.id, quantity=3)
            user_id, textbook_id = user.id, textbook.id
            student_ids = [first.id, second.id]

        async def create_for(student_id: int) -> TextbookIndent:
            async with file_session_factory() as db:
                try:
                    indent, _ = await IndentService(db).create_indent(
                        IndentCreate(
                            student_id=student_id,
                            academic_year=ACADEMIC_YEAR,
                            items=[IndentItemCreate(textbook_id=textbook_id, quantity=3)],
                        ),
                        created_by_id=user_id,
                    )
                except Exception:
                    await db.rollback()
                    raise
                return indent

        results = await asyncio.gather(
            *(create_for(student_id) for student_id in student_ids),
            return_exceptions=True,
        )

        created = [r for r in results if isinstance(r, TextbookIndent)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(created) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], InsufficientStockError)

        async with file_session_factory() as db:
            counters = await InventoryLedger(db).get_counters(textbook_id)
            assert counters.available == 0
            assert counters.quantity == 3


async def _create_indent(
    factory: async_sessionmaker, student_id: int, textbook_id: int, quantity: int, user_id: int
) -> TextbookIndent:
    async with factory() as db:
        try:
            indent, _ = await IndentService(db).create_indent(
                IndentCreate(
                    student_id=student_id,
                    academic_year=ACADEMIC_YEAR,
                    items=[IndentItemCreate(textbook_id=textbook_id, quantity=quantity)],
                ),
                created_by_id=user_id,
            )
        except Exception:
            await db.rollback()
            raise
        return indent


async def _movement_totals(db: AsyncSession, textbook_id: int) -> tuple[int, int]:
    result = await db.execute(
        select(
            func.sum(TextbookMovement.quantity_delta),
            func.sum(TextbookMovement.available_delta),
        ).where(TextbookMovement.textbook_id == textbook_id)
    )
    quantity, available = result.one()
    return quantity, available


class TestReleasesRacingCreates:
    """Returns and cancels put copies back while other sessions reserve the same title."""

    async def _setup(self, factory: async_sessionmaker, issue: bool):
        async with factory() as db:
            user = await create_user(db, UserRole.BRANCH_ADMIN)
            holder = await create_student(db, admission_number="ADM-001")
            others = [
                await create_student(db, admission_number=f"ADM-00{n}") for n in (2, 3)
            ]
            textbook = await create_textbook(db, user.id, quantity=4)
            service = IndentService(db)
            indent, _ = await service.create_indent(
                IndentCreate(
                    student_id=holder.id,
                    academic_year=ACADEMIC_YEAR,
                    items=[IndentItemCreate(textbook_id=textbook.id, quantity=2)],
                ),
                created_by_id=user.id,
            )
            if issue:
                indent = await service.issue_indent(indent.id, user.id)
            return user.id, textbook.id, indent.id, indent.items[0].id, [s.id for s in others]

    async def _assert_counters(
        self, factory: async_sessionmaker, textbook_id: int, quantity: int, available: int
    ) -> None:
        async with factory() as db:
            counters = await InventoryLedger(db).get_counters(textbook_id)
            assert (counters.quantity, counters.available) == (quantity, available)
            assert 0 <= counters.available <= counters.quantity
            assert await _movement_totals(db, textbook_id) == (quantity, available)

    @pytest.mark.parametrize(
        "condition, expected",
        [
            (ItemCondition.GOOD, (4, 2)),
            (ItemCondition.LOST, (2, 0)),
        ],
    )
    async def test_return_against_creates(
        self, file_session_factory: async_sessionmaker, condition, expected
    ):
        user_id, textbook_id, indent_id, item_id, student_ids = await self._setup(
            file_session_factory, issue=True
        )

        async def return_copies():
            async with file_session_factory() as db:
                try:
                    return await IndentService(db).return_items(
                        indent_id,
                        [ReturnLine(item_id=item_id, quantity=2, condition=condition)],
                        user_id,
                    )
                except Exception:
                    await db.rollback()
                    raise

        results = await asyncio.gather(
            return_copies(),
            *(
                _create_indent(file_session_factory, student_id, textbook_id, 1, user_id)
                for student_id in student_ids
            ),
            return_exceptions=True,
        )

        assert not [r for r in results if isinstance(r, Exception)]
        await self._assert_counters(file_session_factory, textbook_id, *expected)

    async def test_cancel_against_creates(self, file_session_factory: async_sessionmaker):
        user_id, textbook_id, indent_id, _, student_ids = await self._setup(
            file_session_factory, issue=False
        )

        async def cancel():
            async with file_session_factory() as db:
                try:
                    return await IndentService(db).cancel_indent(indent_id, user_id)
                except Exception:
                    await db.rollback()
                    raise

        results = await asyncio.gather(
            cancel(),
            *(
                _create_indent(file_session_factory, student_id, textbook_id, 1, user_id)
                for student_id in student_ids
            ),
            return_exceptions=True,
        )

        assert not [r for r in results if isinstance(r, Exception)]
        await self._assert_counters(file_session_factory, textbook_id, 4, 2)
