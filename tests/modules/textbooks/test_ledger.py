import logging

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.config import settings
from textbook_indents.core.exceptions import (
    ConcurrencyConflictError,
    InsufficientStockError,
    InventoryInvariantViolation,
    NotFoundError,
    ValidationError,
)
from textbook_indents.modules.textbooks.ledger import InventoryLedger
from textbook_indents.modules.textbooks.models import MovementType, Textbook, TextbookMovement


async def _movements(db: AsyncSession, textbook_id: int) -> list[TextbookMovement]:
    result = await db.execute(
        select(TextbookMovement)
        .where(TextbookMovement.textbook_id == textbook_id)
        .order_by(TextbookMovement.id)
    )
    return list(result.scalars().all())


class TestReserveRelease:
    async def test_reserve_decrements_available(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session)

        available = await ledger.reserve(textbook.id, 3, created_by_id=1)

        counters = await ledger.get_counters(textbook.id)
        assert available == 7
        assert counters.quantity == 10
        assert counters.available == 7
        assert counters.issued == 3
        assert counters.version == textbook.version + 1

    async def test_reserve_insufficient_stock(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook(quantity=2)
        ledger = InventoryLedger(db_session)

        with pytest.raises(InsufficientStockError) as exc_info:
            await ledger.reserve(textbook.id, 3)

        assert exc_info.value.details == {"textbook_id": textbook.id, "requested": 3, "available": 2}
        counters = await ledger.get_counters(textbook.id)
        assert counters.available == 2
        assert counters.version == textbook.version

    async def test_reserve_exact_remaining(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook(quantity=4)
        ledger = InventoryLedger(db_session)

        assert await ledger.reserve(textbook.id, 4) == 0

    async def test_release_restores_available(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session)
        await ledger.reserve(textbook.id, 5)

        available = await ledger.release(textbook.id, 2)

        assert available == 7
        assert (await ledger.get_counters(textbook.id)).quantity == 10

    async def test_release_above_total_is_violation(
        self, db_session: AsyncSession, make_textbook, caplog
    ):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session)
        await ledger.reserve(textbook.id, 1)

        with caplog.at_level(logging.ERROR):
            with pytest.raises(InventoryInvariantViolation):
                await ledger.release(textbook.id, 2)

        assert "invariant violation" in caplog.text
        assert (await ledger.get_counters(textbook.id)).available == 9

    @pytest.mark.parametrize("quantity", [0, -1])
    async def test_non_positive_quantity(self, db_session: AsyncSession, make_textbook, quantity):
        textbook = await make_textbook()

        with pytest.raises(ValidationError):
            await InventoryLedger(db_session).reserve(textbook.id, quantity)

    async def test_unknown_textbook(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await InventoryLedger(db_session).reserve(999, 1)


class TestWriteOff:
    async def test_write_off_reduces_total_only(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session)
        await ledger.reserve(textbook.id, 3)

        total = await ledger.write_off(textbook.id, 2)

        counters = await ledger.get_counters(textbook.id)
        assert total == 8
        assert counters.available == 7
        assert counters.issued == 1

    async def test_write_off_of_shelf_copies_is_violation(
        self, db_session: AsyncSession, make_textbook
    ):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session)
        await ledger.reserve(textbook.id, 1)

        with pytest.raises(InventoryInvariantViolation):
            await ledger.write_off(textbook.id, 2)

    async def test_reinstate_undoes_write_off(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session)
        await ledger.reserve(textbook.id, 3)
        await ledger.write_off(textbook.id, 3)

        total = await ledger.reinstate(textbook.id, 3)

        counters = await ledger.get_counters(textbook.id)
        assert total == 10
        assert counters.available == 7


class TestAdjust:
    async def test_adjust_moves_total_and_available(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session)
        await ledger.reserve(textbook.id, 4)

        counters = await ledger.adjust(textbook.id, -6, notes="Flood damage")

        assert counters.quantity == 4
        assert counters.available == 0
        assert counters.issued == 4

    async def test_adjust_cannot_touch_issued_copies(
        self, db_session: AsyncSession, make_textbook
    ):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session)
        await ledger.reserve(textbook.id, 4)

        with pytest.raises(ValidationError) as exc_info:
            await ledger.adjust(textbook.id, -7)
        assert "4 are issued" in exc_info.value.message

    async def test_adjust_zero_rejected(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook()

        with pytest.raises(ValidationError):
            await InventoryLedger(db_session).adjust(textbook.id, 0)


class TestMovements:
    async def test_every_change_is_recorded(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session)

        await ledger.reserve(textbook.id, 3, reference_type="textbook_indent", reference_id=42)
        await ledger.release(textbook.id, 1, reference_type="textbook_indent", reference_id=42)
        await ledger.write_off(textbook.id, 2, reference_type="textbook_indent", reference_id=42)
        await ledger.adjust(textbook.id, 5, notes="New delivery")

        movements = await _movements(db_session, textbook.id)
        assert [m.movement_type for m in movements] == [
            MovementType.RECEIPT,
            MovementType.RESERVE,
            MovementType.RELEASE,
            MovementType.WRITE_OFF,
            MovementType.ADJUSTMENT,
        ]
        assert [(m.quantity_delta, m.available_delta) for m in movements] == [
            (10, 10),
            (0, -3),
            (0, 1),
            (-2, 0),
            (5, 5),
        ]
        last = movements[-1]
        assert (last.quantity_after, last.available_after) == (13, 13)
        assert movements[1].reference_id == 42
        assert len(ledger.recorded_movements) == 4

    async def test_failed_change_records_nothing(self, db_session: AsyncSession, make_textbook):
        textbook = await make_textbook(quantity=1)
        ledger = InventoryLedger(db_session)

        with pytest.raises(InsufficientStockError):
            await ledger.reserve(textbook.id, 2)

        assert ledger.recorded_movements == []
        assert len(await _movements(db_session, textbook.id)) == 1


class TestCompareAndSwap:
    async def _bump_version(self, db: AsyncSession, textbook_id: int) -> None:
        await db.execute(
            update(Textbook)
            .where(Textbook.id == textbook_id)
            .values(version=Textbook.version + 1)
            .execution_options(synchronize_session=False)
        )

    async def test_retries_after_lost_race(
        self, db_session: AsyncSession, make_textbook, monkeypatch, caplog
    ):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session, max_retries=3)
        read_counters = ledger.get_counters
        reads = 0

        async def racing_read(textbook_id: int):
            nonlocal reads
            reads += 1
            counters = await read_counters(textbook_id)
            if reads == 1:
                # Another writer commits between our read and our write
                await self._bump_version(db_session, textbook_id)
            return counters

        monkeypatch.setattr(ledger, "get_counters", racing_read)

        with caplog.at_level(logging.WARNING):
            available = await ledger.reserve(textbook.id, 2)

        assert available == 8
        assert reads == 2
        assert "changed concurrently" in caplog.text
        counters = await read_counters(textbook.id)
        assert counters.version == textbook.version + 2

    async def test_gives_up_after_max_retries(
        self, db_session: AsyncSession, make_textbook, monkeypatch
    ):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session, max_retries=3)
        read_counters = ledger.get_counters

        async def always_stale(textbook_id: int):
            counters = await read_counters(textbook_id)
            await self._bump_version(db_session, textbook_id)
            return counters

        monkeypatch.setattr(ledger, "get_counters", always_stale)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await ledger.reserve(textbook.id, 2)

        assert exc_info.value.retryable is True
        assert exc_info.value.details["attempts"] == 3
        assert (await read_counters(textbook.id)).available == 10
        assert ledger.recorded_movements == []

    async def test_single_attempt_is_honoured(
        self, db_session: AsyncSession, make_textbook, monkeypatch
    ):
        textbook = await make_textbook(quantity=10)
        ledger = InventoryLedger(db_session, max_retries=1)
        read_counters = ledger.get_counters

        async def stale_once(textbook_id: int):
            counters = await read_counters(textbook_id)
            await self._bump_version(db_session, textbook_id)
            return counters

        monkeypatch.setattr(ledger, "get_counters", stale_once)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await ledger.reserve(textbook.id, 2)

        assert exc_info.value.details["attempts"] == 1

    async def test_zero_retries_rejected(self, db_session: AsyncSession):
        with pytest.raises(ValueError):
            InventoryLedger(db_session, max_retries=0)

    async def test_default_retries_from_settings(self, db_session: AsyncSession):
        assert InventoryLedger(db_session).max_retries == settings.ledger_max_retries
