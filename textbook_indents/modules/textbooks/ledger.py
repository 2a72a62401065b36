"""Inventory ledger: the only code allowed to change textbook stock counters."""

import logging
from dataclasses import dataclass

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
from textbook_indents.modules.textbooks.models import MovementType, Textbook, TextbookMovement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockCounters:
    """Committed counters of one textbook as read by the ledger."""

    textbook_id: int
    quantity: int
    available: int
    version: int

    @property
    def issued(self) -> int:
        return self.quantity - self.available


class InventoryLedger:
    """Applies reserve/release/write-off deltas to textbook counters.

    Every change is an optimistic compare-and-swap on ``Textbook.version``:
    read the counters, compute the new values, and write them only if no
    other writer bumped the version in between. A lost race is retried up to
    ``max_retries`` times, then surfaces as ``ConcurrencyConflictError``.
    Each successful change appends a ``TextbookMovement``.

    The ledger never commits; callers own the transaction.
    """

    def __init__(self, db: AsyncSession, max_retries: int | None = None):
        self.db = db
        self.max_retries = settings.ledger_max_retries if max_retries is None else max_retries
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        # Movements written through this ledger, oldest first
        self.recorded_movements: list[TextbookMovement] = []

    async def get_counters(self, textbook_id: int) -> StockCounters:
        """Read counters straight from the database, bypassing the identity map."""
        row = (
            await self.db.execute(
                select(Textbook.quantity, Textbook.available, Textbook.version).where(
                    Textbook.id == textbook_id
                )
            )
        ).one_or_none()
        if row is None:
            raise NotFoundError("Textbook", textbook_id)
        return StockCounters(
            textbook_id=textbook_id,
            quantity=row.quantity,
            available=row.available,
            version=row.version,
        )

    async def reserve(
        self,
        textbook_id: int,
        quantity: int,
        *,
        reference_type: str | None = None,
        reference_id: int | None = None,
        created_by_id: int | None = None,
        notes: str | None = None,
    ) -> int:
        """Take ``quantity`` copies off the shelf. Returns the new available count."""

        def apply(c: StockCounters) -> tuple[int, int]:
            if c.available < quantity:
                raise InsufficientStockError(textbook_id, quantity, c.available)
            return c.quantity, c.available - quantity

        counters = await self._apply(
            textbook_id,
            quantity,
            MovementType.RESERVE,
            apply,
            reference_type=reference_type,
            reference_id=reference_id,
            created_by_id=created_by_id,
            notes=notes,
        )
        return counters.available

    async def release(
        self,
        textbook_id: int,
        quantity: int,
        *,
        reference_type: str | None = None,
        reference_id: int | None = None,
        created_by_id: int | None = None,
        notes: str | None = None,
    ) -> int:
        """Put ``quantity`` reserved copies back. Returns the new available count."""

        def apply(c: StockCounters) -> tuple[int, int]:
            if c.available + quantity > c.quantity:
                raise self._violation(
                    textbook_id,
                    f"release of {quantity} would raise available to "
                    f"{c.available + quantity} above total {c.quantity}",
                )
            return c.quantity, c.available + quantity

        counters = await self._apply(
            textbook_id,
            quantity,
            MovementType.RELEASE,
            apply,
            reference_type=reference_type,
            reference_id=reference_id,
            created_by_id=created_by_id,
            notes=notes,
        )
        return counters.available

    async def write_off(
        self,
        textbook_id: int,
        quantity: int,
        *,
        reference_type: str | None = None,
        reference_id: int | None = None,
        created_by_id: int | None = None,
        notes: str | None = None,
    ) -> int:
        """Remove ``quantity`` issued copies from the total for good. Returns the new total."""

        def apply(c: StockCounters) -> tuple[int, int]:
            if c.quantity - quantity < c.available:
                raise self._violation(
                    textbook_id,
                    f"write-off of {quantity} would drop total to "
                    f"{c.quantity - quantity} below available {c.available}",
                )
            return c.quantity - quantity, c.available

        counters = await self._apply(
            textbook_id,
            quantity,
            MovementType.WRITE_OFF,
            apply,
            reference_type=reference_type,
            reference_id=reference_id,
            created_by_id=created_by_id,
            notes=notes,
        )
        return counters.quantity

    async def reinstate(
        self,
        textbook_id: int,
        quantity: int,
        *,
        reference_type: str | None = None,
        reference_id: int | None = None,
        created_by_id: int | None = None,
        notes: str | None = None,
    ) -> int:
        """Undo a write-off: add ``quantity`` back to the total as issued copies."""
        counters = await self._apply(
            textbook_id,
            quantity,
            MovementType.REINSTATE,
            lambda c: (c.quantity + quantity, c.available),
            reference_type=reference_type,
            reference_id=reference_id,
            created_by_id=created_by_id,
            notes=notes,
        )
        return counters.quantity

    async def adjust(
        self,
        textbook_id: int,
        delta: int,
        *,
        created_by_id: int | None = None,
        notes: str | None = None,
    ) -> StockCounters:
        """Administrative change of the shelf stock: total and available move together.

        Copies currently held by indents can never be adjusted away.
        """
        if delta == 0:
            raise ValidationError("Adjustment must be non-zero", field="adjustment")

        def apply(c: StockCounters) -> tuple[int, int]:
            if c.available + delta < 0:
                raise ValidationError(
                    f"Adjustment of {delta} exceeds the {c.available} copies on the shelf "
                    f"({c.issued} are issued)",
                    field="adjustment",
                )
            return c.quantity + delta, c.available + delta

        return await self._apply(
            textbook_id,
            abs(delta),
            MovementType.ADJUSTMENT,
            apply,
            reference_type="adjustment",
            created_by_id=created_by_id,
            notes=notes,
        )

    async def receive(
        self, textbook: Textbook, created_by_id: int | None = None, notes: str | None = None
    ) -> TextbookMovement:
        """Log the opening stock of a newly catalogued title."""
        movement = TextbookMovement(
            textbook_id=textbook.id,
            movement_type=MovementType.RECEIPT.value,
            quantity_delta=textbook.quantity,
            available_delta=textbook.available,
            quantity_after=textbook.quantity,
            available_after=textbook.available,
            reference_type="catalog",
            notes=notes,
            created_by_id=created_by_id,
        )
        self.db.add(movement)
        self.recorded_movements.append(movement)
        await self.db.flush()
        return movement

    # --- Helpers ---

    async def _apply(
        self,
        textbook_id: int,
        quantity: int,
        movement_type: MovementType,
        apply,
        *,
        reference_type: str | None = None,
        reference_id: int | None = None,
        created_by_id: int | None = None,
        notes: str | None = None,
    ) -> StockCounters:
        """Compare-and-swap loop shared by all counter changes.

        ``apply`` maps the current counters to the new ``(quantity, available)``
        or raises; it is re-evaluated on every attempt against fresh counters.
        """
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Quantity must be a positive integer", field="quantity")

        for attempt in range(1, self.max_retries + 1):
            current = await self.get_counters(textbook_id)
            new_quantity, new_available = apply(current)
            if new_available < 0 or new_quantity < 0 or new_available > new_quantity:
                raise self._violation(
                    textbook_id,
                    f"{movement_type.value} would leave available={new_available}, "
                    f"quantity={new_quantity}",
                )

            result = await self.db.execute(
                update(Textbook)
                .where(Textbook.id == textbook_id, Textbook.version == current.version)
                .values(
                    quantity=new_quantity,
                    available=new_available,
                    version=current.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                movement = TextbookMovement(
                    textbook_id=textbook_id,
                    movement_type=movement_type.value,
                    quantity_delta=new_quantity - current.quantity,
                    available_delta=new_available - current.available,
                    quantity_after=new_quantity,
                    available_after=new_available,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    notes=notes,
                    created_by_id=created_by_id,
                )
                self.db.add(movement)
                self.recorded_movements.append(movement)
                await self.db.flush()
                return StockCounters(textbook_id, new_quantity, new_available, current.version + 1)

            logger.warning(
                "Stock of textbook %s changed concurrently during %s (attempt %d/%d)",
                textbook_id,
                movement_type.value,
                attempt,
                self.max_retries,
            )

        raise ConcurrencyConflictError("Textbook", textbook_id, self.max_retries)

    @staticmethod
    def _violation(textbook_id: int, message: str) -> InventoryInvariantViolation:
        logger.error("Inventory invariant violation on textbook %s: %s", textbook_id, message)
        return InventoryInvariantViolation(textbook_id, message)
