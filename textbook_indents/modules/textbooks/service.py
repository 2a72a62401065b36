"""Service for Textbooks module (catalog administration)."""

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.audit.service import AuditAction, AuditService
from textbook_indents.core.config import settings
from textbook_indents.core.exceptions import DuplicateError, NotFoundError, ValidationError
from textbook_indents.modules.indents.models import TextbookIndentItem
from textbook_indents.modules.textbooks.ledger import InventoryLedger
from textbook_indents.modules.textbooks.models import AvailabilityStatus, Textbook, TextbookMovement
from textbook_indents.modules.textbooks.schemas import (
    GroupStockStats,
    SortOrder,
    TextbookCreate,
    TextbookFilters,
    TextbookStats,
    TextbookUpdate,
)
from textbook_indents.shared.utils.money import ZERO, round_money

logger = logging.getLogger(__name__)


class TextbookService:
    """Catalog CRUD. Stock counters change only through ``InventoryLedger``."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.ledger = InventoryLedger(db)

    async def create_textbook(
        self, data: TextbookCreate, created_by_id: int, branch_id: int | None = None
    ) -> Textbook:
        """Catalog a title with its opening stock; all copies start on the shelf."""
        branch_id = branch_id if branch_id is not None else data.branch_id
        if branch_id is None:
            raise ValidationError("Branch is required", field="branch_id")

        existing = await self.db.execute(
            select(Textbook.id).where(
                Textbook.branch_id == branch_id,
                Textbook.academic_year == data.academic_year,
                Textbook.book_code == data.book_code,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateError("Textbook", "book_code", data.book_code)

        textbook = Textbook(
            branch_id=branch_id,
            academic_year=data.academic_year,
            book_code=data.book_code,
            title=data.title,
            subject=data.subject,
            class_name=data.class_name,
            publisher=data.publisher,
            price=round_money(data.price),
            quantity=data.quantity,
            available=data.quantity,
            version=0,
        )
        self.db.add(textbook)
        await self.db.flush()

        if textbook.quantity > 0:
            await self.ledger.receive(textbook, created_by_id=created_by_id)

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="Textbook",
            entity_id=textbook.id,
            user_id=created_by_id,
            entity_identifier=textbook.book_code,
            new_values={
                "title": textbook.title,
                "price": str(textbook.price),
                "quantity": textbook.quantity,
            },
        )

        await self.db.commit()
        return await self.get_by_id(textbook.id)

    async def get_by_id(self, textbook_id: int, branch_id: int | None = None) -> Textbook:
        """Get textbook by ID with counters re-read from the database."""
        query = (
            select(Textbook)
            .where(Textbook.id == textbook_id)
            .execution_options(populate_existing=True)
        )
        if branch_id is not None:
            query = query.where(Textbook.branch_id == branch_id)
        textbook = (await self.db.execute(query)).scalar_one_or_none()
        if not textbook:
            raise NotFoundError("Textbook", textbook_id)
        return textbook

    async def list_textbooks(
        self, filters: TextbookFilters, branch_id: int | None = None
    ) -> tuple[list[Textbook], int]:
        """List textbooks with filters."""
        query = select(Textbook)

        if branch_id is not None:
            query = query.where(Textbook.branch_id == branch_id)
        if filters.academic_year:
            query = query.where(Textbook.academic_year == filters.academic_year)
        if filters.class_name:
            query = query.where(Textbook.class_name == filters.class_name)
        if filters.subject:
            query = query.where(Textbook.subject == filters.subject)
        if filters.availability is not None:
            query = query.where(self._availability_clause(filters.availability))
        if filters.search:
            search_term = f"%{filters.search}%"
            query = query.where(
                or_(
                    Textbook.title.ilike(search_term),
                    Textbook.book_code.ilike(search_term),
                    Textbook.publisher.ilike(search_term),
                )
            )

        # Count total
        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        sort_column = getattr(Textbook, filters.sort_by.value)
        order = sort_column.desc() if filters.sort_order == SortOrder.DESC else sort_column.asc()
        offset = (filters.page - 1) * filters.limit
        query = (
            query.order_by(order, Textbook.id)
            .offset(offset)
            .limit(filters.limit)
            .execution_options(populate_existing=True)
        )

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def update_textbook(
        self,
        textbook_id: int,
        data: TextbookUpdate,
        updated_by_id: int,
        branch_id: int | None = None,
    ) -> Textbook:
        """Update catalog fields. Existing indents keep their price snapshots."""
        textbook = await self.get_by_id(textbook_id, branch_id)
        update_data = data.model_dump(exclude_unset=True)
        new_quantity = update_data.pop("quantity", None)

        old_values = {}
        new_values = {}
        for field, value in update_data.items():
            if value is None:
                continue
            if field == "price":
                value = round_money(value)
            current = getattr(textbook, field)
            if current != value:
                old_values[field] = str(current) if isinstance(current, Decimal) else current
                new_values[field] = str(value) if isinstance(value, Decimal) else value
                setattr(textbook, field, value)
        await self.db.flush()

        if new_quantity is not None and new_quantity != textbook.quantity:
            counters = await self.ledger.get_counters(textbook_id)
            delta = new_quantity - counters.quantity
            if delta:
                await self.ledger.adjust(
                    textbook_id,
                    delta,
                    created_by_id=updated_by_id,
                    notes="Total quantity changed from catalog",
                )
                old_values["quantity"] = counters.quantity
                new_values["quantity"] = new_quantity

        if new_values:
            await self.audit.log(
                action=AuditAction.UPDATE,
                entity_type="Textbook",
                entity_id=textbook.id,
                user_id=updated_by_id,
                entity_identifier=textbook.book_code,
                old_values=old_values,
                new_values=new_values,
            )

        await self.db.commit()
        return await self.get_by_id(textbook_id)

    async def adjust_stock(
        self,
        textbook_id: int,
        adjustment: int,
        reason: str,
        adjusted_by_id: int,
        branch_id: int | None = None,
    ) -> Textbook:
        """Add or remove shelf copies (new delivery, stock count correction)."""
        textbook = await self.get_by_id(textbook_id, branch_id)
        before = await self.ledger.get_counters(textbook.id)
        after = await self.ledger.adjust(
            textbook.id, adjustment, created_by_id=adjusted_by_id, notes=reason
        )

        await self.audit.log(
            action=AuditAction.ADJUST_STOCK,
            entity_type="Textbook",
            entity_id=textbook.id,
            user_id=adjusted_by_id,
            entity_identifier=textbook.book_code,
            old_values={"quantity": before.quantity, "available": before.available},
            new_values={"quantity": after.quantity, "available": after.available},
            comment=reason,
        )
        logger.info(
            "Stock of textbook %s adjusted by %+d: total %d, available %d",
            textbook.book_code,
            adjustment,
            after.quantity,
            after.available,
        )

        await self.db.commit()
        return await self.get_by_id(textbook_id)

    async def delete_textbook(
        self, textbook_id: int, deleted_by_id: int, branch_id: int | None = None
    ) -> None:
        """Delete a title that has no copies out and no indent history."""
        textbook = await self.get_by_id(textbook_id, branch_id)
        if textbook.issued_count > 0:
            raise ValidationError(
                f"Cannot delete textbook with {textbook.issued_count} copies issued"
            )

        referenced = await self.db.execute(
            select(func.count(TextbookIndentItem.id)).where(
                TextbookIndentItem.textbook_id == textbook_id
            )
        )
        if referenced.scalar():
            raise ValidationError("Cannot delete textbook referenced by indents")

        await self.audit.log(
            action=AuditAction.DELETE,
            entity_type="Textbook",
            entity_id=textbook.id,
            user_id=deleted_by_id,
            entity_identifier=textbook.book_code,
            old_values={"title": textbook.title, "quantity": textbook.quantity},
        )
        await self.db.execute(
            delete(TextbookMovement).where(TextbookMovement.textbook_id == textbook_id)
        )
        await self.db.delete(textbook)
        await self.db.commit()

    async def get_movements(
        self,
        textbook_id: int,
        branch_id: int | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[TextbookMovement], int]:
        """Stock history of one textbook, newest first."""
        await self.get_by_id(textbook_id, branch_id)
        query = select(TextbookMovement).where(TextbookMovement.textbook_id == textbook_id)

        total = (
            await self.db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar() or 0

        query = (
            query.order_by(TextbookMovement.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_stats(
        self, branch_id: int | None = None, academic_year: str | None = None
    ) -> TextbookStats:
        """Stock totals, overall and per class and subject."""
        query = select(
            Textbook.class_name,
            Textbook.subject,
            Textbook.price,
            Textbook.quantity,
            Textbook.available,
        )
        if branch_id is not None:
            query = query.where(Textbook.branch_id == branch_id)
        if academic_year:
            query = query.where(Textbook.academic_year == academic_year)
        rows = (await self.db.execute(query)).all()

        total_value = ZERO
        available_value = ZERO
        out_of_stock = 0
        low_stock = 0
        by_class: dict[str, list[int]] = defaultdict(lambda: [0, 0, 0])
        by_subject: dict[str, list[int]] = defaultdict(lambda: [0, 0, 0])

        for row in rows:
            price = Decimal(str(row.price))
            total_value += price * row.quantity
            available_value += price * row.available
            if row.available == 0:
                out_of_stock += 1
            elif row.available <= row.quantity * settings.low_stock_ratio:
                low_stock += 1
            for group in (by_class[row.class_name], by_subject[row.subject]):
                group[0] += 1
                group[1] += row.quantity
                group[2] += row.available

        def _group(values: list[int]) -> GroupStockStats:
            titles, total_books, available_books = values
            return GroupStockStats(
                titles=titles,
                total_books=total_books,
                available_books=available_books,
                issued_books=total_books - available_books,
            )

        total_books = sum(row.quantity for row in rows)
        available_books = sum(row.available for row in rows)
        return TextbookStats(
            total_titles=len(rows),
            total_books=total_books,
            available_books=available_books,
            issued_books=total_books - available_books,
            out_of_stock=out_of_stock,
            low_stock=low_stock,
            total_value=round_money(total_value),
            available_value=round_money(available_value),
            by_class={name: _group(values) for name, values in sorted(by_class.items())},
            by_subject={name: _group(values) for name, values in sorted(by_subject.items())},
        )

    @staticmethod
    def _availability_clause(availability: AvailabilityStatus):
        low_threshold = Textbook.quantity * settings.low_stock_ratio
        if availability == AvailabilityStatus.OUT_OF_STOCK:
            return Textbook.available == 0
        if availability == AvailabilityStatus.LOW_STOCK:
            return and_(Textbook.available > 0, Textbook.available <= low_threshold)
        return Textbook.available > low_threshold
