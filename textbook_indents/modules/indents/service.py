"""Service for Textbook Indents module: the indent lifecycle."""

import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from textbook_indents.core.audit.service import AuditAction, AuditService
from textbook_indents.core.auth.models import User
from textbook_indents.core.config import settings
from textbook_indents.core.documents.number_generator import DocumentNumberGenerator
from textbook_indents.core.exceptions import (
    InvalidQuantityError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from textbook_indents.modules.indents.models import (
    CANCELLABLE_STATUSES,
    RECEIPT_STATUSES,
    REISSUABLE_CONDITIONS,
    RETURNABLE_STATUSES,
    IndentStatus,
    ItemCondition,
    TextbookIndent,
    TextbookIndentItem,
    TextbookIndentReturn,
)
from textbook_indents.modules.indents.schemas import (
    ClassIndentStats,
    IndentCreate,
    IndentFilters,
    IndentReceipt,
    IndentStats,
    IndentUpdate,
    ReceiptLine,
    ReturnLine,
    SortOrder,
)
from textbook_indents.modules.payments.reconciliation import (
    OverpaymentWarning,
    PaymentMethod,
    PaymentState,
    reconcile_payment,
)
from textbook_indents.modules.students.service import StudentService
from textbook_indents.modules.textbooks.ledger import InventoryLedger
from textbook_indents.modules.textbooks.models import MovementType, Textbook
from textbook_indents.shared.utils.money import ZERO, line_total, round_money

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "textbook_indent"

WriteOffHook = Callable[[TextbookIndent, TextbookIndentItem, int, ItemCondition], None]


def no_write_off_penalty(
    indent: TextbookIndent, item: TextbookIndentItem, quantity: int, condition: ItemCondition
) -> None:
    """Default policy: lost or damaged copies leave the balance untouched."""


class IndentService:
    """
    Indent lifecycle: create (reserve), issue, return, cancel, payments.

    All stock effects go through ``InventoryLedger``. Multi-line operations
    are all-or-nothing: if a ledger call fails part-way, the calls already
    applied are reversed before the error is raised.
    """

    def __init__(self, db: AsyncSession, on_write_off: WriteOffHook | None = None):
        self.db = db
        self.audit = AuditService(db)
        self.ledger = InventoryLedger(db)
        self.students = StudentService(db)
        self.on_write_off = on_write_off or no_write_off_penalty

    # --- Create ---

    async def create_indent(
        self, data: IndentCreate, created_by_id: int, branch_id: int | None = None
    ) -> tuple[TextbookIndent, list[OverpaymentWarning]]:
        """
        Create an indent in ``pending`` and reserve its stock.

        Returns the indent and any non-fatal warnings (overpayment clamp).

        Raises:
            ValidationError: empty or malformed item list, negative payment.
            NotFoundError: unknown student or textbook.
            InsufficientStockError: a line cannot be reserved; nothing stays reserved.
            ConcurrencyConflictError: the ledger kept losing the race; retryable.
        """
        self._validate_lines(data)
        student = await self.students.get_by_id(data.student_id, branch_id)
        textbooks = await self._load_textbooks(
            [line.textbook_id for line in data.items], student.branch_id
        )

        total = sum(
            (line_total(textbooks[line.textbook_id].price, line.quantity) for line in data.items),
            ZERO,
        )
        payment = reconcile_payment(total, data.paid_amount)

        first_movement = len(self.ledger.recorded_movements)
        reserved: list[tuple[int, int]] = []
        try:
            for line in data.items:
                await self.ledger.reserve(
                    line.textbook_id,
                    line.quantity,
                    reference_type=REFERENCE_TYPE,
                    created_by_id=created_by_id,
                )
                reserved.append((line.textbook_id, line.quantity))

            indent_number = await DocumentNumberGenerator(self.db).generate(
                settings.indent_number_prefix
            )
            indent = TextbookIndent(
                indent_number=indent_number,
                branch_id=student.branch_id,
                academic_year=data.academic_year,
                student_id=student.id,
                student_name=student.full_name,
                admission_number=student.admission_number,
                class_name=student.class_name,
                division=student.division,
                issue_date=data.issue_date or date.today(),
                expected_return_date=data.expected_return_date,
                total_amount=payment.total_amount,
                paid_amount=payment.paid_amount,
                payment_method=PaymentMethod(data.payment_method).value,
                status=IndentStatus.PENDING.value,
                remarks=data.remarks,
                created_by_id=created_by_id,
            )
            for position, line in enumerate(data.items):
                textbook = textbooks[line.textbook_id]
                indent.items.append(
                    TextbookIndentItem(
                        position=position,
                        textbook_id=textbook.id,
                        book_code=textbook.book_code,
                        title=textbook.title,
                        subject=textbook.subject,
                        publisher=textbook.publisher,
                        unit_price=textbook.price,
                        quantity=line.quantity,
                    )
                )
            self.db.add(indent)
            await self.db.flush()
        except Exception as exc:
            await self._undo_reservations(reserved, created_by_id, exc)
            raise

        for movement in self.ledger.recorded_movements[first_movement:]:
            movement.reference_id = indent.id
            movement.notes = f"Reserved for {indent.indent_number}"

        await self.audit.log(
            action=AuditAction.CREATE_INDENT,
            entity_type="TextbookIndent",
            entity_id=indent.id,
            user_id=created_by_id,
            entity_identifier=indent.indent_number,
            new_values={
                "student_id": indent.student_id,
                "items": [
                    {"textbook_id": textbook_id, "quantity": quantity}
                    for textbook_id, quantity in reserved
                ],
                "total_amount": str(indent.total_amount),
                "paid_amount": str(indent.paid_amount),
            },
        )
        warnings = self._collect_warnings(indent_number, payment)

        await self.db.commit()
        logger.info(
            "Indent %s created for student %s: %d line(s), total %s",
            indent_number,
            student.admission_number,
            len(reserved),
            payment.total_amount,
        )
        return await self.get_by_id(indent.id), warnings

    # --- Issue ---

    async def issue_indent(
        self, indent_id: int, issued_by_id: int, branch_id: int | None = None
    ) -> TextbookIndent:
        """Confirm physical handover. Stock was already reserved at creation."""
        indent = await self.get_by_id(indent_id, branch_id)
        if indent.status != IndentStatus.PENDING.value:
            raise InvalidTransitionError("indent", indent.status, "issue")

        indent.status = IndentStatus.ISSUED.value
        indent.issued_at = datetime.now(timezone.utc)
        indent.issued_by_id = issued_by_id
        if indent.expected_return_date is None and settings.default_return_days:
            indent.expected_return_date = date.today() + timedelta(
                days=settings.default_return_days
            )

        await self.audit.log(
            action=AuditAction.ISSUE_INDENT,
            entity_type="TextbookIndent",
            entity_id=indent.id,
            user_id=issued_by_id,
            entity_identifier=indent.indent_number,
            old_values={"status": IndentStatus.PENDING.value},
            new_values={"status": indent.status},
        )
        await self.db.commit()
        logger.info("Indent %s issued", indent.indent_number)
        return await self.get_by_id(indent.id)

    # --- Return ---

    async def return_items(
        self,
        indent_id: int,
        lines: list[ReturnLine],
        processed_by_id: int,
        branch_id: int | None = None,
    ) -> TextbookIndent:
        """
        Process one return event.

        Good and fair copies go back on the shelf; poor, damaged and lost
        copies are written off. Every line is validated before any stock
        moves, and a failure part-way through reverses what was applied.
        """
        indent = await self.get_by_id(indent_id, branch_id)
        if indent.status not in RETURNABLE_STATUSES:
            raise InvalidTransitionError("indent", indent.status, "return items on")
        if not lines:
            raise ValidationError("At least one return line is required", field="lines")

        items_by_id = {item.id: item for item in indent.items}
        returning: dict[int, int] = defaultdict(int)
        for line in lines:
            item = items_by_id.get(line.item_id)
            if item is None:
                raise NotFoundError("Indent item", line.item_id)
            if not isinstance(line.quantity, int) or line.quantity <= 0:
                raise InvalidQuantityError(
                    "Returned quantity must be a positive integer", field="quantity"
                )
            returning[item.id] += line.quantity
            if item.returned_quantity + returning[item.id] > item.quantity:
                raise InvalidQuantityError(
                    f"Cannot return {returning[item.id]} of '{item.title}': "
                    f"only {item.outstanding_quantity} outstanding",
                    field="quantity",
                )

        # Stock first: item and history rows are untouched until every ledger call succeeded
        applied: list[tuple[MovementType, int, int]] = []
        try:
            for line in lines:
                item = items_by_id[line.item_id]
                condition = ItemCondition(line.condition)
                notes = f"{indent.indent_number}: returned {condition.value}"
                if condition not in REISSUABLE_CONDITIONS:
                    await self.ledger.write_off(
                        item.textbook_id,
                        line.quantity,
                        reference_type=REFERENCE_TYPE,
                        reference_id=indent.id,
                        created_by_id=processed_by_id,
                        notes=notes,
                    )
                    applied.append((MovementType.WRITE_OFF, item.textbook_id, line.quantity))
                else:
                    await self.ledger.release(
                        item.textbook_id,
                        line.quantity,
                        reference_type=REFERENCE_TYPE,
                        reference_id=indent.id,
                        created_by_id=processed_by_id,
                        notes=notes,
                    )
                    applied.append((MovementType.RELEASE, item.textbook_id, line.quantity))
        except Exception as exc:
            await self._reverse_movements(applied, processed_by_id, indent.id, exc)
            raise

        today = date.today()
        old_status = indent.status
        event_condition: dict[int, ItemCondition] = {}
        try:
            for line in lines:
                item = items_by_id[line.item_id]
                condition = ItemCondition(line.condition)
                written_off = condition not in REISSUABLE_CONDITIONS
                item.returned_quantity += line.quantity
                if written_off:
                    item.written_off_quantity += line.quantity
                # Lines of one event are simultaneous; the item keeps the most severe
                previous = event_condition.get(item.id)
                if previous is None or condition.severity > previous.severity:
                    event_condition[item.id] = condition
                item.condition = event_condition[item.id].value
                item.return_date = today
                if line.remarks:
                    item.remarks = line.remarks
                indent.returns.append(
                    TextbookIndentReturn(
                        item_id=item.id,
                        quantity=line.quantity,
                        condition=condition.value,
                        written_off=written_off,
                        remarks=line.remarks,
                        processed_by_id=processed_by_id,
                    )
                )

            indent.status = (
                IndentStatus.RETURNED.value
                if indent.is_fully_resolved
                else IndentStatus.PARTIALLY_RETURNED.value
            )
            await self.db.flush()
        except Exception:
            logger.exception("Recording return for indent %s failed", indent.indent_number)
            await self.db.rollback()
            raise

        for line in lines:
            condition = ItemCondition(line.condition)
            if condition not in REISSUABLE_CONDITIONS:
                self.on_write_off(indent, items_by_id[line.item_id], line.quantity, condition)

        await self.audit.log(
            action=AuditAction.RETURN_ITEMS,
            entity_type="TextbookIndent",
            entity_id=indent.id,
            user_id=processed_by_id,
            entity_identifier=indent.indent_number,
            old_values={"status": old_status},
            new_values={
                "status": indent.status,
                "lines": [
                    {
                        "item_id": line.item_id,
                        "quantity": line.quantity,
                        "condition": ItemCondition(line.condition).value,
                    }
                    for line in lines
                ],
            },
        )
        await self.db.commit()
        logger.info(
            "Indent %s: %d cop(ies) returned, status %s",
            indent.indent_number,
            sum(line.quantity for line in lines),
            indent.status,
        )
        return await self.get_by_id(indent.id)

    # --- Cancel ---

    async def cancel_indent(
        self,
        indent_id: int,
        cancelled_by_id: int,
        reason: str | None = None,
        branch_id: int | None = None,
    ) -> TextbookIndent:
        """Cancel a pending or issued indent and release everything it holds."""
        indent = await self.get_by_id(indent_id, branch_id)
        if indent.status not in CANCELLABLE_STATUSES:
            raise InvalidTransitionError("indent", indent.status, "cancel")
        if indent.has_returns:
            raise InvalidTransitionError(
                "indent", indent.status, "cancel", reason="items have already been returned"
            )

        released: list[tuple[int, int]] = []
        try:
            for item in indent.items:
                if item.outstanding_quantity == 0:
                    continue
                await self.ledger.release(
                    item.textbook_id,
                    item.outstanding_quantity,
                    reference_type=REFERENCE_TYPE,
                    reference_id=indent.id,
                    created_by_id=cancelled_by_id,
                    notes=f"{indent.indent_number} cancelled",
                )
                released.append((item.textbook_id, item.outstanding_quantity))
        except Exception as exc:
            await self._reverse_movements(
                [(MovementType.RELEASE, textbook_id, qty) for textbook_id, qty in released],
                cancelled_by_id,
                indent.id,
                exc,
            )
            raise

        old_status = indent.status
        indent.status = IndentStatus.CANCELLED.value
        indent.cancelled_at = datetime.now(timezone.utc)
        indent.cancelled_by_id = cancelled_by_id
        indent.cancel_reason = reason

        await self.audit.log(
            action=AuditAction.CANCEL_INDENT,
            entity_type="TextbookIndent",
            entity_id=indent.id,
            user_id=cancelled_by_id,
            entity_identifier=indent.indent_number,
            old_values={"status": old_status},
            new_values={"status": indent.status},
            comment=reason,
        )
        await self.db.commit()
        logger.info(
            "Indent %s cancelled, %d cop(ies) released",
            indent.indent_number,
            sum(qty for _, qty in released),
        )
        return await self.get_by_id(indent.id)

    # --- Payments ---

    async def record_payment(
        self,
        indent_id: int,
        amount: Decimal,
        recorded_by_id: int,
        payment_method: PaymentMethod | None = None,
        branch_id: int | None = None,
    ) -> tuple[TextbookIndent, list[OverpaymentWarning]]:
        """Add a settlement to the paid amount, clamped at the total."""
        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", field="amount")

        indent = await self.get_by_id(indent_id, branch_id)
        if indent.status == IndentStatus.CANCELLED.value:
            raise InvalidTransitionError("indent", indent.status, "record payment on")

        old_paid = indent.paid_amount
        payment = reconcile_payment(indent.total_amount, old_paid + amount)
        indent.paid_amount = payment.paid_amount
        if payment_method is not None:
            indent.payment_method = PaymentMethod(payment_method).value

        await self.audit.log(
            action=AuditAction.RECORD_PAYMENT,
            entity_type="TextbookIndent",
            entity_id=indent.id,
            user_id=recorded_by_id,
            entity_identifier=indent.indent_number,
            old_values={"paid_amount": str(old_paid)},
            new_values={"paid_amount": str(payment.paid_amount), "amount": str(amount)},
        )
        warnings = self._collect_warnings(indent.indent_number, payment)

        await self.db.commit()
        logger.info(
            "Payment of %s recorded on indent %s, balance %s",
            amount,
            indent.indent_number,
            payment.balance_amount,
        )
        return await self.get_by_id(indent.id), warnings

    # --- Update ---

    async def update_indent(
        self,
        indent_id: int,
        data: IndentUpdate,
        updated_by_id: int,
        branch_id: int | None = None,
    ) -> tuple[TextbookIndent, list[OverpaymentWarning]]:
        """
        Edit payment and bookkeeping fields.

        Items and quantities are fixed at creation; changing them means
        cancelling and creating a new indent.
        """
        indent = await self.get_by_id(indent_id, branch_id)
        update_data = data.model_dump(exclude_unset=True)
        if not update_data:
            return indent, []

        warnings: list[OverpaymentWarning] = []
        old_values: dict = {}
        new_values: dict = {}

        if update_data.get("paid_amount") is not None:
            if indent.status == IndentStatus.CANCELLED.value:
                raise InvalidTransitionError("indent", indent.status, "change payment on")
            payment = reconcile_payment(indent.total_amount, update_data["paid_amount"])
            if payment.paid_amount != indent.paid_amount:
                old_values["paid_amount"] = str(indent.paid_amount)
                new_values["paid_amount"] = str(payment.paid_amount)
                indent.paid_amount = payment.paid_amount
            warnings = self._collect_warnings(indent.indent_number, payment)

        if update_data.get("payment_method") is not None:
            method = PaymentMethod(update_data["payment_method"]).value
            if method != indent.payment_method:
                old_values["payment_method"] = indent.payment_method
                new_values["payment_method"] = method
                indent.payment_method = method

        if "expected_return_date" in update_data:
            expected = update_data["expected_return_date"]
            if expected is not None and expected < indent.issue_date:
                raise ValidationError(
                    "Expected return date cannot be before the issue date",
                    field="expected_return_date",
                )
            if expected != indent.expected_return_date:
                old_values["expected_return_date"] = _iso(indent.expected_return_date)
                new_values["expected_return_date"] = _iso(expected)
                indent.expected_return_date = expected

        if "remarks" in update_data and update_data["remarks"] != indent.remarks:
            old_values["remarks"] = indent.remarks
            new_values["remarks"] = update_data["remarks"]
            indent.remarks = update_data["remarks"]

        if new_values:
            await self.audit.log(
                action=AuditAction.UPDATE_INDENT,
                entity_type="TextbookIndent",
                entity_id=indent.id,
                user_id=updated_by_id,
                entity_identifier=indent.indent_number,
                old_values=old_values,
                new_values=new_values,
            )
            await self.db.commit()
        return await self.get_by_id(indent.id), warnings

    # --- Queries ---

    async def get_by_id(self, indent_id: int, branch_id: int | None = None) -> TextbookIndent:
        """Get indent with items and return history, refreshed from the database."""
        query = (
            select(TextbookIndent)
            .where(TextbookIndent.id == indent_id)
            .options(
                selectinload(TextbookIndent.items),
                selectinload(TextbookIndent.returns),
            )
            .execution_options(populate_existing=True)
        )
        if branch_id is not None:
            query = query.where(TextbookIndent.branch_id == branch_id)
        indent = (await self.db.execute(query)).scalar_one_or_none()
        if not indent:
            raise NotFoundError("Indent", indent_id)
        return indent

    async def list_indents(
        self, filters: IndentFilters, branch_id: int | None = None
    ) -> tuple[list[TextbookIndent], int]:
        """List indents with filters."""
        query = select(TextbookIndent)

        if branch_id is not None:
            query = query.where(TextbookIndent.branch_id == branch_id)
        if filters.student_id is not None:
            query = query.where(TextbookIndent.student_id == filters.student_id)
        if filters.status is not None:
            query = query.where(TextbookIndent.status == filters.status.value)
        if filters.payment_status is not None:
            query = query.where(TextbookIndent.payment_status == filters.payment_status.value)
        if filters.class_name:
            query = query.where(TextbookIndent.class_name == filters.class_name)
        if filters.academic_year:
            query = query.where(TextbookIndent.academic_year == filters.academic_year)
        if filters.date_from:
            query = query.where(TextbookIndent.issue_date >= filters.date_from)
        if filters.date_to:
            query = query.where(TextbookIndent.issue_date <= filters.date_to)
        if filters.overdue:
            query = query.where(
                TextbookIndent.status.in_([s.value for s in RETURNABLE_STATUSES]),
                TextbookIndent.expected_return_date.is_not(None),
                TextbookIndent.expected_return_date < date.today(),
            )
        if filters.search:
            search_term = f"%{filters.search}%"
            query = query.where(
                or_(
                    TextbookIndent.indent_number.ilike(search_term),
                    TextbookIndent.student_name.ilike(search_term),
                    TextbookIndent.admission_number.ilike(search_term),
                )
            )

        # Count total
        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        sort_column = getattr(TextbookIndent, filters.sort_by.value)
        order = sort_column.desc() if filters.sort_order == SortOrder.DESC else sort_column.asc()
        query = (
            query.options(selectinload(TextbookIndent.items))
            .order_by(order, TextbookIndent.id.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_stats(
        self, branch_id: int | None = None, academic_year: str | None = None
    ) -> IndentStats:
        """Counts and amounts across indents; cancelled indents carry no value."""
        query = select(
            TextbookIndent.status,
            TextbookIndent.class_name,
            TextbookIndent.total_amount,
            TextbookIndent.paid_amount,
            TextbookIndent.expected_return_date,
        )
        if branch_id is not None:
            query = query.where(TextbookIndent.branch_id == branch_id)
        if academic_year:
            query = query.where(TextbookIndent.academic_year == academic_year)
        rows = (await self.db.execute(query)).all()

        today = date.today()
        counts: dict[str, int] = defaultdict(int)
        overdue = 0
        total_value = ZERO
        collected = ZERO
        outstanding = ZERO
        by_class: dict[str, list] = defaultdict(lambda: [0, ZERO])

        for row in rows:
            counts[row.status] += 1
            if row.status == IndentStatus.CANCELLED.value:
                continue
            total_amount = Decimal(str(row.total_amount))
            paid_amount = Decimal(str(row.paid_amount))
            total_value += total_amount
            collected += paid_amount
            outstanding += total_amount - paid_amount
            by_class[row.class_name][0] += 1
            by_class[row.class_name][1] += total_amount
            if (
                row.status in RETURNABLE_STATUSES
                and row.expected_return_date is not None
                and row.expected_return_date < today
            ):
                overdue += 1

        return IndentStats(
            total=len(rows),
            pending=counts[IndentStatus.PENDING.value],
            issued=counts[IndentStatus.ISSUED.value]
            + counts[IndentStatus.PARTIALLY_RETURNED.value],
            returned=counts[IndentStatus.RETURNED.value],
            cancelled=counts[IndentStatus.CANCELLED.value],
            overdue=overdue,
            total_value=round_money(total_value),
            collected_amount=round_money(collected),
            outstanding_balance=round_money(outstanding),
            by_class={
                name: ClassIndentStats(count=count, total_value=round_money(value))
                for name, (count, value) in sorted(by_class.items())
            },
        )

    async def get_receipt(
        self, indent_id: int, generated_by_id: int, branch_id: int | None = None
    ) -> IndentReceipt:
        """Mark the receipt as generated and return the snapshot to render."""
        indent = await self.get_by_id(indent_id, branch_id)
        if indent.status not in RECEIPT_STATUSES:
            raise InvalidTransitionError("indent", indent.status, "generate a receipt for")

        if not indent.receipt_generated:
            indent.receipt_generated = True
            await self.audit.log(
                action=AuditAction.GENERATE_RECEIPT,
                entity_type="TextbookIndent",
                entity_id=indent.id,
                user_id=generated_by_id,
                entity_identifier=indent.indent_number,
            )
            await self.db.commit()
            indent = await self.get_by_id(indent.id)

        issued_by = None
        if indent.issued_by_id is not None:
            issuer = await self.db.get(User, indent.issued_by_id)
            issued_by = issuer.full_name if issuer else None

        return IndentReceipt(
            school_name=settings.school_name,
            indent_number=indent.indent_number,
            academic_year=indent.academic_year,
            student_name=indent.student_name,
            admission_number=indent.admission_number,
            class_name=indent.class_name,
            division=indent.division,
            issue_date=indent.issue_date,
            expected_return_date=indent.expected_return_date,
            issued_at=indent.issued_at,
            issued_by=issued_by,
            status=indent.status,
            lines=[
                ReceiptLine(
                    book_code=item.book_code,
                    title=item.title,
                    subject=item.subject,
                    quantity=item.quantity,
                    returned_quantity=item.returned_quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                    status=item.status,
                )
                for item in indent.items
            ],
            total_quantity=indent.total_quantity,
            total_amount=indent.total_amount,
            paid_amount=indent.paid_amount,
            balance_amount=indent.balance_amount,
            payment_method=indent.payment_method,
            payment_status=indent.payment_status,
            remarks=indent.remarks,
            generated_at=datetime.now(timezone.utc),
            generated_by_id=generated_by_id,
        )

    # --- Helpers ---

    @staticmethod
    def _validate_lines(data: IndentCreate) -> None:
        if not data.items:
            raise ValidationError("An indent needs at least one textbook", field="items")
        seen: set[int] = set()
        for line in data.items:
            if not isinstance(line.quantity, int) or line.quantity <= 0:
                raise ValidationError("Quantity must be a positive integer", field="quantity")
            if line.textbook_id in seen:
                raise ValidationError(
                    f"Textbook {line.textbook_id} appears more than once", field="items"
                )
            seen.add(line.textbook_id)

    async def _load_textbooks(
        self, textbook_ids: list[int], branch_id: int
    ) -> dict[int, Textbook]:
        """Current catalog rows for the requested titles, keyed by id."""
        result = await self.db.execute(
            select(Textbook)
            .where(Textbook.id.in_(textbook_ids))
            .execution_options(populate_existing=True)
        )
        textbooks = {t.id: t for t in result.scalars().all()}
        for textbook_id in textbook_ids:
            textbook = textbooks.get(textbook_id)
            if textbook is None:
                raise NotFoundError("Textbook", textbook_id)
            if textbook.branch_id != branch_id:
                raise ValidationError(
                    f"Textbook '{textbook.title}' belongs to another branch", field="items"
                )
        return textbooks

    async def _undo_reservations(
        self, reserved: list[tuple[int, int]], user_id: int, cause: Exception
    ) -> None:
        """Release what this create call reserved, newest first."""
        if not reserved:
            return
        logger.warning(
            "Indent create failed (%s); releasing %d reserved line(s)",
            cause,
            len(reserved),
        )
        for textbook_id, quantity in reversed(reserved):
            try:
                await self.ledger.release(
                    textbook_id,
                    quantity,
                    reference_type=REFERENCE_TYPE,
                    created_by_id=user_id,
                    notes="Compensation for failed indent create",
                )
            except Exception:
                logger.exception(
                    "Compensating release of %d cop(ies) of textbook %s failed",
                    quantity,
                    textbook_id,
                )
                raise

    async def _reverse_movements(
        self,
        applied: list[tuple[MovementType, int, int]],
        user_id: int,
        indent_id: int,
        cause: Exception,
    ) -> None:
        """Apply the inverse of each ledger call in ``applied``, newest first."""
        if not applied:
            return
        logger.warning(
            "Stock update for indent %s failed (%s); reversing %d applied movement(s)",
            indent_id,
            cause,
            len(applied),
        )
        inverse = {
            MovementType.RELEASE: self.ledger.reserve,
            MovementType.WRITE_OFF: self.ledger.reinstate,
        }
        for movement_type, textbook_id, quantity in reversed(applied):
            try:
                await inverse[movement_type](
                    textbook_id,
                    quantity,
                    reference_type=REFERENCE_TYPE,
                    reference_id=indent_id,
                    created_by_id=user_id,
                    notes=f"Compensation for failed {movement_type.value}",
                )
            except Exception:
                logger.exception(
                    "Compensating %s of %d cop(ies) of textbook %s failed",
                    movement_type.value,
                    quantity,
                    textbook_id,
                )
                raise

    @staticmethod
    def _collect_warnings(
        indent_number: str, payment: PaymentState
    ) -> list[OverpaymentWarning]:
        if payment.warning is None:
            return []
        logger.warning("Indent %s: %s", indent_number, payment.warning)
        return [payment.warning]


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None
