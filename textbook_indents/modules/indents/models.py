"""Textbook indent models: the indent, its item lines and return history."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ColumnElement,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    case,
    func,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from textbook_indents.core.database.base import Base, BaseModel, BigIntPK
from textbook_indents.modules.payments.reconciliation import (
    PaymentMethod,
    PaymentStatus,
    payment_status_for,
)
from textbook_indents.shared.utils.money import line_total

if TYPE_CHECKING:
    from textbook_indents.core.auth.models import User
    from textbook_indents.modules.students.models import Student
    from textbook_indents.modules.textbooks.models import Textbook


class IndentStatus(StrEnum):
    """Indent lifecycle status."""

    PENDING = "pending"  # Stock reserved, not yet handed over
    ISSUED = "issued"
    PARTIALLY_RETURNED = "partially_returned"
    RETURNED = "returned"
    CANCELLED = "cancelled"


class ItemStatus(StrEnum):
    """Item status, always derived from quantities."""

    ISSUED = "issued"
    PARTIALLY_RETURNED = "partially_returned"
    RETURNED = "returned"
    LOST = "lost"
    DAMAGED = "damaged"


class ItemCondition(StrEnum):
    """Condition of copies handed back in a return event."""

    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    DAMAGED = "damaged"
    LOST = "lost"

    @property
    def severity(self) -> int:
        """Position from mildest (good) to most severe (lost)."""
        return list(ItemCondition).index(self)


# Copies in these conditions go back on the shelf; anything else is written off
REISSUABLE_CONDITIONS = frozenset({ItemCondition.GOOD, ItemCondition.FAIR})

RETURNABLE_STATUSES = frozenset({IndentStatus.ISSUED, IndentStatus.PARTIALLY_RETURNED})
CANCELLABLE_STATUSES = frozenset({IndentStatus.PENDING, IndentStatus.ISSUED})
RECEIPT_STATUSES = frozenset(
    {IndentStatus.ISSUED, IndentStatus.PARTIALLY_RETURNED, IndentStatus.RETURNED}
)


class TextbookIndent(BaseModel):
    """
    One reservation of textbook copies for one student.

    Stock is reserved when the indent is created. Student identity is copied
    in at creation so receipts keep showing what was true at issue time.
    ``balance_amount`` and ``payment_status`` are derived from the stored
    amounts and are never persisted.
    """

    __tablename__ = "textbook_indents"

    indent_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    branch_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("students.id"), nullable=False, index=True
    )
    # Student snapshot
    student_name: Mapped[str] = mapped_column(String(200), nullable=False)
    admission_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    class_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    division: Mapped[str | None] = mapped_column(String(20), nullable=True)

    issue_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    expected_return_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentMethod.CASH.value
    )

    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=IndentStatus.PENDING.value, index=True
    )
    issued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    issued_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    receipt_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_by_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)

    __table_args__ = (
        CheckConstraint("paid_amount >= 0", name="ck_textbook_indents_paid_non_negative"),
        CheckConstraint(
            "paid_amount <= total_amount", name="ck_textbook_indents_paid_le_total"
        ),
    )

    student: Mapped["Student"] = relationship("Student")
    items: Mapped[list["TextbookIndentItem"]] = relationship(
        "TextbookIndentItem",
        back_populates="indent",
        order_by="TextbookIndentItem.position",
        cascade="all, delete-orphan",
    )
    returns: Mapped[list["TextbookIndentReturn"]] = relationship(
        "TextbookIndentReturn",
        back_populates="indent",
        order_by="TextbookIndentReturn.id",
        cascade="all, delete-orphan",
    )
    created_by: Mapped["User"] = relationship("User", foreign_keys=[created_by_id])
    issued_by: Mapped["User | None"] = relationship("User", foreign_keys=[issued_by_id])

    @hybrid_property
    def balance_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @balance_amount.inplace.expression
    @classmethod
    def _balance_amount_expression(cls) -> ColumnElement[Decimal]:
        return cls.total_amount - cls.paid_amount

    @hybrid_property
    def payment_status(self) -> str:
        return payment_status_for(self.total_amount, self.paid_amount).value

    @payment_status.inplace.expression
    @classmethod
    def _payment_status_expression(cls) -> ColumnElement[str]:
        return case(
            (cls.paid_amount >= cls.total_amount, PaymentStatus.PAID.value),
            (cls.paid_amount > 0, PaymentStatus.PARTIAL.value),
            else_=PaymentStatus.PENDING.value,
        )

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_returned(self) -> int:
        return sum(item.returned_quantity for item in self.items)

    @property
    def has_returns(self) -> bool:
        return any(item.returned_quantity > 0 for item in self.items)

    @property
    def is_fully_resolved(self) -> bool:
        return all(item.outstanding_quantity == 0 for item in self.items)

    def is_overdue(self, today: date) -> bool:
        return (
            self.status in RETURNABLE_STATUSES
            and self.expected_return_date is not None
            and self.expected_return_date < today
        )


class TextbookIndentItem(BaseModel):
    """
    One textbook line of an indent.

    ``returned_quantity`` counts every unit resolved by a return event,
    including units written off; ``written_off_quantity`` is the part of it
    that did not go back on the shelf.
    """

    __tablename__ = "textbook_indent_items"

    indent_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("textbook_indents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    textbook_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("textbooks.id"), nullable=False, index=True
    )
    # Catalog snapshot
    book_code: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(100), nullable=False)
    publisher: Mapped[str] = mapped_column(String(200), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    returned_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    written_off_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    condition: Mapped[str | None] = mapped_column(String(20), nullable=True)
    return_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_textbook_indent_items_quantity_positive"),
        CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_textbook_indent_items_returned_bounds",
        ),
        CheckConstraint(
            "written_off_quantity >= 0 AND written_off_quantity <= returned_quantity",
            name="ck_textbook_indent_items_written_off_bounds",
        ),
    )

    indent: Mapped["TextbookIndent"] = relationship("TextbookIndent", back_populates="items")
    textbook: Mapped["Textbook"] = relationship("Textbook")

    @property
    def outstanding_quantity(self) -> int:
        return self.quantity - self.returned_quantity

    @property
    def line_total(self) -> Decimal:
        return line_total(self.unit_price, self.quantity)

    @property
    def status(self) -> ItemStatus:
        if self.returned_quantity == 0:
            return ItemStatus.ISSUED
        if self.returned_quantity < self.quantity:
            return ItemStatus.PARTIALLY_RETURNED
        if self.written_off_quantity == self.quantity:
            if self.condition == ItemCondition.LOST.value:
                return ItemStatus.LOST
            return ItemStatus.DAMAGED
        return ItemStatus.RETURNED


class TextbookIndentReturn(Base):
    """One processed line of a return event. Append-only."""

    __tablename__ = "textbook_indent_returns"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    indent_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("textbook_indents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("textbook_indent_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    condition: Mapped[str] = mapped_column(String(20), nullable=False)
    written_off: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    indent: Mapped["TextbookIndent"] = relationship("TextbookIndent", back_populates="returns")
