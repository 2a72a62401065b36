"""Textbook catalog and stock movement models."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from textbook_indents.core.database.base import Base, BaseModel, BigIntPK


class MovementType(StrEnum):
    """Stock movement type enumeration."""

    RECEIPT = "receipt"  # Initial stock when the title is catalogued
    ADJUSTMENT = "adjustment"  # Administrative correction of the total
    RESERVE = "reserve"  # Copies held for an indent
    RELEASE = "release"  # Copies back on the shelf (return in good/fair condition, cancel)
    WRITE_OFF = "write_off"  # Copies permanently gone (lost/damaged)
    REINSTATE = "reinstate"  # Reversal of a write-off within a failed return event


class AvailabilityStatus(StrEnum):
    AVAILABLE = "available"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class Textbook(BaseModel):
    """A textbook title and its stock counters.

    ``quantity`` is the total number of copies the branch owns, ``available``
    the copies not held by any indent. Both change only through
    ``InventoryLedger``; ``version`` is bumped on every change.
    """

    __tablename__ = "textbooks"

    branch_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    book_code: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    class_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    publisher: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "branch_id", "academic_year", "book_code", name="uq_textbooks_branch_year_code"
        ),
        CheckConstraint("available >= 0", name="ck_textbooks_available_non_negative"),
        CheckConstraint("available <= quantity", name="ck_textbooks_available_le_quantity"),
    )

    movements: Mapped[list["TextbookMovement"]] = relationship(
        "TextbookMovement",
        back_populates="textbook",
        order_by="desc(TextbookMovement.id)",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def issued_count(self) -> int:
        return self.quantity - self.available

    def availability_status(self, low_stock_ratio: float) -> AvailabilityStatus:
        if self.available == 0:
            return AvailabilityStatus.OUT_OF_STOCK
        if self.available <= self.quantity * low_stock_ratio:
            return AvailabilityStatus.LOW_STOCK
        return AvailabilityStatus.AVAILABLE


class TextbookMovement(Base):
    """Append-only history of every change to a textbook's counters."""

    __tablename__ = "textbook_movements"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    textbook_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("textbooks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    # Signed deltas applied to the counters
    quantity_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)
    available_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    textbook: Mapped["Textbook"] = relationship("Textbook", back_populates="movements")
