"""Schemas for Textbooks module."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from textbook_indents.modules.textbooks.models import AvailabilityStatus


class TextbookSortField(StrEnum):
    TITLE = "title"
    BOOK_CODE = "book_code"
    SUBJECT = "subject"
    CLASS_NAME = "class_name"
    AVAILABLE = "available"
    CREATED_AT = "created_at"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"


class TextbookCreate(BaseModel):
    """Schema for cataloguing a textbook with its opening stock."""

    branch_id: int | None = Field(None, description="Required for super admins; ignored otherwise")
    academic_year: str = Field(..., min_length=4, max_length=20)
    book_code: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=255)
    subject: str = Field(..., min_length=1, max_length=100)
    class_name: str = Field(..., min_length=1, max_length=50)
    publisher: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    quantity: int = Field(..., ge=0)

    @field_validator("book_code")
    @classmethod
    def normalize_book_code(cls, v: str) -> str:
        return v.strip().upper()


class TextbookUpdate(BaseModel):
    """Schema for updating a textbook.

    A new ``quantity`` is applied as a stock adjustment; it can never drop
    below the copies currently issued.
    """

    title: str | None = Field(None, min_length=1, max_length=255)
    subject: str | None = Field(None, min_length=1, max_length=100)
    class_name: str | None = Field(None, min_length=1, max_length=50)
    publisher: str | None = Field(None, min_length=1, max_length=200)
    price: Decimal | None = Field(None, ge=0, decimal_places=2)
    quantity: int | None = Field(None, ge=0)


class StockAdjustRequest(BaseModel):
    """Schema for an administrative stock correction."""

    adjustment: int = Field(..., description="Copies to add (positive) or remove (negative)")
    reason: str = Field(..., min_length=1, max_length=500)


class TextbookFilters(BaseModel):
    """Filters for listing textbooks."""

    search: str | None = None  # Title, book code or publisher
    class_name: str | None = None
    subject: str | None = None
    academic_year: str | None = None
    availability: AvailabilityStatus | None = None
    sort_by: TextbookSortField = TextbookSortField.TITLE
    sort_order: SortOrder = SortOrder.ASC
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=500)


class TextbookResponse(BaseModel):
    id: int
    branch_id: int
    academic_year: str
    book_code: str
    title: str
    subject: str
    class_name: str
    publisher: str
    price: Decimal
    quantity: int
    available: int
    issued_count: int
    availability_status: AvailabilityStatus
    created_at: datetime
    updated_at: datetime


class MovementResponse(BaseModel):
    id: int
    textbook_id: int
    movement_type: str
    quantity_delta: int
    available_delta: int
    quantity_after: int
    available_after: int
    reference_type: str | None
    reference_id: int | None
    notes: str | None
    created_by_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class GroupStockStats(BaseModel):
    """Stock totals for one class or subject."""

    titles: int
    total_books: int
    available_books: int
    issued_books: int


class TextbookStats(BaseModel):
    total_titles: int
    total_books: int
    available_books: int
    issued_books: int
    out_of_stock: int
    low_stock: int
    total_value: Decimal
    available_value: Decimal
    by_class: dict[str, GroupStockStats]
    by_subject: dict[str, GroupStockStats]
