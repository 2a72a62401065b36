"""Schemas for Textbook Indents module."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from textbook_indents.modules.indents.models import IndentStatus, ItemCondition, ItemStatus
from textbook_indents.modules.payments.reconciliation import PaymentMethod, PaymentStatus


class IndentSortField(StrEnum):
    ISSUE_DATE = "issue_date"
    INDENT_NUMBER = "indent_number"
    STUDENT_NAME = "student_name"
    TOTAL_AMOUNT = "total_amount"
    CREATED_AT = "created_at"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"


# --- Request Schemas ---


class IndentItemCreate(BaseModel):
    textbook_id: int
    quantity: int = Field(..., gt=0)


class IndentCreate(BaseModel):
    """Schema for creating an indent. Stock is reserved immediately."""

    student_id: int
    academic_year: str = Field(..., min_length=4, max_length=20)
    items: list[IndentItemCreate] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CASH
    paid_amount: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    issue_date: date | None = None
    expected_return_date: date | None = None
    remarks: str | None = None

    @model_validator(mode="after")
    def validate_items(self):
        textbook_ids = [item.textbook_id for item in self.items]
        if len(textbook_ids) != len(set(textbook_ids)):
            raise ValueError("Each textbook may appear only once per indent")
        if (
            self.issue_date
            and self.expected_return_date
            and self.expected_return_date < self.issue_date
        ):
            raise ValueError("expected_return_date cannot be before issue_date")
        return self


class IndentUpdate(BaseModel):
    """Editable indent fields. Items and status change only through lifecycle actions."""

    paid_amount: Decimal | None = Field(None, ge=0, decimal_places=2)
    payment_method: PaymentMethod | None = None
    expected_return_date: date | None = None
    remarks: str | None = None


class ReturnLine(BaseModel):
    item_id: int
    quantity: int = Field(..., gt=0)
    condition: ItemCondition
    remarks: str | None = Field(None, max_length=500)


class ReturnRequest(BaseModel):
    """One return event; may cover any subset of the indent's items."""

    lines: list[ReturnLine] = Field(..., min_length=1)


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class PaymentRequest(BaseModel):
    """A settlement against an existing indent."""

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod | None = None


class IndentFilters(BaseModel):
    """Filters for listing indents."""

    search: str | None = None  # Indent number, student name or admission number
    student_id: int | None = None
    status: IndentStatus | None = None
    payment_status: PaymentStatus | None = None
    class_name: str | None = None
    academic_year: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    overdue: bool = False
    sort_by: IndentSortField = IndentSortField.ISSUE_DATE
    sort_order: SortOrder = SortOrder.DESC
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=500)


# --- Response Schemas ---


class IndentItemResponse(BaseModel):
    id: int
    position: int
    textbook_id: int
    book_code: str
    title: str
    subject: str
    publisher: str
    unit_price: Decimal
    quantity: int
    returned_quantity: int
    written_off_quantity: int
    outstanding_quantity: int
    line_total: Decimal
    status: ItemStatus
    condition: ItemCondition | None = None
    return_date: date | None = None
    remarks: str | None = None

    model_config = {"from_attributes": True}


class IndentReturnResponse(BaseModel):
    id: int
    item_id: int
    quantity: int
    condition: ItemCondition
    written_off: bool
    remarks: str | None
    processed_by_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class IndentResponse(BaseModel):
    id: int
    indent_number: str
    branch_id: int
    academic_year: str
    student_id: int
    student_name: str
    admission_number: str
    class_name: str
    division: str | None
    issue_date: date
    expected_return_date: date | None
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    status: IndentStatus
    issued_at: datetime | None
    cancelled_at: datetime | None
    cancel_reason: str | None
    remarks: str | None
    receipt_generated: bool
    created_by_id: int
    created_at: datetime
    updated_at: datetime
    items: list[IndentItemResponse]
    returns: list[IndentReturnResponse] = []

    model_config = {"from_attributes": True}


class IndentSummary(BaseModel):
    """Row of the indent list."""

    id: int
    indent_number: str
    student_id: int
    student_name: str
    admission_number: str
    class_name: str
    academic_year: str
    issue_date: date
    expected_return_date: date | None
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    payment_status: PaymentStatus
    status: IndentStatus
    item_count: int
    total_quantity: int
    total_returned: int


class ClassIndentStats(BaseModel):
    count: int
    total_value: Decimal


class IndentStats(BaseModel):
    total: int
    pending: int
    issued: int  # Issued or partially returned
    returned: int
    cancelled: int
    overdue: int
    total_value: Decimal
    collected_amount: Decimal
    outstanding_balance: Decimal
    by_class: dict[str, ClassIndentStats]


class ReceiptLine(BaseModel):
    book_code: str
    title: str
    subject: str
    quantity: int
    returned_quantity: int
    unit_price: Decimal
    line_total: Decimal
    status: ItemStatus


class IndentReceipt(BaseModel):
    """Read-only snapshot handed to receipt renderers. Carries no formatting."""

    school_name: str
    indent_number: str
    academic_year: str
    student_name: str
    admission_number: str
    class_name: str
    division: str | None
    issue_date: date
    expected_return_date: date | None
    issued_at: datetime | None
    issued_by: str | None
    status: IndentStatus
    lines: list[ReceiptLine]
    total_quantity: int
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    remarks: str | None
    generated_at: datetime
    generated_by_id: int
