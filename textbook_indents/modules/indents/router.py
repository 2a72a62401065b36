"""API endpoints for Textbook Indents module."""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.auth.dependencies import TextbookCreator, TextbookEditor, TextbookReader
from textbook_indents.core.database.session import get_db
from textbook_indents.modules.indents.models import IndentStatus, TextbookIndent
from textbook_indents.modules.indents.schemas import (
    CancelRequest,
    IndentCreate,
    IndentFilters,
    IndentReceipt,
    IndentResponse,
    IndentSortField,
    IndentStats,
    IndentSummary,
    IndentUpdate,
    PaymentRequest,
    ReturnRequest,
    SortOrder,
)
from textbook_indents.modules.indents.service import IndentService
from textbook_indents.modules.payments.reconciliation import PaymentStatus
from textbook_indents.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/textbook-indents", tags=["Textbook Indents"])


def _indent_to_summary(indent: TextbookIndent) -> IndentSummary:
    return IndentSummary(
        id=indent.id,
        indent_number=indent.indent_number,
        student_id=indent.student_id,
        student_name=indent.student_name,
        admission_number=indent.admission_number,
        class_name=indent.class_name,
        academic_year=indent.academic_year,
        issue_date=indent.issue_date,
        expected_return_date=indent.expected_return_date,
        total_amount=indent.total_amount,
        paid_amount=indent.paid_amount,
        balance_amount=indent.balance_amount,
        payment_status=indent.payment_status,
        status=indent.status,
        item_count=len(indent.items),
        total_quantity=indent.total_quantity,
        total_returned=indent.total_returned,
    )


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[IndentSummary]],
)
async def list_indents(
    current_user: TextbookReader,
    search: str | None = Query(None, description="Indent number, student name or admission no"),
    student_id: int | None = Query(None),
    indent_status: IndentStatus | None = Query(None, alias="status"),
    payment_status: PaymentStatus | None = Query(None),
    class_name: str | None = Query(None),
    academic_year: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    overdue: bool = Query(False),
    sort_by: IndentSortField = Query(IndentSortField.ISSUE_DATE),
    sort_order: SortOrder = Query(SortOrder.DESC),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List indents of the caller's branch."""
    filters = IndentFilters(
        search=search,
        student_id=student_id,
        status=indent_status,
        payment_status=payment_status,
        class_name=class_name,
        academic_year=academic_year,
        date_from=date_from,
        date_to=date_to,
        overdue=overdue,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    service = IndentService(db)
    indents, total = await service.list_indents(filters, current_user.scope_branch_id)
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[_indent_to_summary(i) for i in indents],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.post(
    "",
    response_model=ApiResponse[IndentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_indent(
    data: IndentCreate,
    current_user: TextbookCreator,
    db: AsyncSession = Depends(get_db),
):
    """Create an indent and reserve its textbooks."""
    service = IndentService(db)
    indent, warnings = await service.create_indent(
        data, current_user.id, current_user.scope_branch_id
    )
    return ApiResponse(
        success=True,
        message="Indent created successfully",
        data=IndentResponse.model_validate(indent),
        warnings=[str(w) for w in warnings],
    )


@router.get(
    "/stats",
    response_model=ApiResponse[IndentStats],
)
async def get_indent_stats(
    current_user: TextbookReader,
    academic_year: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Indent counts and amounts for the caller's branch."""
    service = IndentService(db)
    stats = await service.get_stats(current_user.scope_branch_id, academic_year)
    return ApiResponse(success=True, data=stats)


@router.get(
    "/{indent_id}",
    response_model=ApiResponse[IndentResponse],
)
async def get_indent(
    indent_id: int,
    current_user: TextbookReader,
    db: AsyncSession = Depends(get_db),
):
    """Get indent by ID with its items and return history."""
    service = IndentService(db)
    indent = await service.get_by_id(indent_id, current_user.scope_branch_id)
    return ApiResponse(success=True, data=IndentResponse.model_validate(indent))


@router.patch(
    "/{indent_id}",
    response_model=ApiResponse[IndentResponse],
)
async def update_indent(
    indent_id: int,
    data: IndentUpdate,
    current_user: TextbookEditor,
    db: AsyncSession = Depends(get_db),
):
    """Edit payment details, expected return date or remarks."""
    service = IndentService(db)
    indent, warnings = await service.update_indent(
        indent_id, data, current_user.id, current_user.scope_branch_id
    )
    return ApiResponse(
        success=True,
        message="Indent updated successfully",
        data=IndentResponse.model_validate(indent),
        warnings=[str(w) for w in warnings],
    )


@router.post(
    "/{indent_id}/issue",
    response_model=ApiResponse[IndentResponse],
)
async def issue_indent(
    indent_id: int,
    current_user: TextbookEditor,
    db: AsyncSession = Depends(get_db),
):
    """Confirm handover of a pending indent."""
    service = IndentService(db)
    indent = await service.issue_indent(indent_id, current_user.id, current_user.scope_branch_id)
    return ApiResponse(
        success=True,
        message="Indent issued",
        data=IndentResponse.model_validate(indent),
    )


@router.post(
    "/{indent_id}/return",
    response_model=ApiResponse[IndentResponse],
)
async def return_items(
    indent_id: int,
    data: ReturnRequest,
    current_user: TextbookEditor,
    db: AsyncSession = Depends(get_db),
):
    """Process a (partial) return of issued textbooks."""
    service = IndentService(db)
    indent = await service.return_items(
        indent_id, data.lines, current_user.id, current_user.scope_branch_id
    )
    return ApiResponse(
        success=True,
        message="Return processed",
        data=IndentResponse.model_validate(indent),
    )


@router.post(
    "/{indent_id}/cancel",
    response_model=ApiResponse[IndentResponse],
)
async def cancel_indent(
    indent_id: int,
    data: CancelRequest,
    current_user: TextbookEditor,
    db: AsyncSession = Depends(get_db),
):
    """Cancel an indent with no returns and release its stock."""
    service = IndentService(db)
    indent = await service.cancel_indent(
        indent_id, current_user.id, data.reason, current_user.scope_branch_id
    )
    return ApiResponse(
        success=True,
        message="Indent cancelled",
        data=IndentResponse.model_validate(indent),
    )


@router.post(
    "/{indent_id}/payments",
    response_model=ApiResponse[IndentResponse],
)
async def record_payment(
    indent_id: int,
    data: PaymentRequest,
    current_user: TextbookEditor,
    db: AsyncSession = Depends(get_db),
):
    """Record a settlement against the indent's balance."""
    service = IndentService(db)
    indent, warnings = await service.record_payment(
        indent_id,
        data.amount,
        current_user.id,
        data.payment_method,
        current_user.scope_branch_id,
    )
    return ApiResponse(
        success=True,
        message="Payment recorded",
        data=IndentResponse.model_validate(indent),
        warnings=[str(w) for w in warnings],
    )


@router.post(
    "/{indent_id}/receipt",
    response_model=ApiResponse[IndentReceipt],
)
async def generate_receipt(
    indent_id: int,
    current_user: TextbookReader,
    db: AsyncSession = Depends(get_db),
):
    """Receipt snapshot of an issued or returned indent."""
    service = IndentService(db)
    receipt = await service.get_receipt(indent_id, current_user.id, current_user.scope_branch_id)
    return ApiResponse(success=True, data=receipt)
