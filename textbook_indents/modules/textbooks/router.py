"""API endpoints for Textbooks module."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.auth.dependencies import (
    TextbookCreator,
    TextbookEditor,
    TextbookReader,
    TextbookRemover,
)
from textbook_indents.core.config import settings
from textbook_indents.core.database.session import get_db
from textbook_indents.modules.textbooks.models import AvailabilityStatus, Textbook
from textbook_indents.modules.textbooks.schemas import (
    MovementResponse,
    SortOrder,
    StockAdjustRequest,
    TextbookCreate,
    TextbookFilters,
    TextbookResponse,
    TextbookSortField,
    TextbookStats,
    TextbookUpdate,
)
from textbook_indents.modules.textbooks.service import TextbookService
from textbook_indents.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/textbooks", tags=["Textbooks"])


def _textbook_to_response(textbook: Textbook) -> TextbookResponse:
    return TextbookResponse(
        id=textbook.id,
        branch_id=textbook.branch_id,
        academic_year=textbook.academic_year,
        book_code=textbook.book_code,
        title=textbook.title,
        subject=textbook.subject,
        class_name=textbook.class_name,
        publisher=textbook.publisher,
        price=textbook.price,
        quantity=textbook.quantity,
        available=textbook.available,
        issued_count=textbook.issued_count,
        availability_status=textbook.availability_status(settings.low_stock_ratio),
        created_at=textbook.created_at,
        updated_at=textbook.updated_at,
    )


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[TextbookResponse]],
)
async def list_textbooks(
    current_user: TextbookReader,
    search: str | None = Query(None, description="Title, book code or publisher"),
    class_name: str | None = Query(None),
    subject: str | None = Query(None),
    academic_year: str | None = Query(None),
    availability: AvailabilityStatus | None = Query(None),
    sort_by: TextbookSortField = Query(TextbookSortField.TITLE),
    sort_order: SortOrder = Query(SortOrder.ASC),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List textbooks of the caller's branch."""
    filters = TextbookFilters(
        search=search,
        class_name=class_name,
        subject=subject,
        academic_year=academic_year,
        availability=availability,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    service = TextbookService(db)
    textbooks, total = await service.list_textbooks(filters, current_user.scope_branch_id)
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[_textbook_to_response(t) for t in textbooks],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.post(
    "",
    response_model=ApiResponse[TextbookResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_textbook(
    data: TextbookCreate,
    current_user: TextbookCreator,
    db: AsyncSession = Depends(get_db),
):
    """Catalog a new textbook with its opening stock."""
    service = TextbookService(db)
    textbook = await service.create_textbook(data, current_user.id, current_user.scope_branch_id)
    return ApiResponse(
        success=True,
        message="Textbook created successfully",
        data=_textbook_to_response(textbook),
    )


@router.get(
    "/stats",
    response_model=ApiResponse[TextbookStats],
)
async def get_textbook_stats(
    current_user: TextbookReader,
    academic_year: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Stock totals for the caller's branch."""
    service = TextbookService(db)
    stats = await service.get_stats(current_user.scope_branch_id, academic_year)
    return ApiResponse(success=True, data=stats)


@router.get(
    "/{textbook_id}",
    response_model=ApiResponse[TextbookResponse],
)
async def get_textbook(
    textbook_id: int,
    current_user: TextbookReader,
    db: AsyncSession = Depends(get_db),
):
    """Get textbook by ID."""
    service = TextbookService(db)
    textbook = await service.get_by_id(textbook_id, current_user.scope_branch_id)
    return ApiResponse(success=True, data=_textbook_to_response(textbook))


@router.patch(
    "/{textbook_id}",
    response_model=ApiResponse[TextbookResponse],
)
async def update_textbook(
    textbook_id: int,
    data: TextbookUpdate,
    current_user: TextbookEditor,
    db: AsyncSession = Depends(get_db),
):
    """Update textbook details. A new quantity is applied as a stock adjustment."""
    service = TextbookService(db)
    textbook = await service.update_textbook(
        textbook_id, data, current_user.id, current_user.scope_branch_id
    )
    return ApiResponse(
        success=True,
        message="Textbook updated successfully",
        data=_textbook_to_response(textbook),
    )


@router.delete(
    "/{textbook_id}",
    response_model=ApiResponse[None],
)
async def delete_textbook(
    textbook_id: int,
    current_user: TextbookRemover,
    db: AsyncSession = Depends(get_db),
):
    """Delete a textbook that was never indented and has no copies out."""
    service = TextbookService(db)
    await service.delete_textbook(textbook_id, current_user.id, current_user.scope_branch_id)
    return ApiResponse(success=True, data=None, message="Textbook deleted")


@router.post(
    "/{textbook_id}/stock",
    response_model=ApiResponse[TextbookResponse],
)
async def adjust_stock(
    textbook_id: int,
    data: StockAdjustRequest,
    current_user: TextbookEditor,
    db: AsyncSession = Depends(get_db),
):
    """Add or remove shelf copies. Issued copies cannot be adjusted away."""
    service = TextbookService(db)
    textbook = await service.adjust_stock(
        textbook_id,
        data.adjustment,
        data.reason,
        current_user.id,
        current_user.scope_branch_id,
    )
    return ApiResponse(
        success=True,
        message="Stock adjusted successfully",
        data=_textbook_to_response(textbook),
    )


@router.get(
    "/{textbook_id}/movements",
    response_model=ApiResponse[PaginatedResponse[MovementResponse]],
)
async def list_movements(
    textbook_id: int,
    current_user: TextbookReader,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Stock movement history of one textbook, newest first."""
    service = TextbookService(db)
    movements, total = await service.get_movements(
        textbook_id, current_user.scope_branch_id, page=page, limit=limit
    )
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[MovementResponse.model_validate(m) for m in movements],
            total=total,
            page=page,
            limit=limit,
        ),
    )
