from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.auth.dependencies import CurrentUser
from textbook_indents.core.auth.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from textbook_indents.core.auth.service import AuthService
from textbook_indents.core.database import get_db
from textbook_indents.shared.schemas import SuccessResponse

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=SuccessResponse[LoginResponse])
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Authenticate user and return tokens."""
    user, access_token, refresh_token = await AuthService(db).authenticate(
        email=data.email,
        password=data.password,
    )

    return SuccessResponse(
        data=LoginResponse(
            user=UserResponse.model_validate(user),
            access_token=access_token,
            refresh_token=refresh_token,
        ),
        message="Login successful",
    )


@router.post("/refresh", response_model=SuccessResponse[TokenResponse])
async def refresh_tokens(data: RefreshRequest, db: AsyncSession = Depends(get_db)):
    access_token, refresh_token = await AuthService(db).refresh_tokens(data.refresh_token)
    return SuccessResponse(
        data=TokenResponse(access_token=access_token, refresh_token=refresh_token),
        message="Tokens refreshed",
    )


@router.get("/me", response_model=SuccessResponse[UserResponse])
async def get_current_user_info(current_user: CurrentUser):
    return SuccessResponse(data=UserResponse.model_validate(current_user))
