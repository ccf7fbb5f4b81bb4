"""User endpoints."""

from fastapi import APIRouter

from app.core.dependencies import CurrentUser
from app.schemas.auth import ApiResponse, UserResponse

router = APIRouter(tags=["Users"])


@router.get("/me", response_model=ApiResponse, summary="Current user")
async def get_me(current_user: CurrentUser) -> ApiResponse:
    """Get the current user's profile."""
    return ApiResponse(
        message="User retrieved",
        data=UserResponse.model_validate(current_user).model_dump(by_alias=True, mode="json"),
    )
