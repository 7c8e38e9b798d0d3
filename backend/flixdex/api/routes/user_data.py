"""Per-user settings document endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from flixdex.api.deps import get_current_user
from flixdex.core.security import CurrentUser
from flixdex.db import get_db
from flixdex.schemas.user_data import SaveUserDataResponse
from flixdex.services.user_data import UserDataService

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/data")
async def get_user_data(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Get the user's stored settings document, or an empty object."""
    return await UserDataService(db).get_data(user.id)


@router.post("/data", response_model=SaveUserDataResponse)
async def save_user_data(
    data: dict[str, Any] = Body(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SaveUserDataResponse:
    """Replace the user's stored settings document."""
    await UserDataService(db).save_data(user.id, data)
    return SaveUserDataResponse(success=True)
