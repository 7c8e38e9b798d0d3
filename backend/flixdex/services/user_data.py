"""Per-user client settings storage."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from flixdex.core.logging import get_logger
from flixdex.db.base import utc_now
from flixdex.db.models import UserData

logger = get_logger(__name__)


class UserDataService:
    """Stores one opaque JSON document per user."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_data(self, user_id: str) -> dict[str, Any]:
        """Get the user's document, or an empty dict if none was saved."""
        result = await self.db.execute(
            select(UserData.data).where(UserData.user_id == user_id)
        )
        data = result.scalar_one_or_none()
        return data if data is not None else {}

    async def save_data(self, user_id: str, data: dict[str, Any]) -> None:
        """Replace the user's document."""
        now = utc_now()
        stmt = sqlite_insert(UserData).values(user_id=user_id, data=data, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={"data": stmt.excluded.data, "updated_at": now},
        )
        await self.db.execute(stmt)
        logger.info("user_data_saved", user_id=user_id, keys=len(data))
