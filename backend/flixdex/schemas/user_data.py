"""Schemas for the user settings document."""

from __future__ import annotations

from pydantic import BaseModel


class SaveUserDataResponse(BaseModel):
    """Acknowledgement of a saved settings document."""

    success: bool
