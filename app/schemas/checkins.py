"""Pydantic schemas for check-ins."""

from datetime import datetime

from pydantic import BaseModel, Field


class CheckInRequest(BaseModel):
    cafe_id: str = Field(..., description="Surrogate id of the café (``Cafe.id``).")


class CheckIn(BaseModel):
    id: str
    cafe_id: str
    created_at: datetime


class CheckInResponse(BaseModel):
    success: bool = True
    check_in: CheckIn
