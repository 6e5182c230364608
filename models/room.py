"""Datenmodelle für Räume und Raumtypen (Pydantic v2)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.instance import new_id


class RoomType(BaseModel):
    """Raumtyp, z.B. "Seminarraum" oder "Yoga-Studio"."""

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, max_length=100)
    capacity: int = Field(ge=1, le=10000)
    description: Optional[str] = Field(None, max_length=500)
    amenities: list[str] = []
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Room(BaseModel):
    """Repräsentiert einen konkreten Raum."""

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, max_length=100)  # "Raum 1.12"
    room_type_id: str
    building: Optional[str] = Field(None, max_length=100)
    floor: Optional[int] = Field(None, ge=0, le=200)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        return f"{self.name} ({self.building})" if self.building else self.name
