"""Datenmodell für eine Lehrkraft / Kursleitung (Pydantic v2)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models.instance import new_id


class Instructor(BaseModel):
    """Repräsentiert eine einzelne Kursleitung."""

    id: str = Field(default_factory=new_id)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: str = Field(pattern=r"^\S+@\S+\.\S+$")  # eindeutig im Speicher
    phone: Optional[str] = Field(None, pattern=r"^\+?[\d\s-]+$")
    specialization: Optional[str] = Field(None, max_length=200)
    bio: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        return v.strip()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
