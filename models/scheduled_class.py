"""Kursdefinition als Tagged Union: Einzeltermin oder Serie (Pydantic v2).

Der Diskriminator class_type macht einen "Serienkurs ohne Regel" auf
Typebene unmöglich: RecurringClass verlangt eine RecurrenceConfig,
SingleClass kennt gar keine.
"""

from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from models.instance import GeneratedInstance, new_id
from models.recurrence import RecurrenceConfig
from scheduling.timeutils import normalize_time


class ClassBase(BaseModel):
    """Gemeinsame Felder beider Kursvarianten."""

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    course_code: Optional[str] = Field(None, max_length=50)
    instructor_id: str
    room_type_id: str
    room_id: Optional[str] = None               # Feste Raumzuweisung (optional)
    generated_instances: list[GeneratedInstance] = []
    is_active: bool = True                      # Soft-Delete statt Löschen
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("name", "course_code", "description")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v


class SingleClass(ClassBase):
    """Einzeltermin, optional über mehrere Tage (gleiche Uhrzeit je Tag)."""

    class_type: Literal["single"] = "single"
    start_date: date
    end_date: Optional[date] = None             # None = start_date
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_time(v)

    @property
    def effective_end_date(self) -> date:
        return self.end_date or self.start_date


class RecurringClass(ClassBase):
    """Serienkurs, dessen Termine aus der Wiederholungsregel expandiert werden."""

    class_type: Literal["recurring"] = "recurring"
    recurrence: RecurrenceConfig


ScheduledClass = Annotated[
    Union[SingleClass, RecurringClass], Field(discriminator="class_type")
]

CLASS_ADAPTER: TypeAdapter = TypeAdapter(ScheduledClass)
