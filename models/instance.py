"""Datenmodell für einen einzelnen, konkret gebuchten Termin (Pydantic v2)."""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models.timeslot import Occurrence
from scheduling.timeutils import normalize_time


def new_id() -> str:
    """Neue, zufällige Dokument-ID (32 Hex-Zeichen)."""
    return uuid.uuid4().hex


class InstanceStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"

    @property
    def occupies_slot(self) -> bool:
        """Nur abgesagte Termine geben ihren Slot frei."""
        return self != InstanceStatus.CANCELLED


class ClassInstance(BaseModel):
    """Ein persistierter, einzeln statusverfolgter Termin eines Kurses.

    Wird vom InstanceMaterializer angelegt und danach nur noch über
    Status-Operationen verändert – eine erneute Expansion überschreibt ihn nie.
    """

    id: str = Field(default_factory=new_id)
    parent_class_id: str
    date: date
    start_time: str
    end_time: str
    instructor_id: str
    room_id: Optional[str] = None
    status: InstanceStatus = InstanceStatus.SCHEDULED
    notes: Optional[str] = Field(None, max_length=1000)
    # ID des Termins, den dieser Termin ersetzt (bei Verschiebung)
    rescheduled_from: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_time(v)

    @property
    def occurrence(self) -> Occurrence:
        return Occurrence(self.date, self.start_time, self.end_time)

    @property
    def occurrence_key(self) -> tuple[str, date, str, str]:
        """Identität eines Serientermins: (Kurs, Datum, Beginn, Ende)."""
        return (self.parent_class_id, self.date, self.start_time, self.end_time)

    @property
    def is_standalone(self) -> bool:
        """True für Ersatztermine, die keiner Expansion entsprechen."""
        return self.rescheduled_from is not None


class GeneratedInstance(BaseModel):
    """Zusammenfassung eines materialisierten Termins am Kurs (Cache)."""

    instance_id: str
    date: date
    start_time: str
    end_time: str
    status: InstanceStatus = InstanceStatus.SCHEDULED

    @classmethod
    def from_instance(cls, instance: ClassInstance) -> "GeneratedInstance":
        return cls(
            instance_id=instance.id,
            date=instance.date,
            start_time=instance.start_time,
            end_time=instance.end_time,
            status=instance.status,
        )
