"""Datenmodelle für Zeitfenster und konkrete Termine."""

from dataclasses import dataclass
from datetime import date

from pydantic import BaseModel, field_validator

from scheduling.timeutils import day_label, normalize_time, parse_time


class TimeSlot(BaseModel):
    """Ein Zeitfenster innerhalb eines Tages (z.B. 09:00–10:30).

    Das Format wird beim Anlegen normalisiert ("9:00" → "09:00"); die
    Reihenfolge start < end prüft erst validate_recurrence(), damit ein
    invertierter Slot als InvalidRecurrenceError gemeldet wird.
    """

    # Beginn im Format "HH:MM"
    start_time: str
    # Ende im Format "HH:MM"
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_time(v)

    @property
    def duration_minutes(self) -> int:
        return parse_time(self.end_time) - parse_time(self.start_time)

    def __str__(self) -> str:
        return f"{self.start_time}–{self.end_time}"


@dataclass(frozen=True)
class Occurrence:
    """Ein konkreter Termin (Datum + Uhrzeit), Ergebnis der Expansion.

    Immutable (frozen=True) damit es als Dict-Key / Set-Element nutzbar ist.
    """

    date: date
    start_time: str
    end_time: str

    @property
    def start_minutes(self) -> int:
        return parse_time(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time(self.end_time)

    def __repr__(self) -> str:
        return f"Occurrence({self.date.isoformat()}, {self.start_time}-{self.end_time})"

    def __str__(self) -> str:
        return f"{day_label(self.date)} {self.start_time}–{self.end_time}"
