"""Datenmodell für Wiederholungsregeln (Pydantic v2)."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models.timeslot import TimeSlot
from scheduling.timeutils import parse_date


class RecurrencePattern(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class RecurrenceConfig(BaseModel):
    """Wiederholungsregel eines Serienkurses.

    Feldübergreifende Regeln (Tageslisten je Muster, Slot-Reihenfolge,
    Intervall ≥ 1) prüft validate_recurrence() explizit vor Expansion und
    Speicherung.
    """

    pattern: RecurrencePattern
    # Wochentage 0=So … 6=Sa (weekly/custom)
    days_of_week: list[int] = []
    # Tage im Monat 1–31 (monthly/custom)
    day_of_month: list[int] = []
    # Alle N Tage/Wochen/Monate
    interval: int = 1
    # Mehrere Slots pro Treffertag möglich, Reihenfolge bleibt erhalten
    time_slots: list[TimeSlot] = Field(default_factory=list)
    # Serienbeginn (Anker für Intervall und occurrences); None = Fensterbeginn
    start_date: Optional[date] = None
    # Harte Obergrenze (inklusive)
    end_date: Optional[date] = None
    # Max. Anzahl Treffertage über die gesamte Serie
    occurrences: Optional[int] = None
    # Explizit ausgelassene Tage "YYYY-MM-DD"
    exclusion_dates: list[str] = []
    exclude_weekends: bool = False

    @field_validator("exclusion_dates")
    @classmethod
    def _check_exclusion_format(cls, v: list[str]) -> list[str]:
        for item in v:
            parse_date(item)
        return v

    @property
    def excluded(self) -> set[date]:
        """Ausschlussdaten als date-Menge."""
        return {parse_date(d) for d in self.exclusion_dates}

    def describe(self) -> str:
        """Kurzbeschreibung für Listen und Tabellen."""
        from scheduling.timeutils import DAY_NAMES

        every = f"alle {self.interval} " if self.interval > 1 else ""
        if self.pattern == RecurrencePattern.DAILY:
            text = f"{every}Tage" if every else "täglich"
        elif self.pattern == RecurrencePattern.WEEKLY:
            days = ", ".join(DAY_NAMES[d] for d in sorted(self.days_of_week) if 0 <= d <= 6)
            text = f"{every}Wochen: {days}" if every else f"wöchentlich: {days}"
        elif self.pattern == RecurrencePattern.MONTHLY:
            days = ", ".join(f"{d}." for d in sorted(self.day_of_month))
            text = f"{every}Monate: {days}" if every else f"monatlich: {days}"
        else:
            text = "benutzerdefiniert"
        slots = ", ".join(str(s) for s in self.time_slots)
        return f"{text} | {slots}"
