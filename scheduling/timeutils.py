"""Reine Zeit- und Datumsfunktionen.

Uhrzeiten werden als "HH:MM"-Strings geführt (wie im Zeitraster), Daten als
datetime.date. Wochentage folgen der Konvention 0=Sonntag … 6=Samstag.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Iterator

from dateutil.rrule import DAILY, rrule

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

SUNDAY = 0
SATURDAY = 6
DAY_NAMES = ["So", "Mo", "Di", "Mi", "Do", "Fr", "Sa"]


# ─── Uhrzeiten ────────────────────────────────────────────────────────────────

def parse_time(value: str) -> int:
    """Wandelt "HH:MM" in Minuten seit Mitternacht um."""
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"Ungültiges Zeitformat (HH:MM erwartet): {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(minutes: int) -> str:
    """Minuten seit Mitternacht → "HH:MM"."""
    if not 0 <= minutes < 24 * 60:
        raise ValueError(f"Minutenwert außerhalb eines Tages: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """Normalisiert "9:05" → "09:05"."""
    return minutes_to_time(parse_time(value))


def times_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    """Überschneidung zweier halboffener Intervalle [s1,e1) und [s2,e2).

    Berührende Grenzen (e1 == s2) gelten NICHT als Überschneidung.
    """
    return intervals_overlap(
        parse_time(start1), parse_time(end1), parse_time(start2), parse_time(end2)
    )


def intervals_overlap(s1: int, e1: int, s2: int, e2: int) -> bool:
    return s1 < e2 and e1 > s2


# ─── Daten ────────────────────────────────────────────────────────────────────

def parse_date(value: str) -> date:
    """Parst "YYYY-MM-DD" (strikt) in ein date-Objekt."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValueError(f"Ungültiges Datumsformat (YYYY-MM-DD erwartet): {value!r}")
    return date.fromisoformat(value)


def day_of_week(d: date) -> int:
    """Wochentag mit 0=Sonntag … 6=Samstag."""
    return (d.weekday() + 1) % 7


def day_of_month(d: date) -> int:
    return d.day


def is_weekend(d: date) -> bool:
    return day_of_week(d) in (SATURDAY, SUNDAY)


def is_date_in_range(d: date, start: date, end: date) -> bool:
    """Inklusive Bereichsprüfung start ≤ d ≤ end."""
    return start <= d <= end


def at_midnight(d: date) -> datetime:
    return datetime.combine(d, time())


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Alle Tage von start bis einschließlich end."""
    for dt in rrule(DAILY, dtstart=at_midnight(start), until=at_midnight(end)):
        yield dt.date()


def week_start(d: date) -> date:
    """Sonntag der Woche, in der d liegt."""
    return d - timedelta(days=day_of_week(d))


def day_label(d: date) -> str:
    """Kurzlabel wie "Mo 04.03."."""
    return f"{DAY_NAMES[day_of_week(d)]} {d.strftime('%d.%m.')}"
