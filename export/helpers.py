"""Gemeinsame Hilfsfunktionen für Excel-Export und Terminal-Kalender."""

from datetime import date, timedelta

from models.calendar import OccurrenceView
from models.instance import InstanceStatus
from scheduling.timeutils import day_label, week_start

# ─── Farbpalette (RRGGBB, ohne #) ─────────────────────────────────────────────

COLORS: dict[str, str] = {
    "scheduled":   "B3D4FF",
    "completed":   "B3FFB3",
    "cancelled":   "FF9999",
    "rescheduled": "FFF2B3",
    "free":        "F5F5F5",
    "weekend":     "EEEEEE",
    "header":      "4472C4",
}

STATUS_LABELS: dict[InstanceStatus, str] = {
    InstanceStatus.SCHEDULED: "geplant",
    InstanceStatus.COMPLETED: "durchgeführt",
    InstanceStatus.CANCELLED: "abgesagt",
    InstanceStatus.RESCHEDULED: "verschoben",
}

# Rich-Stile je Status
STATUS_STYLES: dict[InstanceStatus, str] = {
    InstanceStatus.SCHEDULED: "cyan",
    InstanceStatus.COMPLETED: "green",
    InstanceStatus.CANCELLED: "red strike",
    InstanceStatus.RESCHEDULED: "yellow",
}


def today_str() -> str:
    """Gibt das heutige Datum als DD.MM.YYYY zurück."""
    return date.today().strftime("%d.%m.%Y")


def status_color(status: InstanceStatus) -> str:
    return COLORS.get(status.value, COLORS["free"])


def week_header(monday: date) -> list[str]:
    """Spaltenköpfe "Mo 04.03." … "So 10.03." einer Woche ab Montag."""
    return [day_label(monday + timedelta(days=i)) for i in range(7)]


def monday_of(d: date) -> date:
    """Montag der (Mo–So-)Woche, in der d liegt."""
    monday = week_start(d) + timedelta(days=1)
    return monday if monday <= d else monday - timedelta(days=7)


def flatten(calendar: dict[str, list[OccurrenceView]]) -> list[OccurrenceView]:
    """Kalender-Feed als flache, sortierte Liste."""
    return [v for key in sorted(calendar) for v in calendar[key]]


def format_view(view: OccurrenceView, mode: str = "instructor") -> str:
    """Formatiert einen Termin als Zelleninhalt.

    mode='instructor': "Kurs\\nRaum"
    mode='room':       "Kurs\\nLehrkraft"
    mode='overview':   "Kurs\\nLehrkraft · Raum"
    """
    room = view.room.name if view.room else "—"
    instructor = view.instructor.name if view.instructor else "—"
    title = view.course_code or view.name
    if view.status != InstanceStatus.SCHEDULED:
        title = f"{title} ({STATUS_LABELS[view.status]})"
    if mode == "instructor":
        return f"{title}\n{room}"
    if mode == "room":
        return f"{title}\n{instructor}"
    return f"{title}\n{instructor} · {room}"


def format_views(views: list[OccurrenceView], mode: str = "instructor") -> str:
    """Mehrere Termine einer Zelle, getrennt durch ──."""
    return "\n──\n".join(f"{v.start_time}–{v.end_time} {format_view(v, mode)}" for v in views)
