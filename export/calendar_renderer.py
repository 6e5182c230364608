"""Gemeinsamer Renderer für die Terminal-Kalenderanzeige.

Wird von `calendar` (Rich-Tabelle) und vom Excel-Export verwendet.
"""

from collections import defaultdict
from datetime import date, timedelta

from models.calendar import OccurrenceView
from export.helpers import STATUS_LABELS, flatten, format_views, monday_of


def render_agenda_rows(calendar: dict[str, list[OccurrenceView]]) -> list[list[str]]:
    """Gibt eine Zeile je Termin zurück.

    Jede Zeile: [Datum, Zeit, Kurs, Lehrkraft, Raum, Status, Termin-ID]
    """
    rows: list[list[str]] = []
    for v in flatten(calendar):
        rows.append([
            v.date.strftime("%d.%m.%Y"),
            f"{v.start_time}–{v.end_time}",
            f"{v.name} ({v.course_code})" if v.course_code else v.name,
            v.instructor.name if v.instructor else "—",
            v.room.name if v.room else "—",
            STATUS_LABELS[v.status],
            v.id,
        ])
    return rows


def render_week_rows(
    calendar: dict[str, list[OccurrenceView]],
    start: date,
    end: date,
    mode: str = "overview",
) -> list[list[str]]:
    """Gibt Tabellenzeilen für die Wochenansicht zurück.

    Jede Zeile: [Woche, Mo, Di, Mi, Do, Fr, Sa, So]
    Tage außerhalb von start..end bleiben leer, freie Tage erhalten '—'.
    """
    by_day: dict[date, list[OccurrenceView]] = defaultdict(list)
    for v in flatten(calendar):
        by_day[v.date].append(v)

    rows: list[list[str]] = []
    monday = monday_of(start)
    while monday <= end:
        cells = [f"KW {monday.isocalendar()[1]:02d}\n{monday.strftime('%d.%m.')}"]
        for i in range(7):
            day = monday + timedelta(days=i)
            if day < start or day > end:
                cells.append("")
            elif by_day.get(day):
                cells.append(format_views(by_day[day], mode))
            else:
                cells.append("—")
        rows.append(cells)
        monday += timedelta(days=7)
    return rows
