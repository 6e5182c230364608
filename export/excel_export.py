"""Excel-Export für den Kursplan (openpyxl)."""

from datetime import date
from pathlib import Path

from models.calendar import OccurrenceView
from export.calendar_renderer import render_week_rows
from export.helpers import (
    COLORS, flatten, monday_of, STATUS_LABELS, status_color, today_str, week_header,
)


class ExcelExporter:
    """Exportiert einen Kalender-Feed in eine Excel-Datei.

    Sheets: Übersicht (alle Termine als Liste), je Lehrkraft und je Raum
    ein Wochenraster.
    """

    # Spaltenbreiten (Excel-Einheiten)
    COL_WEEK_W = 10
    COL_DAY_W  = 24

    # Zeilenhöhen (Punkte)
    ROW_HEADER_H = 22
    ROW_WEEK_H   = 64

    LIST_HEADERS = ["Datum", "Zeit", "Kurs", "Kürzel", "Lehrkraft", "Raum", "Status", "Notiz"]
    LIST_WIDTHS  = [12, 13, 30, 10, 24, 18, 14, 30]

    def __init__(
        self,
        calendar: dict[str, list[OccurrenceView]],
        start: date,
        end: date,
        organization_name: str = "Muster-Akademie",
    ):
        self.calendar = calendar
        self.start = start
        self.end = end
        self.organization_name = organization_name
        self.views = flatten(calendar)

    # ─── Öffentliche API ──────────────────────────────────────────────────────

    def export(self, output_path: Path, per_room: bool = True) -> None:
        """Erstellt die Excel-Datei mit allen Sheets."""
        from openpyxl import Workbook
        wb = Workbook()
        wb.remove(wb.active)   # Leeres Standard-Sheet entfernen

        self._sheet_uebersicht(wb)

        instructors = sorted(
            {v.instructor.id: v.instructor.name for v in self.views if v.instructor}.items(),
            key=lambda item: item[1],
        )
        for instructor_id, name in instructors:
            subset = [v for v in self.views if v.instructor and v.instructor.id == instructor_id]
            self._sheet_woche(wb, f"LK {name}", subset, mode="instructor")

        if per_room:
            rooms = sorted(
                {v.room.id: v.room.name for v in self.views if v.room}.items(),
                key=lambda item: item[1],
            )
            for room_id, name in rooms:
                subset = [v for v in self.views if v.room and v.room.id == room_id]
                self._sheet_woche(wb, f"Raum {name}", subset, mode="room")

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(output_path)

    # ─── Style-Helpers ────────────────────────────────────────────────────────

    def _fill(self, hex_color: str):
        from openpyxl.styles import PatternFill
        return PatternFill(start_color=hex_color, end_color=hex_color, fill_type="solid")

    def _center_align(self, wrap: bool = True):
        from openpyxl.styles import Alignment
        return Alignment(wrap_text=wrap, horizontal="center", vertical="center")

    def _thin_border(self):
        from openpyxl.styles import Border, Side
        s = Side(border_style="thin", color="BBBBBB")
        return Border(left=s, right=s, top=s, bottom=s)

    def _write_header_row(self, ws, headers: list[str], row: int = 1) -> None:
        from openpyxl.styles import Font
        fill = self._fill(COLORS["header"])
        border = self._thin_border()
        for col, text in enumerate(headers, 1):
            cell = ws.cell(row=row, column=col, value=text)
            cell.fill = fill
            cell.font = Font(bold=True, color="FFFFFF", size=10)
            cell.alignment = self._center_align(wrap=False)
            cell.border = border
        ws.row_dimensions[row].height = self.ROW_HEADER_H

    def _sheet_title(self, wb, title: str) -> str:
        """Excel erlaubt max. 31 Zeichen und keine Duplikate."""
        for ch in "[]:*?/\\":
            title = title.replace(ch, "-")
        base = title[:31]
        n = 2
        while base in wb.sheetnames:
            suffix = f" ({n})"
            base = title[: 31 - len(suffix)] + suffix
            n += 1
        return base

    # ─── Sheet: Übersicht ─────────────────────────────────────────────────────

    def _sheet_uebersicht(self, wb) -> None:
        from openpyxl.styles import Font
        from openpyxl.utils import get_column_letter

        ws = wb.create_sheet(title="Übersicht", index=0)
        ws.cell(row=1, column=1, value=self.organization_name).font = Font(bold=True, size=14)
        ws.cell(row=2, column=1, value=f"Erstellt: {today_str()}")
        ws.cell(
            row=2, column=3,
            value=f"Zeitraum: {self.start.strftime('%d.%m.%Y')} – {self.end.strftime('%d.%m.%Y')}",
        )
        ws.cell(row=2, column=5, value=f"Termine: {len(self.views)}")

        self._write_header_row(ws, self.LIST_HEADERS, row=4)
        border = self._thin_border()
        row = 5
        for v in self.views:
            values = [
                v.date.strftime("%d.%m.%Y"),
                f"{v.start_time}–{v.end_time}",
                v.name,
                v.course_code or "",
                v.instructor.name if v.instructor else "",
                v.room.name if v.room else "",
                STATUS_LABELS[v.status],
                v.notes or "",
            ]
            for col, value in enumerate(values, 1):
                c = ws.cell(row=row, column=col, value=value)
                c.border = border
            ws.cell(row=row, column=7).fill = self._fill(status_color(v.status))
            row += 1

        for col, width in enumerate(self.LIST_WIDTHS, 1):
            ws.column_dimensions[get_column_letter(col)].width = width
        ws.freeze_panes = "A5"

    # ─── Sheet: Wochenraster ──────────────────────────────────────────────────

    def _sheet_woche(self, wb, title: str, views: list[OccurrenceView], mode: str) -> None:
        from openpyxl.styles import Font
        from openpyxl.utils import get_column_letter

        ws = wb.create_sheet(title=self._sheet_title(wb, title))
        ws.column_dimensions["A"].width = self.COL_WEEK_W
        for col in range(2, 9):
            ws.column_dimensions[get_column_letter(col)].width = self.COL_DAY_W

        headers = ["Woche"] + [h.split(" ")[0] for h in week_header(monday_of(self.start))]
        self._write_header_row(ws, headers)

        by_date = {}
        for v in views:
            by_date.setdefault(v.date.isoformat(), []).append(v)
        rows = render_week_rows(by_date, self.start, self.end, mode=mode)

        border = self._thin_border()
        for r, cells in enumerate(rows, 2):
            for col, text in enumerate(cells, 1):
                c = ws.cell(row=r, column=col, value=text or None)
                c.alignment = self._center_align()
                c.border = border
                c.font = Font(size=8, bold=(col == 1))
                if col == 1:
                    continue
                if not text:
                    c.fill = self._fill(COLORS["weekend"])
                elif text == "—":
                    c.fill = self._fill(COLORS["free"])
                else:
                    c.fill = self._fill(self._cell_color(text))
            ws.row_dimensions[r].height = self.ROW_WEEK_H

    def _cell_color(self, text: str) -> str:
        """Farbe nach Status des ersten Termins der Zelle."""
        first = text.split("\n──\n")[0]
        for status, label in STATUS_LABELS.items():
            if f"({label})" in first:
                return COLORS[status.value]
        return COLORS["scheduled"]
