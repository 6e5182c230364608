"""Export-Modul: Excel (openpyxl) und Terminal-Kalender für den Kursplan."""

from export.calendar_renderer import render_agenda_rows, render_week_rows
from export.excel_export import ExcelExporter

__all__ = ["ExcelExporter", "render_agenda_rows", "render_week_rows"]
