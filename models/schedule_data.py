"""ScheduleData: Vollständiger Datensatz (Stammdaten + Kurse) + Referenz-Check (Pydantic v2)."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from models.instructor import Instructor
from models.room import Room, RoomType
from models.scheduled_class import ScheduledClass, RecurringClass


class ReferenceReport(BaseModel):
    """Ergebnis des Referenz-Checks."""

    is_consistent: bool
    errors: list[str]      # Verweise ins Leere (Import unmöglich)
    warnings: list[str]    # Hinweise (Import möglich)

    def print_rich(self) -> None:
        """Gibt den Report formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel

        console = Console()
        if self.is_consistent:
            status = "[bold green]✓ KONSISTENT[/bold green]"
        else:
            status = "[bold red]✗ INKONSISTENT[/bold red]"

        lines = [status]
        if self.errors:
            lines.append("\n[red bold]Fehler:[/red bold]")
            for e in self.errors:
                lines.append(f"  [red]• {e}[/red]")
        if self.warnings:
            lines.append("\n[yellow bold]Warnungen:[/yellow bold]")
            for w in self.warnings:
                lines.append(f"  [yellow]• {w}[/yellow]")
        if not self.errors and not self.warnings:
            lines.append("[dim]Keine Probleme gefunden.[/dim]")

        console.print(Panel("\n".join(lines), title="Referenz-Check", border_style="cyan"))


class ScheduleData(BaseModel):
    """Vollständiger Datensatz: Lehrkräfte, Raumtypen, Räume, Kurse."""

    organization_name: str = "Muster-Akademie"
    instructors: list[Instructor]
    room_types: list[RoomType]
    rooms: list[Room]
    classes: list[ScheduledClass]
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    data_version: str = "1.0"

    # ─── Übersicht ───

    def summary(self) -> str:
        """Kurze Übersicht über den Datensatz."""
        num_recurring = sum(1 for c in self.classes if isinstance(c, RecurringClass))
        capacity = sum(
            rt.capacity for rt in self.room_types for r in self.rooms if r.room_type_id == rt.id
        )
        lines = [
            f"Einrichtung: {self.organization_name}",
            f"Lehrkräfte: {len(self.instructors)}",
            f"Raumtypen: {len(self.room_types)}",
            f"Räume: {len(self.rooms)} (Gesamtkapazität {capacity} Plätze)",
            f"Kurse: {len(self.classes)} "
            f"({num_recurring} Serien, {len(self.classes) - num_recurring} Einzeltermine)",
        ]
        return "\n".join(lines)

    # ─── Referenz-Check ───

    def check_references(self) -> ReferenceReport:
        """Prüft, ob alle Verweise auflösbar sind.

        Prüfungen:
        1. Raum → Raumtyp
        2. Kurs → Lehrkraft, Raumtyp, Raum (falls gesetzt)
        3. Raum eines Kurses gehört zum Raumtyp des Kurses
        4. E-Mail-Adressen eindeutig
        """
        errors: list[str] = []
        warnings: list[str] = []

        instructor_ids = {i.id for i in self.instructors}
        room_type_ids = {rt.id for rt in self.room_types}
        rooms = {r.id: r for r in self.rooms}

        for room in self.rooms:
            if room.room_type_id not in room_type_ids:
                errors.append(f"Raum '{room.name}': unbekannter Raumtyp {room.room_type_id}.")

        for cls in self.classes:
            if cls.instructor_id not in instructor_ids:
                errors.append(f"Kurs '{cls.name}': unbekannte Lehrkraft {cls.instructor_id}.")
            if cls.room_type_id not in room_type_ids:
                errors.append(f"Kurs '{cls.name}': unbekannter Raumtyp {cls.room_type_id}.")
            if cls.room_id:
                room = rooms.get(cls.room_id)
                if room is None:
                    errors.append(f"Kurs '{cls.name}': unbekannter Raum {cls.room_id}.")
                elif room.room_type_id != cls.room_type_id:
                    warnings.append(
                        f"Kurs '{cls.name}': Raum '{room.name}' passt nicht zum Raumtyp."
                    )
            elif cls.room_type_id in room_type_ids and not any(
                r.room_type_id == cls.room_type_id for r in self.rooms
            ):
                warnings.append(f"Kurs '{cls.name}': kein Raum dieses Typs vorhanden.")

        seen: set[str] = set()
        for instructor in self.instructors:
            if instructor.email in seen:
                errors.append(f"E-Mail doppelt vergeben: {instructor.email}.")
            seen.add(instructor.email)

        busy = {c.instructor_id for c in self.classes}
        idle = [i.full_name for i in self.instructors if i.id not in busy]
        if idle:
            warnings.append(
                f"{len(idle)} Lehrkraft/Lehrkräfte ohne Kurs "
                f"({', '.join(idle[:4])}{'...' if len(idle) > 4 else ''})."
            )

        return ReferenceReport(
            is_consistent=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    # ─── Persistenz ────────────────────────────────────────────────────────

    def save_json(self, path: Path) -> None:
        """Speichert den kompletten Datensatz als JSON-Datei."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        updated = self.model_copy(update={
            "modified_at": now,
            "created_at": self.created_at or now,
        })
        with open(path, "w", encoding="utf-8") as f:
            f.write(updated.model_dump_json(indent=2))

    @classmethod
    def load_json(cls, path: Path) -> "ScheduleData":
        """Lädt einen Datensatz aus einer JSON-Datei."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"JSON-Datei nicht gefunden: {path}")
        with open(path, "r", encoding="utf-8") as f:
            return cls.model_validate_json(f.read())
