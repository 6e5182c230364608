"""Nachträgliche Prüfung der gespeicherten Termine.

Prüft den Speicher auf Doppelbuchungen und verwaiste Termine als
Sicherheitsnetz unabhängig von der Konfliktprüfung beim Buchen (z.B. nach
force-Buchungen oder manuellen Änderungen an der Datendatei).
"""

from collections import defaultdict
from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel

from models.instance import ClassInstance, InstanceStatus
from scheduling.timeutils import intervals_overlap, parse_time
from storage.document_store import DocumentStore
from storage.repositories import ClassRepository, DirectoryRepository, InstanceRepository


class AuditViolation(BaseModel):
    """Eine einzelne Auffälligkeit."""

    severity: Literal["error", "warning"]
    check: str           # z.B. "instructor_double_booking"
    description: str
    entity: str          # instructor_id / room_id / instance_id


class AuditReport(BaseModel):
    """Ergebnis der Prüfung."""

    violations: list[AuditViolation]
    instances_checked: int
    is_valid: bool       # True wenn keine Errors (Warnings ok)

    def print_rich(self) -> None:
        """Gibt den Report formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel
        from rich.table import Table
        from rich import box

        console = Console()
        errors = [v for v in self.violations if v.severity == "error"]
        warnings = [v for v in self.violations if v.severity == "warning"]

        status = (
            "[bold green]✓ KEINE DOPPELBUCHUNGEN[/bold green]"
            if self.is_valid
            else "[bold red]✗ VERLETZUNGEN GEFUNDEN[/bold red]"
        )
        lines = [status, f"Termine: {self.instances_checked} | "
                         f"Fehler: {len(errors)} | Warnungen: {len(warnings)}"]
        console.print(Panel("\n".join(lines), title="Buchungs-Audit", border_style="cyan"))

        if not self.violations:
            console.print("[dim]Keine Auffälligkeiten gefunden.[/dim]")
            return

        table = Table(box=box.ROUNDED, show_lines=True)
        table.add_column("Typ", width=8)
        table.add_column("Prüfung", width=28)
        table.add_column("Entität", width=12)
        table.add_column("Beschreibung")

        for v in self.violations:
            color = "red" if v.severity == "error" else "yellow"
            table.add_row(
                f"[{color}]{v.severity.upper()}[/{color}]",
                v.check,
                v.entity[:12],
                v.description,
            )
        console.print(table)


class BookingAuditor:
    """Prüft alle gespeicherten Termine (optional im Datumsbereich)."""

    def __init__(self, store: DocumentStore) -> None:
        self.classes = ClassRepository(store)
        self.instances = InstanceRepository(store)
        self.directory = DirectoryRepository(store)

    def audit(self, start: Optional[date] = None, end: Optional[date] = None) -> AuditReport:
        """Führt alle Prüfungen durch und gibt einen AuditReport zurück."""
        if start is not None or end is not None:
            instances = self.instances.in_range(start or date.min, end or date.max)
        else:
            instances = self.instances.all()
        active = [i for i in instances if i.status.occupies_slot]

        violations: list[AuditViolation] = []
        violations.extend(self._check_double_booking(active, "instructor_id", "instructor"))
        violations.extend(self._check_double_booking(active, "room_id", "room"))
        violations.extend(self._check_orphans(instances))
        violations.extend(self._check_inactive_resources(active))
        violations.extend(self._check_reschedule_chain(instances))

        has_errors = any(v.severity == "error" for v in violations)
        return AuditReport(
            violations=violations,
            instances_checked=len(instances),
            is_valid=not has_errors,
        )

    # ── Einzelne Prüfungen ────────────────────────────────────────────────────

    def _check_double_booking(
        self, instances: list[ClassInstance], attr: str, label: str
    ) -> list[AuditViolation]:
        """Keine Lehrkraft / kein Raum darf zwei überlappende Termine haben."""
        violations: list[AuditViolation] = []
        by_day: dict[tuple, list[ClassInstance]] = defaultdict(list)
        for inst in instances:
            key = getattr(inst, attr)
            if key:
                by_day[(key, inst.date)].append(inst)

        for (entity, day), items in by_day.items():
            items.sort(key=lambda i: i.start_time)
            for n, first in enumerate(items):
                for second in items[n + 1:]:
                    if parse_time(second.start_time) >= parse_time(first.end_time):
                        break
                    if intervals_overlap(
                        parse_time(first.start_time), parse_time(first.end_time),
                        parse_time(second.start_time), parse_time(second.end_time),
                    ):
                        violations.append(AuditViolation(
                            severity="error",
                            check=f"{label}_double_booking",
                            entity=entity,
                            description=(
                                f"{day.isoformat()}: {first.start_time}–{first.end_time} "
                                f"überschneidet {second.start_time}–{second.end_time} "
                                f"({self._name(first)} / {self._name(second)})."
                            ),
                        ))
        return violations

    def _check_orphans(self, instances: list[ClassInstance]) -> list[AuditViolation]:
        """Jeder Termin braucht einen existierenden Kurs."""
        violations: list[AuditViolation] = []
        for inst in instances:
            parent = self.classes.get(inst.parent_class_id)
            if parent is None:
                violations.append(AuditViolation(
                    severity="error",
                    check="orphaned_instance",
                    entity=inst.id,
                    description=f"{inst.date.isoformat()}: Kurs {inst.parent_class_id} existiert nicht.",
                ))
            elif not parent.is_active and inst.status == InstanceStatus.SCHEDULED \
                    and inst.date >= date.today():
                violations.append(AuditViolation(
                    severity="warning",
                    check="inactive_class_booking",
                    entity=inst.id,
                    description=f"{inst.date.isoformat()}: '{parent.name}' ist deaktiviert, "
                                f"Termin aber noch geplant.",
                ))
        return violations

    def _check_inactive_resources(self, instances: list[ClassInstance]) -> list[AuditViolation]:
        """Künftige Termine bei deaktivierter Lehrkraft oder deaktiviertem Raum."""
        violations: list[AuditViolation] = []
        today = date.today()
        for inst in instances:
            if inst.date < today:
                continue
            instructor = self.directory.get_instructor(inst.instructor_id)
            if instructor is None or not instructor.is_active:
                violations.append(AuditViolation(
                    severity="warning",
                    check="inactive_instructor",
                    entity=inst.instructor_id,
                    description=f"{inst.date.isoformat()} {inst.start_time}: "
                                f"Lehrkraft fehlt oder ist deaktiviert ({self._name(inst)}).",
                ))
            if inst.room_id:
                room = self.directory.get_room(inst.room_id)
                if room is None or not room.is_active:
                    violations.append(AuditViolation(
                        severity="warning",
                        check="inactive_room",
                        entity=inst.room_id,
                        description=f"{inst.date.isoformat()} {inst.start_time}: "
                                    f"Raum fehlt oder ist deaktiviert ({self._name(inst)}).",
                    ))
        return violations

    def _check_reschedule_chain(self, instances: list[ClassInstance]) -> list[AuditViolation]:
        """Ersatztermine müssen auf einen verschobenen Termin verweisen."""
        violations: list[AuditViolation] = []
        for inst in instances:
            if not inst.rescheduled_from:
                continue
            origin = self.instances.get(inst.rescheduled_from)
            if origin is None or origin.status != InstanceStatus.RESCHEDULED:
                violations.append(AuditViolation(
                    severity="warning",
                    check="broken_reschedule",
                    entity=inst.id,
                    description=f"{inst.date.isoformat()}: Ursprungstermin "
                                f"{inst.rescheduled_from} fehlt oder ist nicht verschoben.",
                ))
        return violations

    def _name(self, inst: ClassInstance) -> str:
        parent = self.classes.get(inst.parent_class_id)
        return parent.name if parent else "Instance"
