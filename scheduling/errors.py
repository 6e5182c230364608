"""Fehler-Taxonomie der Kursplanung.

Alle fachlichen Fehler erben von SchedulingError und tragen optional
feldgenaue Details (FieldError), damit CLI und Aufrufer sie direkt anzeigen
können.
"""

from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel

if TYPE_CHECKING:
    from scheduling.conflicts import ConflictResult


class FieldError(BaseModel):
    """Ein einzelner feldbezogener Validierungsfehler."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class SchedulingError(Exception):
    """Basisklasse aller fachlichen Fehler."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[list[FieldError]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors: list[FieldError] = list(errors or [])

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        details = "; ".join(str(e) for e in self.errors)
        return f"{self.message} ({details})"


class ValidationError(SchedulingError):
    """Ungültige Eingabedaten (außerhalb der Wiederholungsregel)."""

    status_code = 400

    def __init__(self, message: str = "Validierung fehlgeschlagen",
                 errors: Optional[list[FieldError]] = None) -> None:
        super().__init__(message, errors)


class InvalidRecurrenceError(ValidationError):
    """Fehlerhafte Wiederholungsregel (fehlende Tageslisten, Slot invertiert, Intervall ≤ 0)."""

    def __init__(self, message: str = "Ungültige Wiederholungsregel",
                 errors: Optional[list[FieldError]] = None) -> None:
        super().__init__(message, errors)


class NotFoundError(SchedulingError):
    """Referenzierte Lehrkraft, Raum, Kurs oder Termin existiert nicht (oder ist inaktiv)."""

    status_code = 404

    def __init__(self, resource: str, entity_id: Optional[str] = None) -> None:
        message = (
            f"{resource} mit ID '{entity_id}' nicht gefunden"
            if entity_id else f"{resource} nicht gefunden"
        )
        super().__init__(message)
        self.resource = resource
        self.entity_id = entity_id


class ConflictDetectedError(SchedulingError):
    """Vom Aufrufer ausgelöst, wenn die Konfliktprüfung Überschneidungen meldet.

    Der ConflictDetector selbst wirft diesen Fehler nie: ein Konflikt ist ein
    normales Ergebnis. Erst der Service entscheidet, ob abgelehnt oder trotzdem
    gebucht wird (force=True).
    """

    status_code = 409

    def __init__(self, result: "ConflictResult") -> None:
        errors = [
            FieldError(
                field=c.conflict_type,
                message=(
                    f"{c.class_name} am {c.date.isoformat()} "
                    f"{c.start_time}–{c.end_time}"
                ),
            )
            for c in result.conflicts
        ]
        super().__init__(
            f"{len(result.conflicts)} Terminkonflikt(e) gefunden", errors
        )
        self.result = result


class ConcurrentBookingError(SchedulingError):
    """Eindeutigkeits-Verletzung im Speicher: zwei Buchungen haben gleichzeitig
    die Konfliktprüfung bestanden."""

    status_code = 409
