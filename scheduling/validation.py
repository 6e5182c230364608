"""Explizite Validierung vor Expansion und Speicherung.

Ersetzt implizite Pre-Save-Hooks: jede Kurs- oder Regeldefinition wird über
diese Funktionen geprüft, bevor sie expandiert oder geschrieben wird.
"""

from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from models.recurrence import RecurrenceConfig, RecurrencePattern
from models.scheduled_class import CLASS_ADAPTER, RecurringClass, SingleClass
from scheduling.errors import FieldError, InvalidRecurrenceError, ValidationError
from scheduling.timeutils import parse_time

ScheduledClassT = Union[SingleClass, RecurringClass]


def field_errors(exc: PydanticValidationError, prefix: str = "") -> list[FieldError]:
    """Übersetzt Pydantic-Fehler in FieldError-Einträge."""
    result = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        field = f"{prefix}{loc}" if loc else prefix.rstrip(".") or "__root__"
        result.append(FieldError(field=field, message=err.get("msg", "ungültig")))
    return result


def recurrence_errors(rec: RecurrenceConfig, prefix: str = "recurrence.") -> list[FieldError]:
    """Sammelt alle Regelverstöße einer Wiederholungsregel (ohne zu werfen)."""
    errors: list[FieldError] = []

    if rec.interval < 1:
        errors.append(FieldError(field=f"{prefix}interval",
                                 message="Intervall muss ≥ 1 sein"))

    if not rec.time_slots:
        errors.append(FieldError(field=f"{prefix}time_slots",
                                 message="Mindestens ein Zeitfenster erforderlich"))
    for i, slot in enumerate(rec.time_slots):
        if parse_time(slot.start_time) >= parse_time(slot.end_time):
            errors.append(FieldError(
                field=f"{prefix}time_slots.{i}",
                message=f"Ende ({slot.end_time}) muss nach Beginn ({slot.start_time}) liegen",
            ))

    if rec.pattern == RecurrencePattern.WEEKLY and not rec.days_of_week:
        errors.append(FieldError(field=f"{prefix}days_of_week",
                                 message="Wöchentliches Muster braucht mindestens einen Wochentag"))
    if rec.pattern == RecurrencePattern.MONTHLY and not rec.day_of_month:
        errors.append(FieldError(field=f"{prefix}day_of_month",
                                 message="Monatliches Muster braucht mindestens einen Monatstag"))

    for d in rec.days_of_week:
        if not 0 <= d <= 6:
            errors.append(FieldError(field=f"{prefix}days_of_week",
                                     message=f"Wochentag {d} außerhalb 0–6"))
    for d in rec.day_of_month:
        if not 1 <= d <= 31:
            errors.append(FieldError(field=f"{prefix}day_of_month",
                                     message=f"Monatstag {d} außerhalb 1–31"))

    if rec.occurrences is not None and rec.occurrences < 1:
        errors.append(FieldError(field=f"{prefix}occurrences",
                                 message="occurrences muss ≥ 1 sein"))
    if rec.start_date and rec.end_date and rec.end_date < rec.start_date:
        errors.append(FieldError(field=f"{prefix}end_date",
                                 message="Enddatum liegt vor dem Serienbeginn"))
    return errors


def validate_recurrence(rec: RecurrenceConfig) -> RecurrenceConfig:
    """Prüft eine Wiederholungsregel; wirft InvalidRecurrenceError bei Verstößen."""
    errors = recurrence_errors(rec)
    if errors:
        raise InvalidRecurrenceError(errors=errors)
    return rec


def parse_recurrence(data: Union[dict, RecurrenceConfig]) -> RecurrenceConfig:
    """Baut und validiert eine Wiederholungsregel aus Rohdaten."""
    if isinstance(data, RecurrenceConfig):
        return validate_recurrence(data)
    try:
        rec = RecurrenceConfig.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidRecurrenceError(errors=field_errors(e, "recurrence.")) from e
    return validate_recurrence(rec)


def validate_class(cls: ScheduledClassT) -> ScheduledClassT:
    """Prüft die Invarianten eines Kurses vor dem Speichern."""
    if isinstance(cls, RecurringClass):
        errors = recurrence_errors(cls.recurrence)
        if errors:
            raise InvalidRecurrenceError(errors=errors)
        return cls

    errors: list[FieldError] = []
    if parse_time(cls.start_time) >= parse_time(cls.end_time):
        errors.append(FieldError(
            field="end_time",
            message=f"Ende ({cls.end_time}) muss nach Beginn ({cls.start_time}) liegen",
        ))
    if cls.end_date is not None and cls.end_date < cls.start_date:
        errors.append(FieldError(field="end_date",
                                 message="Enddatum liegt vor dem Startdatum"))
    if errors:
        raise ValidationError(errors=errors)
    return cls


def parse_class(data: Union[dict[str, Any], ScheduledClassT]) -> ScheduledClassT:
    """Baut einen Kurs (Single/Recurring) aus Rohdaten und validiert ihn.

    Fehler in der Wiederholungsregel werden als InvalidRecurrenceError gemeldet,
    alle übrigen als ValidationError.
    """
    if isinstance(data, (SingleClass, RecurringClass)):
        return validate_class(data)
    try:
        cls = CLASS_ADAPTER.validate_python(data)
    except PydanticValidationError as e:
        errors = field_errors(e)
        # Pfade der Union beginnen mit dem Tag ("recurring.recurrence...")
        if any(".recurrence" in f.field or f.field.startswith("recurrence") for f in errors):
            raise InvalidRecurrenceError(errors=errors) from e
        raise ValidationError(errors=errors) from e
    return validate_class(cls)
