"""ClassScheduler: Kurse anlegen, ändern, deaktivieren, suchen und verschieben.

Ablauf jeder Buchung:
  parse_class() → Referenzen prüfen → ConflictDetector → Materializer

Prüfung und Schreiben sind nicht atomar. Die eindeutigen Indizes im
Speicher fangen parallele Buchungen ab (ConcurrentBookingError); der Service
prüft dann einmal erneut und wiederholt den Schreibvorgang.
"""

import logging
from datetime import date
from typing import Any, Callable, Optional, TypeVar, Union

from config.schema import AppConfig
from models.instance import ClassInstance, InstanceStatus
from models.recurrence import RecurrencePattern
from models.scheduled_class import RecurringClass, SingleClass
from scheduling.conflicts import (
    BookingSubject,
    ConflictDetector,
    ConflictResult,
    candidate_window,
)
from scheduling.errors import (
    ConcurrentBookingError,
    ConflictDetectedError,
    FieldError,
    NotFoundError,
    ValidationError,
)
from scheduling.materializer import InstanceMaterializer, MaterializeResult
from scheduling.timeutils import normalize_time, parse_time, minutes_to_time
from scheduling.validation import parse_class
from storage.cache import Cache, CacheKeys
from storage.document_store import DocumentStore
from storage.repositories import ClassRepository, DirectoryRepository, InstanceRepository

logger = logging.getLogger(__name__)

ScheduledClassT = Union[SingleClass, RecurringClass]
T = TypeVar("T")

# Felder, die update_class() nicht übernimmt
_PROTECTED = {
    "id", "class_type", "generated_instances", "created_at", "updated_at", "is_active",
}


class ClassScheduler:
    """Fachliche Operationen rund um Kurse und ihre Termine."""

    def __init__(
        self,
        store: DocumentStore,
        cache: Optional[Cache] = None,
        config: Optional[AppConfig] = None,
        keys: Optional[CacheKeys] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.config = config or AppConfig()
        self.keys = keys or CacheKeys(self.config.cache.key_prefix)
        self._today = today or date.today
        self.classes = ClassRepository(store)
        self.instances = InstanceRepository(store)
        self.directory = DirectoryRepository(store)
        self.classes.ensure_indexes()
        self.directory.ensure_indexes()
        self.detector = ConflictDetector(store, self.config.scheduling.horizon_days)
        self.materializer = InstanceMaterializer(store, cache, self.config, self.keys)

    @classmethod
    def from_resources(cls, resources) -> "ClassScheduler":
        return cls(resources.store, resources.cache, resources.config, resources.keys)

    # ─── Hilfsfunktionen ───

    def _with_retry(self, attempt: Callable[[], T]) -> T:
        """Führt attempt aus; ConcurrentBookingError wird höchstens
        booking_retries-mal wiederholt (inkl. erneuter Konfliktprüfung)."""
        retries = self.config.scheduling.booking_retries
        for n in range(retries + 1):
            try:
                return attempt()
            except ConcurrentBookingError:
                if n >= retries:
                    raise
                logger.warning("Gleichzeitige Buchung erkannt – erneuter Versuch")
        raise AssertionError("unreachable")

    def _invalidate(self, class_id: Optional[str] = None) -> None:
        if self.cache is not None:
            self.keys.invalidate_schedule(self.cache, class_id)

    def _check_references(self, cls: ScheduledClassT) -> None:
        self.directory.require_instructor(cls.instructor_id)
        self.directory.require_room_type(cls.room_type_id)
        if cls.room_id:
            room = self.directory.require_room(cls.room_id)
            if room.room_type_id != cls.room_type_id:
                raise ValidationError(errors=[FieldError(
                    field="room_id",
                    message=f"Raum '{room.name}' gehört nicht zum gewählten Raumtyp",
                )])

    def _with_anchor(self, cls: ScheduledClassT) -> ScheduledClassT:
        """Serien brauchen einen festen Anker für Intervall und occurrences."""
        if isinstance(cls, RecurringClass) and cls.recurrence.start_date is None:
            rec = cls.recurrence.model_copy(update={"start_date": self._today()})
            return cls.model_copy(update={"recurrence": rec})
        return cls

    def _guard_conflicts(self, result: ConflictResult, force: bool) -> None:
        if not result.has_conflict:
            return
        if force or not self.config.scheduling.reject_conflicts:
            logger.warning(f"Buchung trotz {len(result.conflicts)} Konflikt(en)")
            return
        raise ConflictDetectedError(result)

    def _window(self, cls: ScheduledClassT) -> tuple[date, date]:
        return candidate_window(cls, self.config.scheduling.horizon_days, self._today())

    def check(self, cls: ScheduledClassT, exclude_class_id: Optional[str] = None
              ) -> ConflictResult:
        start, end = self._window(cls)
        return self.detector.check_class_conflicts(cls, start, end, exclude_class_id)

    # ─── Kurse ───

    def create_class(self, data: Union[dict[str, Any], ScheduledClassT],
                     force: bool = False) -> ScheduledClassT:
        """Legt einen Kurs an und materialisiert seine Termine.

        Wirft ValidationError/InvalidRecurrenceError bei ungültigen Daten,
        NotFoundError bei unbekannten Referenzen, ConflictDetectedError bei
        Konflikten (außer force=True) und ConcurrentBookingError, wenn auch der
        zweite Schreibversuch an einer parallelen Buchung scheitert.
        """
        cls = self._with_anchor(parse_class(data))
        self._check_references(cls)

        def attempt() -> ScheduledClassT:
            self._guard_conflicts(self.check(cls), force)
            with self.store.transaction():
                self.classes.add(cls)
                self.materializer.materialize(cls, *self._window(cls))
            return self.classes.require(cls.id)

        created = self._with_retry(attempt)
        self._invalidate(created.id)
        logger.info(f"Kurs angelegt: {created.name} ({created.class_type})")
        return created

    def update_class(self, class_id: str, changes: dict[str, Any],
                     force: bool = False) -> ScheduledClassT:
        """Ändert einen Kurs, prüft Konflikte ohne den Kurs selbst und
        gleicht die Termine ab.

        Künftige, unveränderte Termine, die nicht mehr zur neuen Definition
        passen, werden entfernt; übrige künftige geplante Termine übernehmen
        Lehrkraft und Raum des Kurses.
        Termine vor heute bleiben unverändert.
        """
        current = self.classes.require(class_id)
        blocked = _PROTECTED & set(changes)
        if blocked:
            raise ValidationError(errors=[
                FieldError(field=f, message="Feld ist nicht änderbar") for f in sorted(blocked)
            ])
        merged = {**current.model_dump(), **changes}
        updated = self._with_anchor(parse_class(merged))
        self._check_references(updated)
        window = self._future_window(updated)

        def attempt() -> ScheduledClassT:
            if window is not None:
                result = self.detector.check_class_conflicts(
                    updated, *window, exclude_class_id=class_id
                )
                self._guard_conflicts(result, force)
            with self.store.transaction():
                self.classes.save(updated)
                self._reconcile_future(updated, window)
                if window is not None:
                    self.materializer.materialize(updated, *window)
                else:
                    self.materializer.refresh_summary(class_id)
            return self.classes.require(class_id)

        saved = self._with_retry(attempt)
        self._invalidate(class_id)
        logger.info(f"Kurs geändert: {saved.name}")
        return saved

    def _future_window(self, cls: ScheduledClassT) -> Optional[tuple[date, date]]:
        """Fenster ab heute für Änderungen; None, wenn nichts mehr anzulegen ist.

        Vergangene Termine bleiben unangetastet. Ein bereits begonnener
        Einzeltermin behält seinen einen Termin.
        """
        today = self._today()
        if isinstance(cls, SingleClass) and cls.start_date < today:
            return None
        start, end = self._window(cls)
        start = max(start, today)
        return (start, end) if start <= end else None

    def _reconcile_future(self, cls: ScheduledClassT,
                          window: Optional[tuple[date, date]]) -> None:
        wanted = set()
        if window is not None:
            wanted = {
                (o.date, o.start_time, o.end_time)
                for o in self.materializer.occurrences_for(cls, *window)
            }
        for inst in self.instances.for_class(cls.id, start=self._today()):
            if inst.status != InstanceStatus.SCHEDULED:
                continue
            untouched = inst.notes is None and not inst.is_standalone
            if untouched and (inst.date, inst.start_time, inst.end_time) not in wanted:
                self.instances.delete(inst.id)
                continue
            if (inst.instructor_id, inst.room_id) != (cls.instructor_id, cls.room_id):
                self.instances.save(inst.model_copy(update={
                    "instructor_id": cls.instructor_id, "room_id": cls.room_id,
                }))

    def deactivate_class(self, class_id: str) -> ScheduledClassT:
        """Soft-Delete: Kurs inaktiv, künftige geplante Termine abgesagt."""
        cls = self.classes.require(class_id)
        today = self._today()
        cancelled = 0
        with self.store.transaction():
            self.classes.save(cls.model_copy(update={"is_active": False}))
            for inst in self.instances.for_class(class_id, start=today):
                if inst.status == InstanceStatus.SCHEDULED:
                    self.instances.save(inst.model_copy(update={
                        "status": InstanceStatus.CANCELLED,
                    }))
                    cancelled += 1
            saved = self.materializer.refresh_summary(class_id)
        self._invalidate(class_id)
        logger.info(f"Kurs deaktiviert: {cls.name} ({cancelled} Termine abgesagt)")
        return saved

    def get_class(self, class_id: str) -> ScheduledClassT:
        key = self.keys.class_(class_id)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return ClassRepository.from_doc(cached)
        cls = self.classes.require(class_id)
        if self.cache is not None:
            self.cache.set(key, cls.model_dump(mode="json"), ttl=self.config.cache.default_ttl)
        return cls

    def find_classes(
        self,
        search: Optional[str] = None,
        instructor_id: Optional[str] = None,
        room_type_id: Optional[str] = None,
        room_id: Optional[str] = None,
        pattern: Optional[str] = None,
        class_type: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_inactive: bool = False,
    ) -> list[ScheduledClassT]:
        """Volltextsuche + Filter. pattern filtert Serien nach Muster,
        start_date/end_date nach Überschneidung mit dem Kurszeitraum."""
        params = {
            "search": search, "instructor_id": instructor_id,
            "room_type_id": room_type_id, "room_id": room_id, "pattern": pattern,
            "class_type": class_type, "start_date": start_date, "end_date": end_date,
            "include_inactive": include_inactive,
        }
        key = self.keys.classes(params)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return [ClassRepository.from_doc(d) for d in cached]

        if pattern is not None:
            pattern = RecurrencePattern(pattern).value
        found = self.classes.search(
            search, active_only=not include_inactive,
            instructor_id=instructor_id, room_type_id=room_type_id,
            room_id=room_id, class_type=class_type,
        )
        result = []
        for cls in found:
            if pattern is not None and not (
                isinstance(cls, RecurringClass) and cls.recurrence.pattern.value == pattern
            ):
                continue
            if start_date or end_date:
                first, last = self._span(cls)
                if end_date and first > end_date:
                    continue
                if start_date and last is not None and last < start_date:
                    continue
            result.append(cls)

        if self.cache is not None:
            self.cache.set(key, [c.model_dump(mode="json") for c in result],
                           ttl=self.config.cache.classes_ttl)
        return result

    @staticmethod
    def _span(cls: ScheduledClassT) -> tuple[date, Optional[date]]:
        if isinstance(cls, SingleClass):
            return cls.start_date, cls.effective_end_date
        rec = cls.recurrence
        return rec.start_date or date.min, rec.end_date

    # ─── Termine ───

    def generate_instances(self, class_id: str, until: Optional[date] = None
                           ) -> MaterializeResult:
        """Materialisiert die Termine eines aktiven Kurses bis einschließlich until."""
        cls = self.classes.require(class_id)
        if not cls.is_active:
            raise NotFoundError("Aktiver Kurs", class_id)
        start, end = self._window(cls)
        if until is not None:
            end = until
        if end < start:
            raise ValidationError(errors=[FieldError(
                field="until", message="Ende liegt vor dem Serienbeginn",
            )])
        return self._with_retry(lambda: self.materializer.materialize(cls, start, end))

    def update_status(self, class_id: str, status: Union[InstanceStatus, str],
                      instance_id: Optional[str] = None, on_date: Optional[date] = None,
                      notes: Optional[str] = None) -> ClassInstance:
        return self.materializer.update_status(
            class_id, status, instance_id, on_date or self._today(), notes
        )

    def reschedule_instance(
        self,
        class_id: str,
        new_date: date,
        instance_id: Optional[str] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        room_id: Optional[str] = None,
        notes: Optional[str] = None,
        force: bool = False,
    ) -> ClassInstance:
        """Verschiebt einen Termin: das Original wird "rescheduled", ein
        Ersatztermin (rescheduled_from) wird nach Konfliktprüfung angelegt.

        Das Original bleibt als Buchung bestehen und belegt seinen Slot weiter;
        der Ersatztermin darf sich daher nicht mit ihm überschneiden.
        Ohne neue Uhrzeiten bleibt die Dauer des Originals erhalten.
        """
        cls = self.classes.require(class_id)
        original = self.materializer.resolve_instance(cls, instance_id, self._today())
        if not original.status.occupies_slot:
            raise ValidationError(errors=[FieldError(
                field="status",
                message=f"Termin mit Status '{original.status.value}' kann nicht verschoben werden",
            )])

        start = normalize_time(start_time) if start_time else original.start_time
        if end_time:
            end = normalize_time(end_time)
        else:
            duration = parse_time(original.end_time) - parse_time(original.start_time)
            end_minutes = parse_time(start) + duration
            if end_minutes >= 24 * 60:
                raise ValidationError(errors=[FieldError(
                    field="start_time", message="Termin würde über Mitternacht hinausgehen",
                )])
            end = minutes_to_time(end_minutes)
        if parse_time(start) >= parse_time(end):
            raise ValidationError(errors=[FieldError(
                field="end_time", message=f"Ende ({end}) muss nach Beginn ({start}) liegen",
            )])

        if (new_date, start) == (original.date, original.start_time):
            raise ValidationError(errors=[FieldError(
                field="new_date", message="Ersatztermin braucht ein anderes Datum oder einen anderen Beginn",
            )])

        target_room = room_id or original.room_id
        if room_id:
            self.directory.require_room(room_id)
        subject = BookingSubject(
            instructor_id=original.instructor_id, room_id=target_room,
            date=new_date, start_time=start, end_time=end,
        )

        def attempt() -> ClassInstance:
            result = self.detector.check_conflicts(subject)
            self._guard_conflicts(result, force)
            with self.store.transaction():
                self.instances.save(original.model_copy(update={
                    "status": InstanceStatus.RESCHEDULED,
                }))
                replacement = self.instances.add(ClassInstance(
                    parent_class_id=class_id,
                    date=new_date,
                    start_time=start,
                    end_time=end,
                    instructor_id=original.instructor_id,
                    room_id=target_room,
                    notes=notes,
                    rescheduled_from=original.id,
                ))
                self.materializer.refresh_summary(class_id)
            return replacement

        replacement = self._with_retry(attempt)
        self._invalidate(class_id)
        logger.info(f"Termin verschoben: {cls.name} {original.date} → {new_date} {start}")
        return replacement

    def get_occurrences_in_range(self, start: date, end: date, **filters):
        return self.materializer.get_occurrences_in_range(start, end, **filters)
