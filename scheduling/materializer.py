"""Materialisierung: expandierte Termine als ClassInstance-Datensätze speichern.

Ein Serientermin wird über (Kurs, Datum, Beginn, Ende) identifiziert. Existiert
dazu bereits ein Datensatz, bleibt er unverändert (Status und Notizen
überleben jede erneute Expansion); sonst wird er mit Status "scheduled"
angelegt. Ein Durchlauf ist atomar: entweder alle neuen Termine des Fensters
werden geschrieben oder keiner.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterator, Optional, Union

from pydantic import TypeAdapter

from config.schema import AppConfig
from models.calendar import EntityRef, OccurrenceView
from models.instance import ClassInstance, GeneratedInstance, InstanceStatus
from models.scheduled_class import RecurringClass, SingleClass
from models.timeslot import Occurrence
from scheduling.errors import NotFoundError, ValidationError, FieldError
from scheduling.recurrence import expand, iter_expand, series_window
from scheduling.timeutils import iter_dates, normalize_time, parse_date
from storage.cache import Cache, CacheKeys
from storage.document_store import DocumentStore
from storage.repositories import ClassRepository, DirectoryRepository, InstanceRepository

logger = logging.getLogger(__name__)

ScheduledClassT = Union[SingleClass, RecurringClass]

CALENDAR_ADAPTER: TypeAdapter = TypeAdapter(dict[str, list[OccurrenceView]])

# "<kurs-id>:<YYYY-MM-DD>:<HH:MM>"
_OCCURRENCE_KEY = re.compile(r"^(?P<cid>.+):(?P<date>\d{4}-\d{2}-\d{2}):(?P<time>\d{1,2}:\d{2})$")
# "YYYY-MM-DD" oder "<kurs-id>-YYYY-MM-DD"
_DATE_ID = re.compile(r"^(?:(?P<cid>.+)-)?(?P<date>\d{4}-\d{2}-\d{2})$")


def occurrence_key(class_id: str, occ: Occurrence) -> str:
    """Adressierbarer Schlüssel eines (noch nicht materialisierten) Termins."""
    return f"{class_id}:{occ.date.isoformat()}:{occ.start_time}"


@dataclass
class MaterializeResult:
    class_id: str
    created: list[ClassInstance] = field(default_factory=list)
    preserved: list[ClassInstance] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.created) + len(self.preserved)

    def summary(self) -> str:
        return f"{len(self.created)} neu, {len(self.preserved)} unverändert"


class InstanceMaterializer:
    """Schreibt Termine eines Kurses und liefert den Kalender-Feed."""

    def __init__(
        self,
        store: DocumentStore,
        cache: Optional[Cache] = None,
        config: Optional[AppConfig] = None,
        keys: Optional[CacheKeys] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.config = config or AppConfig()
        self.keys = keys or CacheKeys(self.config.cache.key_prefix)
        self.classes = ClassRepository(store)
        self.instances = InstanceRepository(store)
        self.directory = DirectoryRepository(store)
        self.instances.ensure_indexes()

    @property
    def horizon_days(self) -> int:
        return self.config.scheduling.horizon_days

    # ─── Materialisierung ───

    def occurrences_for(self, cls: ScheduledClassT, window_start: Optional[date] = None,
                        window_end: Optional[date] = None) -> list[Occurrence]:
        """Termine, die materialize() für diesen Kurs anlegen würde."""
        if isinstance(cls, SingleClass):
            return [Occurrence(cls.start_date, cls.start_time, cls.end_time)]
        start, end = series_window(cls.recurrence, window_start, window_end, self.horizon_days)
        return expand(cls.recurrence, start, end)

    def materialize(self, cls: ScheduledClassT, window_start: Optional[date] = None,
                    window_end: Optional[date] = None) -> MaterializeResult:
        """Legt fehlende Termine im Fenster an; bestehende bleiben unverändert.

        Einzeltermin: genau ein Termin, unabhängig vom Fenster.
        Wirft InvalidRecurrenceError bei fehlerhafter Regel,
        ConcurrentBookingError bei Eindeutigkeitsverletzung (ohne Teilergebnis).
        """
        occurrences = self.occurrences_for(cls, window_start, window_end)
        result = MaterializeResult(class_id=cls.id)

        with self.store.transaction():
            for occ in occurrences:
                existing = self.instances.by_occurrence(
                    cls.id, occ.date, occ.start_time, occ.end_time
                )
                if existing is not None:
                    result.preserved.append(existing)
                    continue
                result.created.append(self.instances.add(self._new_instance(cls, occ)))
            self.refresh_summary(cls.id)

        self._invalidate(cls.id)
        logger.info(f"Materialisiert '{cls.name}': {result.summary()}")
        return result

    def _new_instance(self, cls: ScheduledClassT, occ: Occurrence) -> ClassInstance:
        return ClassInstance(
            parent_class_id=cls.id,
            date=occ.date,
            start_time=occ.start_time,
            end_time=occ.end_time,
            instructor_id=cls.instructor_id,
            room_id=cls.room_id,
        )

    def ensure_instance(self, cls: ScheduledClassT, occ: Occurrence) -> ClassInstance:
        """Materialisiert genau einen Termin bei Bedarf."""
        existing = self.instances.by_occurrence(cls.id, occ.date, occ.start_time, occ.end_time)
        if existing is not None:
            return existing
        return self.instances.add(self._new_instance(cls, occ))

    def refresh_summary(self, class_id: str) -> ScheduledClassT:
        """Schreibt generated_instances des Kurses aus den gespeicherten Terminen neu."""
        cls = self.classes.require(class_id)
        summary = [GeneratedInstance.from_instance(i) for i in self.instances.for_class(class_id)]
        return self.classes.save(cls.model_copy(update={"generated_instances": summary}))

    # ─── Status ───

    def update_status(
        self,
        class_id: str,
        status: Union[InstanceStatus, str],
        instance_id: Optional[str] = None,
        on_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> ClassInstance:
        """Setzt den Status genau eines Termins.

        Zielauswahl:
          1. instance_id angegeben: dieser Termin (gespeicherte ID,
             Termin-Schlüssel oder Datums-ID; wird bei Bedarf materialisiert)
          2. Einzeltermin: sein einziger Termin
          3. Serie: frühester geplanter Termin ab on_date (Standard: heute),
             sonst der letzte Termin davor
        """
        try:
            status = InstanceStatus(status)
        except ValueError as e:
            raise ValidationError(errors=[FieldError(
                field="status", message=f"Unbekannter Status '{status}'",
            )]) from e
        if status == InstanceStatus.RESCHEDULED:
            raise ValidationError(errors=[FieldError(
                field="status",
                message="'rescheduled' entsteht nur beim Verschieben (mit Ersatztermin)",
            )])

        cls = self.classes.require(class_id)
        with self.store.transaction():
            target = self.resolve_instance(cls, instance_id, on_date)
            update = {"status": status}
            if notes is not None:
                update["notes"] = notes
            target = self.instances.save(target.model_copy(update=update))
            self.refresh_summary(class_id)

        self._invalidate(class_id)
        logger.info(f"Status '{cls.name}' {target.date} {target.start_time} → {status.value}")
        return target

    def resolve_instance(self, cls: ScheduledClassT, instance_id: Optional[str] = None,
                         on_date: Optional[date] = None) -> ClassInstance:
        if instance_id:
            return self._resolve_by_id(cls, instance_id)
        if isinstance(cls, SingleClass):
            return self.ensure_instance(cls, Occurrence(cls.start_date, cls.start_time, cls.end_time))
        return self._resolve_by_date(cls, on_date or date.today())

    def _resolve_by_id(self, cls: ScheduledClassT, instance_id: str) -> ClassInstance:
        stored = self.instances.get(instance_id)
        if stored is not None:
            if stored.parent_class_id != cls.id:
                raise NotFoundError("Termin", instance_id)
            return stored

        slot_time: Optional[str] = None
        match = _OCCURRENCE_KEY.match(instance_id)
        if match:
            slot_time = normalize_time(match.group("time"))
        else:
            match = _DATE_ID.match(instance_id)
        if match is None or (match.group("cid") and match.group("cid") != cls.id):
            raise NotFoundError("Termin", instance_id)
        try:
            on = parse_date(match.group("date"))
        except ValueError as e:
            raise NotFoundError("Termin", instance_id) from e

        if isinstance(cls, SingleClass):
            if not cls.start_date <= on <= cls.effective_end_date:
                raise NotFoundError("Termin", instance_id)
            candidates = [Occurrence(cls.start_date, cls.start_time, cls.end_time)]
        else:
            candidates = expand(cls.recurrence, on, on)
            if slot_time is not None:
                candidates = [o for o in candidates if o.start_time == slot_time]
        if not candidates:
            raise NotFoundError("Termin", instance_id)
        return self.ensure_instance(cls, candidates[0])

    def _resolve_by_date(self, cls: RecurringClass, on: date) -> ClassInstance:
        stored = {i.occurrence_key: i for i in self.instances.for_class(cls.id)}

        # Frühester geplanter Termin ab on (Serientermin oder Ersatztermin)
        forward: Optional[tuple] = None
        start, end = series_window(cls.recurrence, on, None, self.horizon_days)
        if start <= end:
            for occ in iter_expand(cls.recurrence, start, end):
                inst = stored.get((cls.id, occ.date, occ.start_time, occ.end_time))
                if inst is None or inst.status == InstanceStatus.SCHEDULED:
                    forward = (occ.date, occ.start_time, inst, occ)
                    break
        for inst in stored.values():
            if inst.is_standalone and inst.date >= on and inst.status == InstanceStatus.SCHEDULED:
                if forward is None or (inst.date, inst.start_time) < forward[:2]:
                    forward = (inst.date, inst.start_time, inst, inst.occurrence)
        if forward is not None:
            _, _, inst, occ = forward
            return inst if inst is not None else self.ensure_instance(cls, occ)

        # Sonst: letzter Termin vor on, unabhängig vom Status
        backward: Optional[tuple] = None
        anchor = cls.recurrence.start_date or on
        if anchor < on:
            past = expand(cls.recurrence, anchor, on - timedelta(days=1))
            if past:
                occ = past[-1]
                backward = (occ.date, occ.start_time,
                            stored.get((cls.id, occ.date, occ.start_time, occ.end_time)), occ)
        for inst in stored.values():
            if inst.date < on and (backward is None or (inst.date, inst.start_time) > backward[:2]):
                backward = (inst.date, inst.start_time, inst, inst.occurrence)
        if backward is None:
            raise NotFoundError("Termin für Kurs", cls.id)
        _, _, inst, occ = backward
        return inst if inst is not None else self.ensure_instance(cls, occ)

    # ─── Kalender ───

    def iter_occurrences(
        self,
        start: date,
        end: date,
        instructor_id: Optional[str] = None,
        room_type_id: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> Iterator[OccurrenceView]:
        """Alle Termine im Bereich, Tag für Tag sortiert nach Beginn.

        Materialisierte Termine liefern Status, Lehrkraft und Raum; die übrigen
        werden aus der Kursdefinition abgeleitet (Status "scheduled").
        """
        classes = {c.id: c for c in self.classes.all(active_only=False)}
        stored: dict[date, list[ClassInstance]] = {}
        by_key: dict[tuple, ClassInstance] = {}
        for inst in self.instances.in_range(start, end):
            stored.setdefault(inst.date, []).append(inst)
            by_key[inst.occurrence_key] = inst

        derived: dict[date, list[tuple[ScheduledClassT, Occurrence]]] = {}
        single_state: dict[str, ClassInstance] = {}
        for cls in classes.values():
            if not cls.is_active:
                continue
            if isinstance(cls, SingleClass):
                own = self.instances.by_occurrence(cls.id, cls.start_date, cls.start_time, cls.end_time)
                if own is not None:
                    single_state[cls.id] = own
                first, last = max(start, cls.start_date), min(end, cls.effective_end_date)
                occs = [Occurrence(d, cls.start_time, cls.end_time) for d in iter_dates(first, last)]
            else:
                occs = expand(cls.recurrence, start, end)
            for occ in occs:
                derived.setdefault(occ.date, []).append((cls, occ))

        names = _NameResolver(self.directory)
        for day in iter_dates(start, end):
            views: list[OccurrenceView] = []
            emitted: set[str] = set()
            for cls, occ in derived.get(day, []):
                inst = by_key.get((cls.id, occ.date, occ.start_time, occ.end_time))
                if inst is not None:
                    emitted.add(inst.id)
                    views.append(self._view(cls, inst.occurrence, names, inst))
                else:
                    views.append(self._view(cls, occ, names, None, single_state.get(cls.id)))
            for inst in stored.get(day, []):
                if inst.id in emitted:
                    continue
                cls = classes.get(inst.parent_class_id)
                if cls is None:
                    continue
                views.append(self._view(cls, inst.occurrence, names, inst))

            for view in sorted(views, key=lambda v: (v.start_time, v.end_time, v.name)):
                if instructor_id and (view.instructor is None or view.instructor.id != instructor_id):
                    continue
                if room_id and (view.room is None or view.room.id != room_id):
                    continue
                if room_type_id and classes[view.class_id].room_type_id != room_type_id:
                    continue
                yield view

    def _view(self, cls: ScheduledClassT, occ: Occurrence, names: "_NameResolver",
              inst: Optional[ClassInstance], governing: Optional[ClassInstance] = None
              ) -> OccurrenceView:
        source = inst or governing
        instructor_id = inst.instructor_id if inst else cls.instructor_id
        room_id = inst.room_id if inst else cls.room_id
        return OccurrenceView(
            id=inst.id if inst else occurrence_key(cls.id, occ),
            class_id=cls.id,
            name=cls.name,
            course_code=cls.course_code,
            instructor=names.instructor(instructor_id),
            room=names.room(room_id),
            date=occ.date,
            start_time=occ.start_time,
            end_time=occ.end_time,
            class_type=cls.class_type,
            status=source.status if source else InstanceStatus.SCHEDULED,
            notes=source.notes if source else None,
            instance_id=inst.id if inst else None,
        )

    def get_occurrences_in_range(
        self,
        start: date,
        end: date,
        instructor_id: Optional[str] = None,
        room_type_id: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> dict[str, list[OccurrenceView]]:
        """Kalender-Feed: "YYYY-MM-DD" → Termine des Tages (ohne leere Tage)."""
        if end < start:
            raise ValidationError(errors=[FieldError(
                field="end", message="Ende liegt vor dem Beginn",
            )])
        if (end - start).days + 1 > self.config.scheduling.max_window_days:
            raise ValidationError(errors=[FieldError(
                field="end",
                message=f"Zeitraum größer als {self.config.scheduling.max_window_days} Tage",
            )])

        filters = {"instructor_id": instructor_id, "room_type_id": room_type_id,
                   "room_id": room_id}
        key = self.keys.calendar(start.isoformat(), end.isoformat(), filters)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return CALENDAR_ADAPTER.validate_python(cached)

        calendar: dict[str, list[OccurrenceView]] = {}
        for view in self.iter_occurrences(start, end, instructor_id, room_type_id, room_id):
            calendar.setdefault(view.date.isoformat(), []).append(view)

        if self.cache is not None:
            self.cache.set(key, CALENDAR_ADAPTER.dump_python(calendar, mode="json"),
                           ttl=self.config.cache.calendar_ttl)
        return calendar

    def _invalidate(self, class_id: str) -> None:
        if self.cache is not None:
            self.keys.invalidate_schedule(self.cache, class_id)


class _NameResolver:
    """Löst Lehrkraft- und Raum-IDs einmal pro Abfrage auf."""

    def __init__(self, directory: DirectoryRepository) -> None:
        self.directory = directory
        self._instructors: dict[str, Optional[EntityRef]] = {}
        self._rooms: dict[str, Optional[EntityRef]] = {}

    def instructor(self, instructor_id: Optional[str]) -> Optional[EntityRef]:
        if not instructor_id:
            return None
        if instructor_id not in self._instructors:
            found = self.directory.get_instructor(instructor_id)
            self._instructors[instructor_id] = EntityRef(
                id=instructor_id, name=found.full_name if found else instructor_id
            )
        return self._instructors[instructor_id]

    def room(self, room_id: Optional[str]) -> Optional[EntityRef]:
        if not room_id:
            return None
        if room_id not in self._rooms:
            found = self.directory.get_room(room_id)
            self._rooms[room_id] = EntityRef(id=room_id, name=found.label if found else room_id)
        return self._rooms[room_id]
