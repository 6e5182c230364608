"""Konfliktprüfung: überschneidet sich eine Buchung mit Lehrkraft oder Raum?

Überschneidung zweier Intervalle [s1,e1) und [s2,e2): s1 < e2 und e1 > s2.
Berührende Grenzen (10:00–11:00 nach 09:00–10:00) sind kein Konflikt.

Bestehende Belegung am Tag d:
  - materialisierte Termine sind maßgeblich für ihren Slot (Status,
    Lehrkraft, Raum); abgesagte und verschobene Termine belegen nichts,
  - nicht materialisierte Termine werden aus der Kursdefinition abgeleitet
    (Serien über den Expander, Einzeltermine über ihren Datumsbereich).

Die Prüfung liest nur. Ein Konflikt ist ein Ergebnis, kein Fehler.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Literal, Optional, Union

from pydantic import BaseModel, field_validator

from models.instance import ClassInstance
from models.scheduled_class import RecurringClass, SingleClass
from models.timeslot import Occurrence
from scheduling.recurrence import DEFAULT_HORIZON_DAYS, expand, expand_class
from scheduling.timeutils import intervals_overlap, iter_dates, normalize_time, parse_time
from storage.document_store import DocumentStore
from storage.repositories import (
    INSTRUCTORS,
    ROOMS,
    ClassRepository,
    InstanceRepository,
)

logger = logging.getLogger(__name__)

ScheduledClassT = Union[SingleClass, RecurringClass]
ConflictType = Literal["instructor", "room"]


class BookingSubject(BaseModel):
    """Eine vorgeschlagene Belegung."""

    instructor_id: str
    room_id: Optional[str] = None
    date: date
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_time(v)

    @classmethod
    def for_occurrence(cls, klass: ScheduledClassT, occ: Occurrence,
                       room_id: Optional[str] = None) -> "BookingSubject":
        return cls(
            instructor_id=klass.instructor_id,
            room_id=room_id or klass.room_id,
            date=occ.date,
            start_time=occ.start_time,
            end_time=occ.end_time,
        )


class ConflictInfo(BaseModel):
    """Eine kollidierende bestehende Buchung."""

    class_id: str
    class_name: str
    instance_id: Optional[str] = None   # gesetzt, wenn der Slot materialisiert ist
    date: date
    start_time: str
    end_time: str
    conflict_type: ConflictType

    @property
    def dedupe_key(self) -> tuple:
        return (self.class_id, self.instance_id, self.date,
                self.start_time, self.end_time, self.conflict_type)


class ConflictResult(BaseModel):
    conflicts: list[ConflictInfo] = []

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)

    def by_type(self, conflict_type: ConflictType) -> list[ConflictInfo]:
        return [c for c in self.conflicts if c.conflict_type == conflict_type]


class ConflictDetector:
    """Prüft Buchungen gegen bestehende Kurse und Termine im Speicher."""

    def __init__(self, store: DocumentStore,
                 horizon_days: int = DEFAULT_HORIZON_DAYS) -> None:
        self.store = store
        self.horizon_days = horizon_days
        self.classes = ClassRepository(store)
        self.instances = InstanceRepository(store)

    # ─── Öffentliche API ───

    def check_conflicts(
        self,
        subject: BookingSubject,
        exclude_class_id: Optional[str] = None,
        exclude_instance_ids: Iterable[str] = (),
    ) -> ConflictResult:
        """Prüft eine einzelne Belegung.

        Lehrkraft wird immer geprüft, der Raum nur wenn room_id gesetzt ist.
        exclude_class_id blendet Kurs und Termine eines Kurses aus (Update).
        Wirft NotFoundError, wenn Lehrkraft oder Raum nicht aktiv existieren.
        """
        self._require_resources(subject.instructor_id, subject.room_id)
        existing = self._load_existing(
            subject.instructor_id, subject.room_id, subject.date, subject.date
        )
        conflicts = self._check(subject, existing, exclude_class_id, set(exclude_instance_ids))
        return ConflictResult(conflicts=conflicts)

    def check_class_conflicts(
        self,
        candidate: ScheduledClassT,
        window_start: Optional[date] = None,
        window_end: Optional[date] = None,
        exclude_class_id: Optional[str] = None,
    ) -> ConflictResult:
        """Prüft einen Kurs Termin für Termin.

        Einzeltermine belegen jeden Tag von start_date bis end_date. Serien
        werden über das Fenster expandiert (ohne Fenster: Serienbeginn bis
        end_date bzw. Horizont).
        """
        self._require_resources(candidate.instructor_id, candidate.room_id)

        if isinstance(candidate, SingleClass):
            occurrences = [
                Occurrence(d, candidate.start_time, candidate.end_time)
                for d in iter_dates(candidate.start_date, candidate.effective_end_date)
            ]
        else:
            occurrences = expand_class(candidate, window_start, window_end, self.horizon_days)
        if not occurrences:
            return ConflictResult()

        existing = self._load_existing(
            candidate.instructor_id, candidate.room_id,
            occurrences[0].date, occurrences[-1].date,
        )
        seen: set[tuple] = set()
        conflicts: list[ConflictInfo] = []
        for occ in occurrences:
            subject = BookingSubject.for_occurrence(candidate, occ)
            for c in self._check(subject, existing, exclude_class_id, set()):
                if c.dedupe_key not in seen:
                    seen.add(c.dedupe_key)
                    conflicts.append(c)

        if conflicts:
            logger.debug(f"{candidate.name}: {len(conflicts)} Konflikt(e) "
                         f"bei {len(occurrences)} Terminen")
        return ConflictResult(conflicts=conflicts)

    # ─── Interna ───

    def _require_resources(self, instructor_id: str, room_id: Optional[str]) -> None:
        self.store.require_active(INSTRUCTORS, instructor_id, "Lehrkraft")
        if room_id:
            self.store.require_active(ROOMS, room_id, "Raum")

    def _load_existing(self, instructor_id: str, room_id: Optional[str],
                       start: date, end: date) -> "_Occupancy":
        """Belegung aller relevanten Kurse und Termine im Bereich, je Tag."""
        classes = self.classes.for_resources(instructor_id, room_id)
        occupancy = _Occupancy()
        occupancy.class_names = {c.id: c.name for c in classes}

        for inst in self.instances.in_range(start, end):
            occupancy.instances[inst.date].append(inst)
            occupancy.materialized.add(inst.occurrence_key)

        for cls in classes:
            for occ in self._derived(cls, start, end):
                occupancy.derived[occ.date].append((cls, occ))
        return occupancy

    def _derived(self, cls: ScheduledClassT, start: date, end: date) -> list[Occurrence]:
        if isinstance(cls, SingleClass):
            # Der eine Termin eines Einzelkurses gilt für alle seine Tage
            inst = self.instances.by_occurrence(
                cls.id, cls.start_date, cls.start_time, cls.end_time
            )
            if inst is not None and not inst.status.occupies_slot:
                return []
            first = max(start, cls.start_date)
            last = min(end, cls.effective_end_date)
            return [Occurrence(d, cls.start_time, cls.end_time) for d in iter_dates(first, last)]
        return expand(cls.recurrence, start, end)

    def _check(
        self,
        subject: BookingSubject,
        existing: "_Occupancy",
        exclude_class_id: Optional[str],
        exclude_instance_ids: set[str],
    ) -> list[ConflictInfo]:
        s, e = parse_time(subject.start_time), parse_time(subject.end_time)
        conflicts: list[ConflictInfo] = []

        # 1. Aus Kursdefinitionen abgeleitete, nicht materialisierte Termine
        for cls, occ in existing.derived.get(subject.date, []):
            if cls.id == exclude_class_id:
                continue
            if (cls.id, occ.date, occ.start_time, occ.end_time) in existing.materialized:
                continue
            if not intervals_overlap(s, e, occ.start_minutes, occ.end_minutes):
                continue
            for conflict_type in _matching_types(subject, cls.instructor_id, cls.room_id):
                conflicts.append(ConflictInfo(
                    class_id=cls.id,
                    class_name=cls.name,
                    date=occ.date,
                    start_time=occ.start_time,
                    end_time=occ.end_time,
                    conflict_type=conflict_type,
                ))

        # 2. Materialisierte Termine (inkl. Ersatzterminen)
        for inst in existing.instances.get(subject.date, []):
            if not inst.status.occupies_slot:
                continue
            if inst.parent_class_id == exclude_class_id or inst.id in exclude_instance_ids:
                continue
            occ = inst.occurrence
            if not intervals_overlap(s, e, occ.start_minutes, occ.end_minutes):
                continue
            for conflict_type in _matching_types(subject, inst.instructor_id, inst.room_id):
                conflicts.append(ConflictInfo(
                    class_id=inst.parent_class_id,
                    class_name=existing.name_of(inst, self.classes),
                    instance_id=inst.id,
                    date=inst.date,
                    start_time=inst.start_time,
                    end_time=inst.end_time,
                    conflict_type=conflict_type,
                ))
        return conflicts


class _Occupancy:
    def __init__(self) -> None:
        self.derived: dict[date, list[tuple[ScheduledClassT, Occurrence]]] = defaultdict(list)
        self.instances: dict[date, list[ClassInstance]] = defaultdict(list)
        self.materialized: set[tuple] = set()
        self.class_names: dict[str, str] = {}

    def name_of(self, inst: ClassInstance, classes: ClassRepository) -> str:
        if inst.parent_class_id not in self.class_names:
            parent = classes.get(inst.parent_class_id)
            self.class_names[inst.parent_class_id] = parent.name if parent else "Instance"
        return self.class_names[inst.parent_class_id]


def _matching_types(subject: BookingSubject, instructor_id: str,
                    room_id: Optional[str]) -> list[ConflictType]:
    types: list[ConflictType] = []
    if instructor_id == subject.instructor_id:
        types.append("instructor")
    if subject.room_id and room_id == subject.room_id:
        types.append("room")
    return types


def candidate_window(cls: ScheduledClassT, horizon_days: int = DEFAULT_HORIZON_DAYS,
                     today: Optional[date] = None) -> tuple[date, date]:
    """Zeitraum, über den ein Kurs geprüft und materialisiert wird.

    Offene Serien reichen bis horizon_days nach dem späteren von Serienbeginn
    und heute.
    """
    if isinstance(cls, SingleClass):
        return cls.start_date, cls.effective_end_date
    rec = cls.recurrence
    today = today or date.today()
    start = rec.start_date or today
    end = rec.end_date or max(start, today) + timedelta(days=horizon_days)
    return start, end
