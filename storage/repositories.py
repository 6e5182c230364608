"""Typisierte Repositories: Pydantic-Modelle ⇄ Speicherdokumente."""

from datetime import date, datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel

from models.instance import ClassInstance, InstanceStatus
from models.instructor import Instructor
from models.room import Room, RoomType
from models.scheduled_class import CLASS_ADAPTER, RecurringClass, SingleClass
from scheduling.errors import ConcurrentBookingError, FieldError, ValidationError
from storage.document_store import Document, DocumentStore, DuplicateKeyError

CLASSES = "classes"
INSTANCES = "instances"
INSTRUCTORS = "instructors"
ROOM_TYPES = "room_types"
ROOMS = "rooms"

ScheduledClassT = Union[SingleClass, RecurringClass]

# Felder der Volltextsuche über Kurse
CLASS_TEXT_FIELDS = ["name", "description", "course_code"]

_OCCUPYING = {s.value for s in InstanceStatus if s.occupies_slot}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_doc(model: BaseModel) -> Document:
    return model.model_dump(mode="json")


def _stamp(model: BaseModel, created: bool = False):
    now = _now()
    update = {"updated_at": now}
    if created or getattr(model, "created_at", None) is None:
        update["created_at"] = now
    return model.model_copy(update=update)


def _occupies(doc: Document) -> bool:
    return doc.get("status") in _OCCUPYING


# ─── Kurse ───────────────────────────────────────────────────────────────────

class ClassRepository:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def ensure_indexes(self) -> None:
        self.store.create_index(CLASSES, ["instructor_id"])
        self.store.create_index(CLASSES, ["room_id"])

    @staticmethod
    def from_doc(doc: Document) -> ScheduledClassT:
        return CLASS_ADAPTER.validate_python(doc)

    def add(self, cls: ScheduledClassT) -> ScheduledClassT:
        cls = _stamp(cls, created=True)
        self.store.insert(CLASSES, _to_doc(cls))
        return cls

    def save(self, cls: ScheduledClassT) -> ScheduledClassT:
        cls = _stamp(cls)
        self.store.replace(CLASSES, _to_doc(cls))
        return cls

    def get(self, class_id: str) -> Optional[ScheduledClassT]:
        doc = self.store.get(CLASSES, class_id)
        return self.from_doc(doc) if doc else None

    def require(self, class_id: str) -> ScheduledClassT:
        return self.from_doc(self.store.require(CLASSES, class_id, "Kurs"))

    def all(self, active_only: bool = True) -> list[ScheduledClassT]:
        equals = {"is_active": True} if active_only else {}
        return [self.from_doc(d) for d in self.store.find(CLASSES, sort_by=["name"], **equals)]

    def search(self, text: Optional[str] = None, active_only: bool = True,
               **equals) -> list[ScheduledClassT]:
        """Volltextsuche (Name, Beschreibung, Kürzel) kombiniert mit Feldfiltern."""
        equals = {k: v for k, v in equals.items() if v is not None}
        if active_only:
            equals["is_active"] = True
        if text:
            docs = self.store.text_search(CLASSES, text, CLASS_TEXT_FIELDS, **equals)
        else:
            docs = self.store.find(CLASSES, **equals)
        docs.sort(key=lambda d: (d.get("name") or "").lower())
        return [self.from_doc(d) for d in docs]

    def for_resources(self, instructor_id: Optional[str], room_id: Optional[str]
                      ) -> list[ScheduledClassT]:
        """Aktive Kurse, die dieselbe Lehrkraft ODER denselben Raum nutzen."""
        def uses(doc: Document) -> bool:
            if instructor_id and doc.get("instructor_id") == instructor_id:
                return True
            return bool(room_id) and doc.get("room_id") == room_id

        return [self.from_doc(d) for d in
                self.store.find(CLASSES, predicate=uses, is_active=True)]


# ─── Termine ─────────────────────────────────────────────────────────────────

class InstanceRepository:
    """Persistierte Termine.

    Indizes:
      occurrence_key  – (Kurs, Datum, Beginn, Ende) eindeutig
      instructor_slot – (Lehrkraft, Datum, Beginn) eindeutig für belegende Status
      room_slot       – (Raum, Datum, Beginn) eindeutig für belegende Status
    """

    BOOKING_INDEXES = ("occurrence_key", "instructor_slot", "room_slot")

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def ensure_indexes(self) -> None:
        self.store.create_index(
            INSTANCES, ["parent_class_id", "date", "start_time", "end_time"],
            unique=True, name="occurrence_key",
        )
        self.store.create_index(
            INSTANCES, ["instructor_id", "date", "start_time"],
            unique=True, where=_occupies, name="instructor_slot",
        )
        self.store.create_index(
            INSTANCES, ["room_id", "date", "start_time"],
            unique=True, where=_occupies, name="room_slot",
        )
        self.store.create_index(INSTANCES, ["date"])

    def _write(self, instance: ClassInstance, insert: bool) -> ClassInstance:
        doc = _to_doc(instance)
        try:
            if insert:
                self.store.insert(INSTANCES, doc)
            else:
                self.store.replace(INSTANCES, doc)
        except DuplicateKeyError as e:
            raise ConcurrentBookingError(
                "Termin wurde parallel bereits gebucht",
                [FieldError(field=e.index, message=str(e))],
            ) from e
        return instance

    def add(self, instance: ClassInstance) -> ClassInstance:
        return self._write(_stamp(instance, created=True), insert=True)

    def save(self, instance: ClassInstance) -> ClassInstance:
        return self._write(_stamp(instance), insert=False)

    def get(self, instance_id: str) -> Optional[ClassInstance]:
        doc = self.store.get(INSTANCES, instance_id)
        return ClassInstance.model_validate(doc) if doc else None

    def require(self, instance_id: str) -> ClassInstance:
        return ClassInstance.model_validate(self.store.require(INSTANCES, instance_id, "Termin"))

    def by_occurrence(self, class_id: str, on: date, start_time: str,
                      end_time: str) -> Optional[ClassInstance]:
        doc = self.store.find_one(
            INSTANCES, parent_class_id=class_id, date=on.isoformat(),
            start_time=start_time, end_time=end_time,
        )
        return ClassInstance.model_validate(doc) if doc else None

    def for_class(self, class_id: str, start: Optional[date] = None,
                  end: Optional[date] = None) -> list[ClassInstance]:
        """Termine eines Kurses, sortiert nach Datum und Beginn."""
        if start is not None or end is not None:
            docs = self.store.find_in_date_range(
                INSTANCES, "date",
                (start or date.min).isoformat(), (end or date.max).isoformat(),
                parent_class_id=class_id,
            )
        else:
            docs = self.store.find(INSTANCES, sort_by=["date", "start_time"],
                                   parent_class_id=class_id)
        return [ClassInstance.model_validate(d) for d in docs]

    def on_date(self, on: date) -> list[ClassInstance]:
        docs = self.store.find(INSTANCES, sort_by=["start_time"], date=on.isoformat())
        return [ClassInstance.model_validate(d) for d in docs]

    def in_range(self, start: date, end: date, **equals) -> list[ClassInstance]:
        equals = {k: v for k, v in equals.items() if v is not None}
        docs = self.store.find_in_date_range(
            INSTANCES, "date", start.isoformat(), end.isoformat(), **equals
        )
        return [ClassInstance.model_validate(d) for d in docs]

    def all(self) -> list[ClassInstance]:
        return [ClassInstance.model_validate(d)
                for d in self.store.find(INSTANCES, sort_by=["date", "start_time"])]

    def delete(self, instance_id: str) -> bool:
        return self.store.delete(INSTANCES, instance_id)


# ─── Stammdaten ──────────────────────────────────────────────────────────────

class DirectoryRepository:
    """Lehrkräfte, Raumtypen und Räume."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def ensure_indexes(self) -> None:
        self.store.create_index(INSTRUCTORS, ["email"], unique=True, name="email")
        self.store.create_index(ROOMS, ["room_type_id"])

    # ── Lehrkräfte ──

    def _write_instructor(self, instructor: Instructor, insert: bool) -> Instructor:
        try:
            if insert:
                self.store.insert(INSTRUCTORS, _to_doc(instructor))
            else:
                self.store.replace(INSTRUCTORS, _to_doc(instructor))
        except DuplicateKeyError as e:
            raise ValidationError(errors=[FieldError(
                field="email", message=f"E-Mail '{instructor.email}' ist bereits vergeben",
            )]) from e
        return instructor

    def add_instructor(self, instructor: Instructor) -> Instructor:
        return self._write_instructor(_stamp(instructor, created=True), insert=True)

    def save_instructor(self, instructor: Instructor) -> Instructor:
        return self._write_instructor(_stamp(instructor), insert=False)

    def get_instructor(self, instructor_id: str) -> Optional[Instructor]:
        doc = self.store.get(INSTRUCTORS, instructor_id)
        return Instructor.model_validate(doc) if doc else None

    def require_instructor(self, instructor_id: str, active: bool = True) -> Instructor:
        getter = self.store.require_active if active else self.store.require
        return Instructor.model_validate(getter(INSTRUCTORS, instructor_id, "Lehrkraft"))

    def instructors(self, active_only: bool = True) -> list[Instructor]:
        equals = {"is_active": True} if active_only else {}
        docs = self.store.find(INSTRUCTORS, sort_by=["last_name", "first_name"], **equals)
        return [Instructor.model_validate(d) for d in docs]

    # ── Raumtypen ──

    def add_room_type(self, room_type: RoomType) -> RoomType:
        room_type = _stamp(room_type, created=True)
        self.store.insert(ROOM_TYPES, _to_doc(room_type))
        return room_type

    def save_room_type(self, room_type: RoomType) -> RoomType:
        room_type = _stamp(room_type)
        self.store.replace(ROOM_TYPES, _to_doc(room_type))
        return room_type

    def get_room_type(self, room_type_id: str) -> Optional[RoomType]:
        doc = self.store.get(ROOM_TYPES, room_type_id)
        return RoomType.model_validate(doc) if doc else None

    def require_room_type(self, room_type_id: str, active: bool = True) -> RoomType:
        getter = self.store.require_active if active else self.store.require
        return RoomType.model_validate(getter(ROOM_TYPES, room_type_id, "Raumtyp"))

    def room_types(self, active_only: bool = True) -> list[RoomType]:
        equals = {"is_active": True} if active_only else {}
        return [RoomType.model_validate(d)
                for d in self.store.find(ROOM_TYPES, sort_by=["name"], **equals)]

    # ── Räume ──

    def add_room(self, room: Room) -> Room:
        room = _stamp(room, created=True)
        self.store.insert(ROOMS, _to_doc(room))
        return room

    def save_room(self, room: Room) -> Room:
        room = _stamp(room)
        self.store.replace(ROOMS, _to_doc(room))
        return room

    def get_room(self, room_id: str) -> Optional[Room]:
        doc = self.store.get(ROOMS, room_id)
        return Room.model_validate(doc) if doc else None

    def require_room(self, room_id: str, active: bool = True) -> Room:
        getter = self.store.require_active if active else self.store.require
        return Room.model_validate(getter(ROOMS, room_id, "Raum"))

    def rooms(self, active_only: bool = True, room_type_id: Optional[str] = None) -> list[Room]:
        equals = {"is_active": True} if active_only else {}
        if room_type_id:
            equals["room_type_id"] = room_type_id
        return [Room.model_validate(d) for d in self.store.find(ROOMS, sort_by=["name"], **equals)]
