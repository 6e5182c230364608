"""Stammdatenverwaltung: Lehrkräfte, Raumtypen und Räume."""

import logging
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from models.instructor import Instructor
from models.room import Room, RoomType
from scheduling.errors import FieldError, ValidationError
from scheduling.validation import field_errors
from storage.cache import Cache, CacheKeys
from storage.document_store import DocumentStore
from storage.repositories import DirectoryRepository

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Felder, die über update_*() nicht verändert werden dürfen
_PROTECTED = {"id", "created_at", "updated_at"}


def _build(model_cls: type[M], data: Union[dict[str, Any], M]) -> M:
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(errors=field_errors(e)) from e


def _apply(model: M, changes: dict[str, Any]) -> M:
    blocked = _PROTECTED & set(changes)
    if blocked:
        raise ValidationError(errors=[
            FieldError(field=f, message="Feld ist nicht änderbar") for f in sorted(blocked)
        ])
    return _build(type(model), {**model.model_dump(), **changes})


class Directory:
    def __init__(self, store: DocumentStore, cache: Optional[Cache] = None,
                 keys: Optional[CacheKeys] = None, ttl: int = 3600) -> None:
        self.repo = DirectoryRepository(store)
        self.repo.ensure_indexes()
        self.store = store
        self.cache = cache
        self.keys = keys or CacheKeys()
        self.ttl = ttl

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.delete_pattern(self.keys.directory_pattern)

    def _cached(self, kind: str, model_cls: type[M], loader) -> list[M]:
        if self.cache is None:
            return loader()
        key = self.keys.directory(kind)
        cached = self.cache.get(key)
        if cached is not None:
            return [model_cls.model_validate(d) for d in cached]
        items = loader()
        self.cache.set(key, [i.model_dump(mode="json") for i in items], ttl=self.ttl)
        return items

    # ─── Lehrkräfte ───

    def create_instructor(self, data: Union[dict[str, Any], Instructor]) -> Instructor:
        instructor = self.repo.add_instructor(_build(Instructor, data))
        self._invalidate()
        logger.info(f"Lehrkraft angelegt: {instructor.full_name}")
        return instructor

    def update_instructor(self, instructor_id: str, changes: dict[str, Any]) -> Instructor:
        current = self.repo.require_instructor(instructor_id, active=False)
        instructor = self.repo.save_instructor(_apply(current, changes))
        self._invalidate()
        return instructor

    def deactivate_instructor(self, instructor_id: str) -> Instructor:
        return self.update_instructor(instructor_id, {"is_active": False})

    def list_instructors(self, active_only: bool = True) -> list[Instructor]:
        if not active_only:
            return self.repo.instructors(active_only=False)
        return self._cached("instructors", Instructor, self.repo.instructors)

    # ─── Raumtypen ───

    def create_room_type(self, data: Union[dict[str, Any], RoomType]) -> RoomType:
        room_type = self.repo.add_room_type(_build(RoomType, data))
        self._invalidate()
        return room_type

    def update_room_type(self, room_type_id: str, changes: dict[str, Any]) -> RoomType:
        current = self.repo.require_room_type(room_type_id, active=False)
        room_type = self.repo.save_room_type(_apply(current, changes))
        self._invalidate()
        return room_type

    def deactivate_room_type(self, room_type_id: str) -> RoomType:
        return self.update_room_type(room_type_id, {"is_active": False})

    def list_room_types(self, active_only: bool = True) -> list[RoomType]:
        if not active_only:
            return self.repo.room_types(active_only=False)
        return self._cached("room_types", RoomType, self.repo.room_types)

    # ─── Räume ───

    def create_room(self, data: Union[dict[str, Any], Room]) -> Room:
        room = _build(Room, data)
        # Raum muss auf einen aktiven Raumtyp verweisen
        self.repo.require_room_type(room.room_type_id)
        room = self.repo.add_room(room)
        self._invalidate()
        return room

    def update_room(self, room_id: str, changes: dict[str, Any]) -> Room:
        current = self.repo.require_room(room_id, active=False)
        room = _apply(current, changes)
        if room.room_type_id != current.room_type_id:
            self.repo.require_room_type(room.room_type_id)
        room = self.repo.save_room(room)
        self._invalidate()
        return room

    def deactivate_room(self, room_id: str) -> Room:
        return self.update_room(room_id, {"is_active": False})

    def list_rooms(self, room_type_id: Optional[str] = None) -> list[Room]:
        if room_type_id:
            return self.repo.rooms(room_type_id=room_type_id)
        return self._cached("rooms", Room, self.repo.rooms)
