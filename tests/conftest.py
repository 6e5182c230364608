"""Gemeinsame Fixtures: leerer Speicher, Cache, Service und Stammdaten."""

from datetime import date
from types import SimpleNamespace

import pytest

from config.schema import AppConfig
from scheduling.directory import Directory
from scheduling.service import ClassScheduler
from storage.cache import MemoryCache
from storage.document_store import DocumentStore

# Freitag; alle Service-Tests rechnen mit diesem "heute"
TODAY = date(2024, 3, 1)


@pytest.fixture
def store():
    return DocumentStore()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def config():
    return AppConfig()


@pytest.fixture
def scheduler(store, cache, config):
    return ClassScheduler(store, cache, config, today=lambda: TODAY)


@pytest.fixture
def directory(store, cache):
    return Directory(store, cache)


@pytest.fixture
def res(directory):
    """Ein Raumtyp mit zwei Räumen, zwei Lehrkräfte."""
    seminar = directory.create_room_type({"name": "Seminarraum", "capacity": 20})
    lab = directory.create_room_type({"name": "Labor", "capacity": 12})
    r1 = directory.create_room({"name": "S1", "room_type_id": seminar.id})
    r2 = directory.create_room({"name": "S2", "room_type_id": seminar.id})
    lab1 = directory.create_room({"name": "L1", "room_type_id": lab.id})
    anna = directory.create_instructor(
        {"first_name": "Anna", "last_name": "Berg", "email": "anna@akademie.example"}
    )
    ben = directory.create_instructor(
        {"first_name": "Ben", "last_name": "Krause", "email": "ben@akademie.example"}
    )
    return SimpleNamespace(seminar=seminar, lab=lab, r1=r1, r2=r2, lab1=lab1,
                           anna=anna, ben=ben)


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def single(res, day: str = "2024-03-04", start: str = "09:00", end: str = "10:00",
           instructor=None, room="r1", **extra) -> dict:
    """Rohdaten für einen Einzeltermin."""
    data = {
        "class_type": "single",
        "name": extra.pop("name", "Workshop"),
        "instructor_id": (instructor or res.anna).id,
        "room_type_id": res.seminar.id,
        "room_id": getattr(res, room).id if room else None,
        "start_date": day,
        "start_time": start,
        "end_time": end,
    }
    data.update(extra)
    return data


def weekly(res, days=(1, 3), start: str = "09:00", end: str = "10:30",
           start_date: str = "2024-03-01", end_date: str = "2024-03-15",
           instructor=None, room="r1", **extra) -> dict:
    """Rohdaten für eine wöchentliche Serie (Standard: Mo + Mi, 01.–15.03.2024)."""
    data = {
        "class_type": "recurring",
        "name": extra.pop("name", "Python Grundkurs"),
        "instructor_id": (instructor or res.anna).id,
        "room_type_id": res.seminar.id,
        "room_id": getattr(res, room).id if room else None,
        "recurrence": {
            "pattern": "weekly",
            "days_of_week": list(days),
            "time_slots": [{"start_time": start, "end_time": end}],
            "start_date": start_date,
            "end_date": end_date,
        },
    }
    data.update(extra)
    return data
