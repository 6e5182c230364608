"""Demo-Daten-Generator für den Kursplaner.

Erzeugt realistische Stammdaten und Kurse mit absichtlichen Engpässen, damit
Konfliktprüfung und Audit etwas zu tun haben.

Absichtliche Engpässe:
  1. Doppelbuchung: ein Einzeltermin überschneidet sich mit der ersten Serie
     derselben Lehrkraft (wird beim Import abgelehnt)
  2. Randberührung: ein Kurs beginnt genau, wenn ein anderer im selben Raum
     endet (kein Konflikt)
  3. Ausfalltage: Serien lassen Feiertage über exclusion_dates aus
"""

import random
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from config.defaults import COURSE_TEMPLATES, ROOM_TYPE_METADATA, SPECIALIZATIONS, START_TIMES
from config.schema import AppConfig
from models.instructor import Instructor
from models.recurrence import RecurrenceConfig, RecurrencePattern
from models.room import Room, RoomType
from models.schedule_data import ScheduleData
from models.scheduled_class import RecurringClass, SingleClass
from models.timeslot import TimeSlot
from scheduling.errors import ConflictDetectedError
from scheduling.timeutils import minutes_to_time, parse_time, week_start

# ─── Namens-Listen ────────────────────────────────────────────────────────────

_FIRST_NAMES = [
    "Andreas", "Birgit", "Christian", "Eva", "Franz", "Gabi", "Hans", "Iris",
    "Jürgen", "Kathrin", "Lena", "Markus", "Norbert", "Petra", "Sabine",
    "Thomas", "Ulrike", "Vera", "Wolfgang", "Yusuf",
]

_LAST_NAMES = [
    "Müller", "Schmidt", "Schneider", "Fischer", "Weber", "Meyer",
    "Wagner", "Becker", "Schulz", "Hoffmann", "Schäfer", "Koch",
    "Bauer", "Richter", "Klein", "Wolf", "Schröder", "Neumann",
]

_BUILDINGS = ["Haus A", "Haus B"]


def _ascii(text: str) -> str:
    return (
        text.lower()
        .replace("ä", "ae").replace("ö", "oe").replace("ü", "ue").replace("ß", "ss")
    )


class DemoDataGenerator:
    """Generiert einen vollständigen Datensatz ab einem Startdatum."""

    def __init__(self, config: AppConfig, seed: Optional[int] = None,
                 start: Optional[date] = None, num_instructors: int = 8) -> None:
        self.config = config
        self.rng = random.Random(seed)
        # Serien beginnen am Montag der Startwoche
        self.start = week_start(start or date.today()) + timedelta(days=1)
        self.num_instructors = num_instructors
        self._used_emails: set[str] = set()

    # ─── Stammdaten ───────────────────────────────────────────────────────────

    def _generate_room_types(self) -> list[RoomType]:
        return [
            RoomType(name=name, capacity=meta["capacity"], amenities=list(meta["amenities"]))
            for name, meta in ROOM_TYPE_METADATA.items()
        ]

    def _generate_rooms(self, room_types: list[RoomType]) -> list[Room]:
        rooms = []
        for rt in room_types:
            for i in range(1, ROOM_TYPE_METADATA[rt.name]["rooms"] + 1):
                rooms.append(Room(
                    name=f"{rt.name} {i}",
                    room_type_id=rt.id,
                    building=self.rng.choice(_BUILDINGS),
                    floor=self.rng.randint(0, 3),
                ))
        return rooms

    def _make_instructor(self) -> Instructor:
        first = self.rng.choice(_FIRST_NAMES)
        last = self.rng.choice(_LAST_NAMES)
        base = f"{_ascii(first)}.{_ascii(last)}"
        email = f"{base}@akademie.example"
        n = 2
        while email in self._used_emails:
            email = f"{base}{n}@akademie.example"
            n += 1
        self._used_emails.add(email)
        return Instructor(
            first_name=first,
            last_name=last,
            email=email,
            phone=f"+49 30 {self.rng.randint(1000000, 9999999)}",
            specialization=self.rng.choice(SPECIALIZATIONS),
        )

    # ─── Kurse ────────────────────────────────────────────────────────────────

    def _holidays(self) -> list[str]:
        """Zwei Ausfalltage in den ersten Wochen."""
        return [
            (self.start + timedelta(days=14)).isoformat(),
            (self.start + timedelta(days=30)).isoformat(),
        ]

    def _generate_classes(self, instructors: list[Instructor], room_types: list[RoomType],
                          rooms: list[Room]) -> list:
        by_name = {rt.name: rt for rt in room_types}
        rooms_by_type: dict[str, list[Room]] = {}
        for room in rooms:
            rooms_by_type.setdefault(room.room_type_id, []).append(room)

        classes: list = []
        patterns = [RecurrencePattern.WEEKLY, RecurrencePattern.WEEKLY,
                    RecurrencePattern.DAILY, RecurrencePattern.MONTHLY]
        for i, (name, code, room_type_name, minutes) in enumerate(COURSE_TEMPLATES):
            rt = by_name[room_type_name]
            instructor = instructors[i % len(instructors)]
            room = self.rng.choice(rooms_by_type[rt.id])
            start_time = self.rng.choice(START_TIMES)
            end_time = minutes_to_time(parse_time(start_time) + minutes)

            if minutes >= 240:
                # Ganztägige Kurse als mehrtägiger Einzeltermin
                day = self.start + timedelta(days=self.rng.randint(7, 40))
                classes.append(SingleClass(
                    name=name, course_code=code, instructor_id=instructor.id,
                    room_type_id=rt.id, room_id=room.id,
                    start_date=day, end_date=day + timedelta(days=1),
                    start_time=start_time, end_time=end_time,
                ))
                continue

            pattern = patterns[i % len(patterns)]
            rec = RecurrenceConfig(
                pattern=pattern,
                time_slots=[TimeSlot(start_time=start_time, end_time=end_time)],
                start_date=self.start,
                exclusion_dates=self._holidays(),
            )
            if pattern == RecurrencePattern.WEEKLY:
                rec.days_of_week = sorted(self.rng.sample([1, 2, 3, 4, 5], k=2))
                rec.end_date = self.start + timedelta(weeks=12)
            elif pattern == RecurrencePattern.DAILY:
                rec.exclude_weekends = True
                rec.occurrences = 10
            else:
                rec.day_of_month = [self.rng.randint(1, 28)]
                rec.end_date = self.start + relativedelta(months=6)
            classes.append(RecurringClass(
                name=name, course_code=code, instructor_id=instructor.id,
                room_type_id=rt.id, room_id=room.id, recurrence=rec,
            ))

        classes.extend(self._generate_bottlenecks(classes))
        return classes

    def _generate_bottlenecks(self, classes: list) -> list:
        """Engpass #1 und #2 relativ zur ersten wöchentlichen Serie."""
        first = next(
            (c for c in classes if isinstance(c, RecurringClass)
             and c.recurrence.pattern == RecurrencePattern.WEEKLY),
            None,
        )
        if first is None:
            return []
        slot = first.recurrence.time_slots[0]
        weekday = first.recurrence.days_of_week[0]
        day = self.start + timedelta(days=(weekday - 1) % 7)
        half = (parse_time(slot.start_time) + parse_time(slot.end_time)) // 2
        overlap = SingleClass(
            name="Sprechstunde", course_code="SPR-X",
            instructor_id=first.instructor_id, room_type_id=first.room_type_id,
            start_date=day, start_time=minutes_to_time(half),
            end_time=minutes_to_time(min(half + 60, 23 * 60 + 59)),
        )
        end_min = parse_time(slot.end_time)
        adjacent = SingleClass(
            name="Nachbesprechung", course_code="NB-1",
            instructor_id=first.instructor_id, room_type_id=first.room_type_id,
            room_id=first.room_id, start_date=day,
            start_time=slot.end_time,
            end_time=minutes_to_time(min(end_min + 45, 23 * 60 + 59)),
        )
        return [overlap, adjacent]

    # ─── Gesamt ───────────────────────────────────────────────────────────────

    def generate(self) -> ScheduleData:
        room_types = self._generate_room_types()
        rooms = self._generate_rooms(room_types)
        instructors = [self._make_instructor() for _ in range(self.num_instructors)]
        classes = self._generate_classes(instructors, room_types, rooms)
        return ScheduleData(
            organization_name=self.config.organization_name,
            instructors=instructors,
            room_types=room_types,
            rooms=rooms,
            classes=classes,
        )

    # ─── Ausgabe ──────────────────────────────────────────────────────────────

    def print_summary(self, data: ScheduleData) -> None:
        """Gibt eine Rich-Tabelle mit Übersicht der erzeugten Daten aus."""
        from rich.console import Console
        from rich.table import Table
        from rich import box

        console = Console()
        table = Table(title="Erzeugte Demo-Daten", box=box.ROUNDED)
        table.add_column("Kategorie", style="bold cyan")
        table.add_column("Anzahl", justify="right")
        table.add_column("Details")

        num_recurring = sum(1 for c in data.classes if isinstance(c, RecurringClass))
        table.add_row("Lehrkräfte", str(len(data.instructors)), "")
        table.add_row("Raumtypen", str(len(data.room_types)), "")
        table.add_row("Räume", str(len(data.rooms)), "")
        table.add_row("Kurse", str(len(data.classes)),
                      f"{num_recurring} Serien, {len(data.classes) - num_recurring} Einzeltermine")
        console.print(table)


def load_dataset(data: ScheduleData, directory, scheduler) -> tuple[int, list[str]]:
    """Schreibt einen Datensatz über Directory und ClassScheduler in den Speicher.

    Kurse mit Konflikten werden übersprungen. Gibt (angelegt, übersprungen) zurück.
    """
    for rt in data.room_types:
        directory.create_room_type(rt)
    for room in data.rooms:
        directory.create_room(room)
    for instructor in data.instructors:
        directory.create_instructor(instructor)

    created = 0
    skipped: list[str] = []
    for cls in data.classes:
        try:
            scheduler.create_class(cls)
        except ConflictDetectedError as e:
            skipped.append(f"{cls.name}: {e}")
            continue
        created += 1
    return created, skipped
