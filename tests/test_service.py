"""Tests für ClassScheduler und Directory: Buchen, Status, Verschieben, Kalender."""

from datetime import date

import pytest

from conftest import TODAY, single, weekly
from models.instance import InstanceStatus
from models.scheduled_class import RecurringClass, SingleClass
from scheduling.errors import (
    ConcurrentBookingError,
    ConflictDetectedError,
    InvalidRecurrenceError,
    NotFoundError,
    ValidationError,
)

D = date.fromisoformat


def statuses(scheduler, class_id) -> dict:
    return {(i.date, i.start_time): i.status for i in scheduler.instances.for_class(class_id)}


@pytest.fixture
def course(scheduler, res):
    """Mo + Mi 09:00–10:30, Anna in S1, 01.–15.03.2024 → 4., 6., 11., 13. März."""
    return scheduler.create_class(weekly(res, course_code="PY1"))


# ─── ANLEGEN ──────────────────────────────────────────────────────────────────

class TestCreateClass:
    def test_single_class_has_one_instance(self, scheduler, store, res):
        cls = scheduler.create_class(single(res))
        assert isinstance(cls, SingleClass)
        assert len(cls.generated_instances) == 1
        assert store.count("instances") == 1

    def test_weekly_materializes_window(self, scheduler, course):
        assert isinstance(course, RecurringClass)
        assert [g.date for g in course.generated_instances] == [
            D("2024-03-04"), D("2024-03-06"), D("2024-03-11"), D("2024-03-13"),
        ]
        assert all(g.status == InstanceStatus.SCHEDULED for g in course.generated_instances)

    def test_missing_start_date_anchored_to_today(self, scheduler, res):
        cls = scheduler.create_class(weekly(res, start_date=None))
        assert cls.recurrence.start_date == TODAY
        assert len(cls.generated_instances) == 4

    def test_open_series_uses_horizon(self, scheduler, config, res):
        config.scheduling.horizon_days = 14
        cls = scheduler.create_class(weekly(res, end_date=None))
        assert cls.generated_instances[-1].date <= D("2024-03-15")
        assert len(cls.generated_instances) == 4

    def test_conflict_rejected_nothing_written(self, scheduler, store, res, course):
        with pytest.raises(ConflictDetectedError) as exc:
            scheduler.create_class(single(res, start="09:30", end="10:30", room="r2"))
        assert [c.conflict_type for c in exc.value.result.conflicts] == ["instructor"]
        assert store.count("classes") == 1
        assert store.count("instances") == 4

    def test_force_books_despite_conflict(self, scheduler, store, res, course):
        cls = scheduler.create_class(single(res, start="09:30", end="10:30", room="r2"),
                                     force=True)
        assert store.count("instances") == 5
        assert scheduler.get_class(cls.id).is_active

    def test_warn_only_config(self, scheduler, config, res, course):
        config.scheduling.reject_conflicts = False
        scheduler.create_class(single(res, start="09:30", end="10:30", room="r2"))
        assert len(scheduler.find_classes()) == 2

    def test_same_slot_is_concurrent_booking(self, scheduler, store, res, course):
        """Identischer Beginn derselben Lehrkraft scheitert am Index, auch mit force."""
        with pytest.raises(ConcurrentBookingError):
            scheduler.create_class(single(res, start="09:00", end="09:45", room="r2"),
                                   force=True)
        assert store.count("classes") == 1
        assert store.count("instances") == 4

    def test_unknown_instructor(self, scheduler, res):
        data = single(res)
        data["instructor_id"] = "gibt-es-nicht"
        with pytest.raises(NotFoundError):
            scheduler.create_class(data)

    def test_room_of_other_type(self, scheduler, res):
        with pytest.raises(ValidationError) as exc:
            scheduler.create_class(single(res, room="lab1"))
        assert exc.value.errors[0].field == "room_id"

    def test_invalid_rule(self, scheduler, res):
        with pytest.raises(InvalidRecurrenceError):
            scheduler.create_class(weekly(res, days=()))

    def test_inactive_instructor(self, scheduler, directory, res):
        directory.deactivate_instructor(res.ben.id)
        with pytest.raises(NotFoundError):
            scheduler.create_class(single(res, instructor=res.ben))

    def test_without_room(self, scheduler, res):
        cls = scheduler.create_class(single(res, room=None))
        assert cls.room_id is None


# ─── MATERIALISIERUNG ─────────────────────────────────────────────────────────

class TestGenerateInstances:
    def test_idempotent(self, scheduler, store, course):
        result = scheduler.generate_instances(course.id)
        assert len(result.created) == 0
        assert len(result.preserved) == 4
        assert store.count("instances") == 4

    def test_status_survives_regeneration(self, scheduler, course):
        scheduler.update_status(course.id, "cancelled", instance_id="2024-03-06")
        scheduler.generate_instances(course.id)
        assert statuses(scheduler, course.id)[(D("2024-03-06"), "09:00")] == InstanceStatus.CANCELLED

    def test_until(self, scheduler, config, res):
        config.scheduling.horizon_days = 3
        cls = scheduler.create_class(weekly(res, end_date=None))
        assert len(cls.generated_instances) == 1
        result = scheduler.generate_instances(cls.id, until=D("2024-03-13"))
        assert len(result.created) == 3
        assert result.summary() == "3 neu, 1 unverändert"

    def test_until_before_start(self, scheduler, course):
        with pytest.raises(ValidationError):
            scheduler.generate_instances(course.id, until=D("2024-02-01"))

    def test_inactive_class(self, scheduler, course):
        scheduler.deactivate_class(course.id)
        with pytest.raises(NotFoundError):
            scheduler.generate_instances(course.id)


# ─── STATUS ───────────────────────────────────────────────────────────────────

class TestUpdateStatus:
    def test_default_targets_next_scheduled(self, scheduler, course):
        first = scheduler.update_status(course.id, "completed")
        assert first.date == D("2024-03-04")
        second = scheduler.update_status(course.id, InstanceStatus.COMPLETED)
        assert second.date == D("2024-03-06")

    def test_on_date(self, scheduler, course):
        inst = scheduler.update_status(course.id, "cancelled", on_date=D("2024-03-12"))
        assert inst.date == D("2024-03-13")

    def test_after_series_end_falls_back_to_last(self, scheduler, course):
        inst = scheduler.update_status(course.id, "completed", on_date=D("2024-03-20"))
        assert inst.date == D("2024-03-13")

    def test_occurrence_key(self, scheduler, course):
        inst = scheduler.update_status(course.id, "cancelled",
                                       instance_id=f"{course.id}:2024-03-11:9:00")
        assert (inst.date, inst.start_time) == (D("2024-03-11"), "09:00")

    def test_date_id_with_class_prefix(self, scheduler, course):
        inst = scheduler.update_status(course.id, "cancelled",
                                       instance_id=f"{course.id}-2024-03-13")
        assert inst.date == D("2024-03-13")

    def test_stored_id_and_notes(self, scheduler, course):
        target = course.generated_instances[2]
        inst = scheduler.update_status(course.id, "completed", instance_id=target.instance_id,
                                       notes="Gut besucht")
        assert inst.id == target.instance_id
        assert inst.notes == "Gut besucht"

    def test_summary_follows_status(self, scheduler, course):
        scheduler.update_status(course.id, "cancelled", instance_id="2024-03-04")
        cls = scheduler.get_class(course.id)
        assert cls.generated_instances[0].status == InstanceStatus.CANCELLED

    @pytest.mark.parametrize("bad_id", ["2024-03-05", "quatsch", "anderer-kurs-2024-03-04",
                                        "2024-13-45"])
    def test_unknown_instance(self, scheduler, course, bad_id):
        with pytest.raises(NotFoundError):
            scheduler.update_status(course.id, "cancelled", instance_id=bad_id)

    def test_instance_of_other_class(self, scheduler, res, course):
        other = scheduler.create_class(single(res, day="2024-03-05"))
        with pytest.raises(NotFoundError):
            scheduler.update_status(course.id, "cancelled",
                                    instance_id=other.generated_instances[0].instance_id)

    def test_unknown_status(self, scheduler, course):
        with pytest.raises(ValidationError) as exc:
            scheduler.update_status(course.id, "erledigt")
        assert exc.value.errors[0].field == "status"

    def test_rescheduled_only_via_reschedule(self, scheduler, course):
        """Ohne Ersatztermin lässt sich kein Termin auf 'rescheduled' setzen."""
        with pytest.raises(ValidationError) as exc:
            scheduler.update_status(course.id, "rescheduled", instance_id="2024-03-04")
        assert exc.value.errors[0].field == "status"
        assert statuses(scheduler, course.id)[(D("2024-03-04"), "09:00")] == InstanceStatus.SCHEDULED

    def test_single_class(self, scheduler, res):
        cls = scheduler.create_class(single(res))
        inst = scheduler.update_status(cls.id, "completed")
        assert inst.id == cls.generated_instances[0].instance_id

    def test_unknown_class(self, scheduler):
        with pytest.raises(NotFoundError):
            scheduler.update_status("gibt-es-nicht", "completed")


# ─── VERSCHIEBEN ──────────────────────────────────────────────────────────────

class TestReschedule:
    def test_reschedule_creates_replacement(self, scheduler, course):
        replacement = scheduler.reschedule_instance(course.id, D("2024-03-05"),
                                                    instance_id="2024-03-04")
        original = scheduler.instances.require(replacement.rescheduled_from)
        assert original.status == InstanceStatus.RESCHEDULED
        assert original.date == D("2024-03-04")
        assert (replacement.date, replacement.start_time, replacement.end_time) == (
            D("2024-03-05"), "09:00", "10:30"
        )
        assert replacement.status == InstanceStatus.SCHEDULED

    def test_replacement_is_next_target(self, scheduler, course):
        """Der Ersatztermin am 05.03. liegt vor dem Serientermin am 06.03."""
        replacement = scheduler.reschedule_instance(course.id, D("2024-03-05"),
                                                    instance_id="2024-03-04")
        inst = scheduler.update_status(course.id, "completed")
        assert inst.id == replacement.id

    def test_keeps_duration(self, scheduler, course):
        replacement = scheduler.reschedule_instance(course.id, D("2024-03-04"),
                                                    instance_id="2024-03-04",
                                                    start_time="14:00")
        assert (replacement.start_time, replacement.end_time) == ("14:00", "15:30")

    def test_original_slot_stays_booked(self, scheduler, res, course):
        """Das verschobene Original blockiert seinen Slot weiterhin."""
        scheduler.reschedule_instance(course.id, D("2024-03-05"), instance_id="2024-03-04")
        with pytest.raises(ConflictDetectedError):
            scheduler.create_class(single(res, start="09:00", end="10:00", room="r2"))

    def test_replacement_may_not_overlap_original(self, scheduler, course):
        with pytest.raises(ConflictDetectedError):
            scheduler.reschedule_instance(course.id, D("2024-03-04"), instance_id="2024-03-04",
                                          start_time="10:00")

    def test_same_start_rejected(self, scheduler, res, course):
        with pytest.raises(ValidationError):
            scheduler.reschedule_instance(course.id, D("2024-03-04"), instance_id="2024-03-04",
                                          room_id=res.r2.id, force=True)

    def test_conflict_at_target(self, scheduler, res, course):
        scheduler.create_class(single(res, day="2024-03-05", room="r2"))
        with pytest.raises(ConflictDetectedError):
            scheduler.reschedule_instance(course.id, D("2024-03-05"), instance_id="2024-03-04")
        assert statuses(scheduler, course.id)[(D("2024-03-04"), "09:00")] == InstanceStatus.SCHEDULED

    def test_other_room(self, scheduler, res, course):
        replacement = scheduler.reschedule_instance(course.id, D("2024-03-05"),
                                                    instance_id="2024-03-04", room_id=res.r2.id)
        assert replacement.room_id == res.r2.id

    def test_cancelled_cannot_be_moved(self, scheduler, course):
        scheduler.update_status(course.id, "cancelled", instance_id="2024-03-04")
        with pytest.raises(ValidationError):
            scheduler.reschedule_instance(course.id, D("2024-03-05"), instance_id="2024-03-04")

    def test_past_midnight_rejected(self, scheduler, course):
        with pytest.raises(ValidationError):
            scheduler.reschedule_instance(course.id, D("2024-03-05"), instance_id="2024-03-04",
                                          start_time="23:00")

    def test_explicit_end_before_start(self, scheduler, course):
        with pytest.raises(ValidationError):
            scheduler.reschedule_instance(course.id, D("2024-03-05"), instance_id="2024-03-04",
                                          start_time="12:00", end_time="11:00")


# ─── ÄNDERN & DEAKTIVIEREN ────────────────────────────────────────────────────

class TestUpdateClass:
    def test_new_time_slot_reconciles_future(self, scheduler, res, course):
        """Unveränderte Termine weichen, der mit Notiz bleibt erhalten."""
        scheduler.update_status(course.id, "scheduled", instance_id="2024-03-11",
                                notes="Raumwechsel")
        changes = {"recurrence": weekly(res, start="11:00", end="12:30")["recurrence"]}
        updated = scheduler.update_class(course.id, changes)

        result = statuses(scheduler, course.id)
        assert len(result) == 5
        assert (D("2024-03-11"), "09:00") in result
        assert sorted(d for d, t in result if t == "11:00") == [
            D("2024-03-04"), D("2024-03-06"), D("2024-03-11"), D("2024-03-13"),
        ]
        assert len(updated.generated_instances) == 5

    def test_new_instructor_repoints_instances(self, scheduler, res, course):
        scheduler.update_class(course.id, {"instructor_id": res.ben.id})
        assert {i.instructor_id for i in scheduler.instances.for_class(course.id)} == {res.ben.id}

    def test_conflict_leaves_class_unchanged(self, scheduler, res, course):
        scheduler.create_class(weekly(res, days=(1,), instructor=res.ben, room="r2",
                                      name="Statistik"))
        with pytest.raises(ConflictDetectedError):
            scheduler.update_class(course.id, {"instructor_id": res.ben.id})
        assert scheduler.get_class(course.id).instructor_id == res.anna.id

    def test_own_slots_are_not_conflicts(self, scheduler, course):
        updated = scheduler.update_class(course.id, {"name": "Python Einstieg"})
        assert updated.name == "Python Einstieg"

    @pytest.fixture
    def running(self, scheduler, res):
        """Mo + Mi seit 05.02.2024, vor dem 01.03. schon acht Termine."""
        return scheduler.create_class(weekly(res, start_date="2024-02-05"))

    def _slots(self, scheduler, class_id) -> list[tuple]:
        return sorted((i.date, i.start_time, i.end_time)
                      for i in scheduler.instances.for_class(class_id))

    def test_running_series_new_end_time(self, scheduler, res, running):
        changes = {"recurrence": weekly(res, start_date="2024-02-05", end="11:00")["recurrence"]}
        scheduler.update_class(running.id, changes)

        slots = self._slots(scheduler, running.id)
        assert len(slots) == 12
        assert {end for d, _, end in slots if d < TODAY} == {"10:30"}
        assert {end for d, _, end in slots if d >= TODAY} == {"11:00"}

    def test_running_series_keeps_history(self, scheduler, res, running):
        scheduler.update_status(running.id, "completed", instance_id="2024-02-05")
        past_before = [s for s in self._slots(scheduler, running.id) if s[0] < TODAY]

        changes = {"recurrence": weekly(res, start_date="2024-02-05",
                                        start="13:00", end="14:00")["recurrence"]}
        scheduler.update_class(running.id, changes)

        slots = self._slots(scheduler, running.id)
        assert [s for s in slots if s[0] < TODAY] == past_before
        assert [s[1] for s in slots if s[0] >= TODAY] == ["13:00"] * 4
        # Ein Termin pro Tag
        assert len({s[0] for s in slots}) == len(slots)
        assert statuses(scheduler, running.id)[(D("2024-02-05"), "09:00")] == \
            InstanceStatus.COMPLETED

    def test_finished_series_only_changes_definition(self, scheduler, res):
        done = scheduler.create_class(weekly(res, start_date="2024-02-05",
                                             end_date="2024-02-28"))
        updated = scheduler.update_class(done.id, {"instructor_id": res.ben.id})
        assert updated.instructor_id == res.ben.id
        assert {i.instructor_id for i in scheduler.instances.for_class(done.id)} == {res.anna.id}
        assert len(updated.generated_instances) == 8

    @pytest.mark.parametrize("field", ["id", "class_type", "is_active", "generated_instances"])
    def test_protected_fields(self, scheduler, course, field):
        with pytest.raises(ValidationError):
            scheduler.update_class(course.id, {field: None})

    def test_get_class_cache_invalidated(self, scheduler, cache, course):
        assert scheduler.get_class(course.id).name == "Python Grundkurs"
        assert cache.get(scheduler.keys.class_(course.id)) is not None
        scheduler.update_class(course.id, {"name": "Python Einstieg"})
        assert scheduler.get_class(course.id).name == "Python Einstieg"


class TestDeactivateClass:
    def test_cancels_future_scheduled(self, scheduler, course):
        scheduler.update_status(course.id, "completed", instance_id="2024-03-04")
        cls = scheduler.deactivate_class(course.id)
        assert not cls.is_active
        result = statuses(scheduler, course.id)
        assert result[(D("2024-03-04"), "09:00")] == InstanceStatus.COMPLETED
        assert list(result.values()).count(InstanceStatus.CANCELLED) == 3

    def test_hidden_from_search(self, scheduler, course):
        scheduler.deactivate_class(course.id)
        assert scheduler.find_classes() == []
        assert len(scheduler.find_classes(include_inactive=True)) == 1

    def test_slots_become_free(self, scheduler, res, course):
        scheduler.deactivate_class(course.id)
        cls = scheduler.create_class(single(res, start="09:00", end="10:00"))
        assert cls.is_active


# ─── SUCHE ────────────────────────────────────────────────────────────────────

class TestFindClasses:
    @pytest.fixture
    def catalog(self, scheduler, res, course):
        workshop = scheduler.create_class(
            single(res, day="2024-03-20", instructor=res.ben, room="r2", name="Excel Workshop")
        )
        return course, workshop

    def test_text_search(self, scheduler, catalog):
        assert [c.name for c in scheduler.find_classes(search="python")] == ["Python Grundkurs"]
        assert [c.name for c in scheduler.find_classes(search="py1")] == ["Python Grundkurs"]

    def test_filters(self, scheduler, res, catalog):
        course, workshop = catalog
        assert [c.id for c in scheduler.find_classes(instructor_id=res.ben.id)] == [workshop.id]
        assert [c.id for c in scheduler.find_classes(class_type="single")] == [workshop.id]
        assert [c.id for c in scheduler.find_classes(pattern="weekly")] == [course.id]
        assert [c.id for c in scheduler.find_classes(room_id=res.r1.id)] == [course.id]

    def test_date_overlap(self, scheduler, catalog):
        course, workshop = catalog
        found = scheduler.find_classes(start_date=D("2024-03-16"), end_date=D("2024-03-31"))
        assert [c.id for c in found] == [workshop.id]
        found = scheduler.find_classes(end_date=D("2024-03-10"))
        assert [c.id for c in found] == [course.id]

    def test_cache_invalidated_on_create(self, scheduler, res, catalog):
        assert len(scheduler.find_classes()) == 2
        scheduler.create_class(single(res, day="2024-03-21", name="Zusatztermin"))
        assert len(scheduler.find_classes()) == 3


# ─── KALENDER ─────────────────────────────────────────────────────────────────

class TestCalendar:
    def test_range_grouped_by_day(self, scheduler, course):
        calendar = scheduler.get_occurrences_in_range(D("2024-03-01"), D("2024-03-15"))
        assert list(calendar) == ["2024-03-04", "2024-03-06", "2024-03-11", "2024-03-13"]
        view = calendar["2024-03-04"][0]
        assert view.instructor.name == "Anna Berg"
        assert view.room.name == "S1"
        assert view.instance_id == view.id

    def test_sorted_by_start_time(self, scheduler, res, course):
        scheduler.create_class(single(res, start="07:00", end="08:00", instructor=res.ben,
                                      room="r2", name="Frühkurs"))
        day = scheduler.get_occurrences_in_range(D("2024-03-04"), D("2024-03-04"))["2024-03-04"]
        assert [v.start_time for v in day] == ["07:00", "09:00"]

    def test_filters(self, scheduler, res, course):
        assert scheduler.get_occurrences_in_range(
            D("2024-03-01"), D("2024-03-15"), instructor_id=res.ben.id) == {}
        assert len(scheduler.get_occurrences_in_range(
            D("2024-03-01"), D("2024-03-15"), room_id=res.r1.id)) == 4
        assert scheduler.get_occurrences_in_range(
            D("2024-03-01"), D("2024-03-15"), room_type_id=res.lab.id) == {}

    def test_status_and_replacement_visible(self, scheduler, course):
        scheduler.reschedule_instance(course.id, D("2024-03-05"), instance_id="2024-03-04")
        calendar = scheduler.get_occurrences_in_range(D("2024-03-04"), D("2024-03-05"))
        assert calendar["2024-03-04"][0].status == InstanceStatus.RESCHEDULED
        assert calendar["2024-03-05"][0].status == InstanceStatus.SCHEDULED

    def test_unmaterialized_occurrence_addressable(self, scheduler, config, res):
        """Termine hinter dem Horizont erscheinen mit Termin-Schlüssel als ID."""
        config.scheduling.horizon_days = 14
        cls = scheduler.create_class(weekly(res, end_date=None))
        calendar = scheduler.get_occurrences_in_range(D("2024-04-01"), D("2024-04-07"))
        view = calendar["2024-04-01"][0]
        assert view.instance_id is None
        assert view.id == f"{cls.id}:2024-04-01:09:00"

        scheduler.update_status(cls.id, "cancelled", instance_id=view.id)
        calendar = scheduler.get_occurrences_in_range(D("2024-04-01"), D("2024-04-07"))
        assert calendar["2024-04-01"][0].status == InstanceStatus.CANCELLED
        assert calendar["2024-04-01"][0].instance_id is not None

    def test_multi_day_single_on_every_day(self, scheduler, res):
        cls = scheduler.create_class(single(res, day="2024-03-04", end_date="2024-03-06"))
        scheduler.update_status(cls.id, "cancelled")
        calendar = scheduler.get_occurrences_in_range(D("2024-03-01"), D("2024-03-10"))
        assert list(calendar) == ["2024-03-04", "2024-03-05", "2024-03-06"]
        assert {v[0].status for v in calendar.values()} == {InstanceStatus.CANCELLED}

    def test_end_before_start(self, scheduler):
        with pytest.raises(ValidationError):
            scheduler.get_occurrences_in_range(D("2024-03-10"), D("2024-03-01"))

    def test_window_too_large(self, scheduler, config):
        config.scheduling.max_window_days = 7
        with pytest.raises(ValidationError):
            scheduler.get_occurrences_in_range(D("2024-03-01"), D("2024-03-08"))


# ─── STAMMDATEN ───────────────────────────────────────────────────────────────

class TestDirectory:
    def test_duplicate_email(self, directory, res):
        with pytest.raises(ValidationError) as exc:
            directory.create_instructor({"first_name": "A", "last_name": "B",
                                         "email": "ANNA@akademie.example"})
        assert exc.value.errors[0].field == "email"

    def test_invalid_email(self, directory):
        with pytest.raises(ValidationError):
            directory.create_instructor({"first_name": "A", "last_name": "B", "email": "kaputt"})

    def test_room_needs_active_type(self, directory, res):
        with pytest.raises(NotFoundError):
            directory.create_room({"name": "X", "room_type_id": "gibt-es-nicht"})
        directory.deactivate_room_type(res.lab.id)
        with pytest.raises(NotFoundError):
            directory.create_room({"name": "L2", "room_type_id": res.lab.id})

    def test_list_cache_invalidated(self, directory, res):
        assert [i.last_name for i in directory.list_instructors()] == ["Berg", "Krause"]
        directory.create_instructor({"first_name": "Cem", "last_name": "Arslan",
                                     "email": "cem@akademie.example"})
        assert [i.last_name for i in directory.list_instructors()] == ["Arslan", "Berg", "Krause"]
        directory.deactivate_instructor(res.ben.id)
        assert len(directory.list_instructors()) == 2
        assert len(directory.list_instructors(active_only=False)) == 3

    def test_rooms_by_type(self, directory, res):
        assert [r.name for r in directory.list_rooms(res.seminar.id)] == ["S1", "S2"]
        assert len(directory.list_rooms()) == 3

    def test_protected_id(self, directory, res):
        with pytest.raises(ValidationError):
            directory.update_room(res.r1.id, {"id": "neu"})

    def test_update_keeps_email_unique(self, directory, res):
        with pytest.raises(ValidationError):
            directory.update_instructor(res.ben.id, {"email": "anna@akademie.example"})
        updated = directory.update_instructor(res.ben.id, {"phone": "+49 30 1234"})
        assert updated.phone == "+49 30 1234"
