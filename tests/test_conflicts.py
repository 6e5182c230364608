"""Tests für die Konfliktprüfung (Lehrkraft und Raum)."""

from datetime import date

import pytest

from conftest import single, weekly
from scheduling.conflicts import BookingSubject, candidate_window
from scheduling.errors import NotFoundError
from scheduling.validation import parse_class

D = date.fromisoformat


def subject(res, day="2024-03-04", start="10:00", end="11:00", instructor=None, room="r2"):
    return BookingSubject(
        instructor_id=(instructor or res.anna).id,
        room_id=getattr(res, room).id if room else None,
        date=D(day), start_time=start, end_time=end,
    )


@pytest.fixture
def monday_course(scheduler, res):
    """Montagskurs 09:00–10:30, Anna in S1, 01.–15.03.2024 (materialisiert)."""
    return scheduler.create_class(weekly(res, days=(1,)))


# ─── EINZELBUCHUNG ────────────────────────────────────────────────────────────

class TestCheckConflicts:
    def test_instructor_overlap_only(self, scheduler, res, monday_course):
        """Anna am Mo 04.03. 10:00–11:00 in S2 → genau ein Lehrkraft-Konflikt."""
        result = scheduler.detector.check_conflicts(subject(res))
        assert result.has_conflict
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.conflict_type == "instructor"
        assert conflict.class_id == monday_course.id
        assert conflict.class_name == "Python Grundkurs"
        assert conflict.instance_id is not None
        assert (conflict.start_time, conflict.end_time) == ("09:00", "10:30")

    def test_touching_boundary_is_free(self, scheduler, res, monday_course):
        result = scheduler.detector.check_conflicts(
            subject(res, start="10:30", end="11:30", room="r1")
        )
        assert not result.has_conflict

    def test_room_only(self, scheduler, res, monday_course):
        result = scheduler.detector.check_conflicts(
            subject(res, start="09:30", end="10:00", instructor=res.ben, room="r1")
        )
        assert [c.conflict_type for c in result.conflicts] == ["room"]

    def test_instructor_and_room(self, scheduler, res, monday_course):
        result = scheduler.detector.check_conflicts(subject(res, start="09:00", room="r1"))
        assert sorted(c.conflict_type for c in result.conflicts) == ["instructor", "room"]

    def test_without_room_only_instructor_checked(self, scheduler, res, monday_course):
        result = scheduler.detector.check_conflicts(
            subject(res, start="09:00", instructor=res.ben, room=None)
        )
        assert not result.has_conflict

    def test_other_day_is_free(self, scheduler, res, monday_course):
        assert not scheduler.detector.check_conflicts(subject(res, day="2024-03-05")).has_conflict

    def test_cancelled_instance_frees_slot(self, scheduler, res, monday_course):
        scheduler.update_status(monday_course.id, "cancelled", instance_id="2024-03-04")
        assert not scheduler.detector.check_conflicts(subject(res)).has_conflict
        # Der Folgetermin bleibt belegt
        assert scheduler.detector.check_conflicts(subject(res, day="2024-03-11")).has_conflict

    def test_rescheduled_original_stays_booked(self, scheduler, res, monday_course):
        """Nur 'cancelled' gibt frei; ein verschobenes Original belegt weiter."""
        scheduler.reschedule_instance(monday_course.id, D("2024-03-05"), instance_id="2024-03-04")
        result = scheduler.detector.check_conflicts(subject(res, start="09:30", end="10:30",
                                                            room="r1"))
        assert sorted(c.conflict_type for c in result.conflicts) == ["instructor", "room"]

    def test_completed_instance_stays_booked(self, scheduler, res, monday_course):
        scheduler.update_status(monday_course.id, "completed", instance_id="2024-03-04")
        assert scheduler.detector.check_conflicts(subject(res)).has_conflict

    def test_exclude_class(self, scheduler, res, monday_course):
        result = scheduler.detector.check_conflicts(
            subject(res), exclude_class_id=monday_course.id
        )
        assert not result.has_conflict

    def test_unmaterialized_series_is_derived(self, scheduler, res):
        """Kurse ohne gespeicherte Termine belegen ihre Slots trotzdem."""
        cls = parse_class(weekly(res, days=(1,)))
        scheduler.classes.add(cls)
        result = scheduler.detector.check_conflicts(subject(res))
        assert len(result.conflicts) == 1
        assert result.conflicts[0].instance_id is None

    def test_multi_day_single_blocks_every_day(self, scheduler, res):
        course = scheduler.create_class(
            single(res, day="2024-03-04", end_date="2024-03-06", instructor=res.ben, room="r2")
        )
        booking = subject(res, day="2024-03-05", start="09:30", end="10:30",
                        instructor=res.ben, room=None)
        assert scheduler.detector.check_conflicts(booking).has_conflict

        scheduler.update_status(course.id, "cancelled")
        assert not scheduler.detector.check_conflicts(booking).has_conflict

    def test_unknown_instructor(self, scheduler, res):
        booking = BookingSubject(instructor_id="gibt-es-nicht", date=D("2024-03-04"),
                               start_time="09:00", end_time="10:00")
        with pytest.raises(NotFoundError):
            scheduler.detector.check_conflicts(booking)

    def test_inactive_room(self, scheduler, directory, res):
        directory.deactivate_room(res.r2.id)
        with pytest.raises(NotFoundError):
            scheduler.detector.check_conflicts(subject(res))

    def test_check_does_not_write(self, scheduler, store, res, monday_course):
        before = store.count("instances")
        scheduler.detector.check_conflicts(subject(res))
        assert store.count("instances") == before


# ─── KURSPRÜFUNG ──────────────────────────────────────────────────────────────

class TestCheckClassConflicts:
    def test_series_against_series(self, scheduler, res, monday_course):
        candidate = parse_class(weekly(res, days=(1,), start="10:00", end="11:00", room="r2",
                                       name="Statistik"))
        result = scheduler.check(candidate)
        assert [c.date for c in result.conflicts] == [D("2024-03-04"), D("2024-03-11")]
        assert {c.conflict_type for c in result.conflicts} == {"instructor"}

    def test_multi_day_single_candidate(self, scheduler, res, monday_course):
        candidate = parse_class(single(res, day="2024-03-03", end_date="2024-03-05", room="r2"))
        result = scheduler.check(candidate)
        assert [c.date for c in result.conflicts] == [D("2024-03-04")]

    def test_conflicts_are_deduplicated(self, scheduler, res, monday_course):
        """Zwei Slots am selben Tag gegen denselben Termin ergeben einen Eintrag."""
        data = weekly(res, days=(1,), room="r2")
        data["recurrence"]["time_slots"] = [
            {"start_time": "09:00", "end_time": "09:30"},
            {"start_time": "09:15", "end_time": "09:45"},
        ]
        result = scheduler.check(parse_class(data))
        assert len(result.conflicts) == 2

    def test_no_occurrences_no_conflicts(self, scheduler, res, monday_course):
        candidate = parse_class(weekly(res, days=(0,), start_date="2024-03-04",
                                       end_date="2024-03-09"))
        assert not scheduler.check(candidate).has_conflict


class TestCandidateWindow:
    def test_single_class(self, res):
        cls = parse_class(single(res, day="2024-03-04", end_date="2024-03-06"))
        assert candidate_window(cls) == (D("2024-03-04"), D("2024-03-06"))

    def test_open_series_uses_horizon_from_today(self, res):
        cls = parse_class(weekly(res, start_date="2024-01-01", end_date=None))
        assert candidate_window(cls, horizon_days=30, today=D("2024-03-01")) == (
            D("2024-01-01"), D("2024-03-31")
        )

    def test_closed_series(self, res):
        cls = parse_class(weekly(res))
        assert candidate_window(cls, today=D("2030-01-01")) == (D("2024-03-01"), D("2024-03-15"))
