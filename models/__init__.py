from models.timeslot import Occurrence, TimeSlot
from models.recurrence import RecurrenceConfig, RecurrencePattern
from models.instance import ClassInstance, GeneratedInstance, InstanceStatus
from models.instructor import Instructor
from models.room import Room, RoomType
from models.scheduled_class import CLASS_ADAPTER, RecurringClass, ScheduledClass, SingleClass
from models.calendar import EntityRef, OccurrenceView
from models.schedule_data import ReferenceReport, ScheduleData

__all__ = [
    "Occurrence",
    "TimeSlot",
    "RecurrenceConfig",
    "RecurrencePattern",
    "ClassInstance",
    "GeneratedInstance",
    "InstanceStatus",
    "Instructor",
    "Room",
    "RoomType",
    "CLASS_ADAPTER",
    "RecurringClass",
    "ScheduledClass",
    "SingleClass",
    "EntityRef",
    "OccurrenceView",
    "ReferenceReport",
    "ScheduleData",
]
