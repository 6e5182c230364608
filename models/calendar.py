"""Ansichtsobjekte für Kalender- und Listendarstellung (Pydantic v2)."""

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel

from models.instance import InstanceStatus


class EntityRef(BaseModel):
    """Aufgelöste Referenz (ID + Anzeigename)."""

    id: str
    name: str


class OccurrenceView(BaseModel):
    """Ein Termin im Kalender-Feed, mit aufgelöster Lehrkraft und Raum.

    id ist die Instanz-ID, falls der Termin materialisiert ist, sonst der
    Termin-Schlüssel "<kurs-id>:<YYYY-MM-DD>:<HH:MM>" (für update_status nutzbar).
    """

    id: str
    class_id: str
    name: str
    course_code: Optional[str] = None
    instructor: Optional[EntityRef] = None
    room: Optional[EntityRef] = None
    date: date
    start_time: str
    end_time: str
    class_type: Literal["single", "recurring"]
    status: InstanceStatus = InstanceStatus.SCHEDULED
    notes: Optional[str] = None
    instance_id: Optional[str] = None   # None = noch nicht materialisiert
