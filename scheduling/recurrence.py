"""Recurrence-Expander: Wiederholungsregel + Fenster → konkrete Termine.

Die Expansion ist eine reine Funktion ihrer Eingaben (kein versteckter
Zustand) und damit beliebig oft neu startbar. Die Mustererkennung läuft über
dateutil.rrule, Ausschlüsse über exrule/exdate eines rruleset.

Regeln:
  - Kandidaten laufen vom Serienbeginn bzw. Fensterbeginn bis
    min(end_date, window_end), jeweils inklusive.
  - daily:   DAILY mit interval ab Serienbeginn
  - weekly:  WEEKLY, byweekday = days_of_week, Wochen beginnen sonntags
  - monthly: MONTHLY, bymonthday = day_of_month
  - custom:  ohne Listen jeder N-te Tag; sonst Vereinigung aus einer
             Wochentags- und einer Monatstagsregel (ODER-Verknüpfung)
  - exclude_weekends und exclusion_dates filtern danach.
  - occurrences zählt Treffertage (nicht Tag × Slot) ab Serienbeginn,
    auch solche vor dem Fenster.
"""

import logging
from datetime import date, timedelta
from typing import Iterator, Optional, Union

from dateutil.rrule import DAILY, MONTHLY, WEEKLY, FR, MO, SA, SU, TH, TU, WE, rrule, rruleset

from models.recurrence import RecurrenceConfig, RecurrencePattern
from models.scheduled_class import RecurringClass, SingleClass
from models.timeslot import Occurrence
from scheduling.timeutils import at_midnight, is_date_in_range
from scheduling.validation import validate_recurrence

logger = logging.getLogger(__name__)

# Expansionshorizont für offene Serien ohne explizites Fensterende
DEFAULT_HORIZON_DAYS = 365

# Index = Wochentag in 0=Sonntag-Zählung
RRULE_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)


def build_ruleset(rec: RecurrenceConfig, anchor: date, until: date) -> rruleset:
    """Übersetzt eine Regel in ein rruleset von anchor bis until (inklusive).

    Wochenenden und exclusion_dates sind bereits als exrule/exdate enthalten.
    """
    base = dict(dtstart=at_midnight(anchor), until=at_midnight(until))
    step = dict(base, interval=max(rec.interval, 1), wkst=SU)
    weekdays = [RRULE_WEEKDAYS[d] for d in sorted(set(rec.days_of_week))]
    monthdays = sorted(set(rec.day_of_month))

    rules = rruleset()
    if rec.pattern == RecurrencePattern.WEEKLY:
        rules.rrule(rrule(WEEKLY, byweekday=weekdays, **step))
    elif rec.pattern == RecurrencePattern.MONTHLY:
        rules.rrule(rrule(MONTHLY, bymonthday=monthdays, **step))
    elif rec.pattern == RecurrencePattern.CUSTOM and (weekdays or monthdays):
        if weekdays:
            rules.rrule(rrule(DAILY, byweekday=weekdays, **step))
        if monthdays:
            rules.rrule(rrule(DAILY, bymonthday=monthdays, **step))
    else:
        # daily sowie custom ohne Listen: jeder N-te Tag
        rules.rrule(rrule(DAILY, **step))

    if rec.exclude_weekends:
        rules.exrule(rrule(DAILY, byweekday=(SA, SU), **base))
    for d in rec.excluded:
        rules.exdate(at_midnight(d))
    return rules


def iter_matching_dates(
    rec: RecurrenceConfig, window_start: date, window_end: date
) -> Iterator[date]:
    """Liefert alle Treffertage im Fenster in aufsteigender Reihenfolge."""
    anchor = rec.start_date or window_start
    last = window_end if rec.end_date is None else min(rec.end_date, window_end)
    # Mit occurrences-Limit muss ab Serienbeginn gezählt werden
    first = anchor if rec.occurrences is not None else max(anchor, window_start)
    if first > last:
        return

    matched = 0
    for hit in build_ruleset(rec, anchor, last).xafter(at_midnight(first), inc=True):
        d = hit.date()
        matched += 1
        if d >= window_start:
            yield d
        if rec.occurrences is not None and matched >= rec.occurrences:
            return


def iter_expand(
    rec: RecurrenceConfig, window_start: date, window_end: date
) -> Iterator[Occurrence]:
    """Lazy-Variante von expand(): validiert sofort, erzeugt dann Termin für Termin."""
    validate_recurrence(rec)
    return _iter_slots(rec, window_start, window_end)


def _iter_slots(rec: RecurrenceConfig, window_start: date, window_end: date) -> Iterator[Occurrence]:
    for d in iter_matching_dates(rec, window_start, window_end):
        for slot in rec.time_slots:
            yield Occurrence(d, slot.start_time, slot.end_time)


def expand(rec: RecurrenceConfig, window_start: date, window_end: date) -> list[Occurrence]:
    """Expandiert eine Wiederholungsregel im Fenster [window_start, window_end].

    Sortierung: aufsteigend nach Datum, dann Slot-Reihenfolge wie deklariert.
    Wirft InvalidRecurrenceError bei fehlerhafter Regel.
    """
    occurrences = list(iter_expand(rec, window_start, window_end))
    logger.debug(
        f"Expansion {rec.pattern.value} {window_start}..{window_end}: "
        f"{len(occurrences)} Termine"
    )
    return occurrences


# ─── Kurs-Ebene ───────────────────────────────────────────────────────────────

def series_window(
    rec: RecurrenceConfig,
    window_start: Optional[date] = None,
    window_end: Optional[date] = None,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> tuple[date, date]:
    """Ermittelt ein endliches Fenster für eine Serie.

    Ohne Fensterende gilt end_date der Regel oder Beginn + horizon_days.
    """
    start = window_start or rec.start_date or date.today()
    if window_end is not None:
        end = window_end
    elif rec.end_date is not None:
        end = rec.end_date
    else:
        end = start + timedelta(days=horizon_days)
    return start, end


def expand_class(
    cls: Union[SingleClass, RecurringClass],
    window_start: Optional[date] = None,
    window_end: Optional[date] = None,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> list[Occurrence]:
    """Termine eines Kurses im Fenster.

    Einzeltermin: genau ein Termin (start_date, start_time, end_time), sofern
    start_date im Fenster liegt. Serie: expand() über das Fenster.
    """
    if isinstance(cls, SingleClass):
        ws = window_start or cls.start_date
        we = window_end or cls.start_date
        if is_date_in_range(cls.start_date, ws, we):
            return [Occurrence(cls.start_date, cls.start_time, cls.end_time)]
        return []

    start, end = series_window(cls.recurrence, window_start, window_end, horizon_days)
    return expand(cls.recurrence, start, end)


def occurrences_on(cls: Union[SingleClass, RecurringClass], d: date) -> list[Occurrence]:
    """Alle Zeitfenster, die ein Kurs am Tag d belegt.

    Mehrtägige Einzeltermine belegen jeden Tag ihres Bereichs zur selben Uhrzeit.
    """
    if isinstance(cls, SingleClass):
        if is_date_in_range(d, cls.start_date, cls.effective_end_date):
            return [Occurrence(d, cls.start_time, cls.end_time)]
        return []
    return expand(cls.recurrence, d, d)
