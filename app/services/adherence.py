# app/services/adherence.py
"""
Adherence numbers derived from a patient's medication rows.

A medication row is a dict as stored in the ``medications`` table; only
``start_date``, ``end_date`` and ``taken_date`` (a list of ISO days) are read
here. Both dashboards call into this module so the patient and the caretaker
always see the same figures.

Definitions, all for the calendar month of the reference date:

* active medication: its [start_date, end_date] contains the reference date,
  a missing bound being open-ended;
* expected doses: active medications x elapsed days (day 1 .. reference date);
* adherence rate: round(100 * taken / expected), 0 when nothing is expected;
* missed doses: expected - taken, never below zero (future days are never
  missed);
* streak: consecutive days walking back from the reference date on which any
  medication was taken. It stops at the first gap, at the first day of the
  month, or at the cap.

Malformed or missing dates never raise: a bad bound is treated as open-ended
and a bad taken-date is skipped.
"""
import calendar
import logging
import math
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

DEFAULT_STREAK_CAP = 30
RECENT_ACTIVITY_LIMIT = 5


def _flag(value):
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


class AdherencePolicy:
    """
    count_out_of_window: count taken-dates that fall outside the
    medication's own start/end range (still only within the month).
    """
    def __init__(self, count_out_of_window=False, streak_cap_days=DEFAULT_STREAK_CAP):
        self.count_out_of_window = count_out_of_window
        self.streak_cap_days = streak_cap_days

    @classmethod
    def from_config(cls, config):
        return cls(
            count_out_of_window=_flag(config.get("ADHERENCE_COUNT_OUT_OF_WINDOW", False)),
            streak_cap_days=int(config.get("STREAK_CAP_DAYS", DEFAULT_STREAK_CAP)),
        )


def parse_day(value):
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.debug("Ignoring malformed date %r", value)
        return None


def month_window(reference_date):
    first = reference_date.replace(day=1)
    last_day = calendar.monthrange(reference_date.year, reference_date.month)[1]
    return first, reference_date.replace(day=last_day)


def is_active(record, day):
    start = parse_day(record.get("start_date"))
    end = parse_day(record.get("end_date"))
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def taken_days(record, policy=None):
    policy = policy or AdherencePolicy()
    days = set()
    for raw in record.get("taken_date") or []:
        day = parse_day(raw)
        if day is None:
            continue
        if not policy.count_out_of_window and not is_active(record, day):
            continue
        days.add(day)
    return days


def _any_taken(records, policy):
    days = set()
    for record in records:
        days |= taken_days(record, policy)
    return days


def _percent(part, whole):
    if whole <= 0:
        return 0
    # half-up, not banker's rounding
    return int(math.floor(100.0 * part / whole + 0.5))


def current_streak(records, reference_date, window_start=None, policy=None):
    policy = policy or AdherencePolicy()
    if window_start is None:
        window_start, _ = month_window(reference_date)
    taken = _any_taken(records, policy)

    streak = 0
    day = reference_date
    while day >= window_start and streak < policy.streak_cap_days and day in taken:
        streak += 1
        day -= timedelta(days=1)
    return streak


def calculate_adherence(records, reference_date, window=None, policy=None):
    """
    Summary numbers for the window (default: the reference date's month).

    Returns a dict with adherence_rate, current_streak, missed_doses,
    taken_doses, expected_doses (to date), expected_doses_month,
    active_medications, taken_today and taken_this_week.
    """
    policy = policy or AdherencePolicy()
    records = list(records or [])
    window_start, window_end = window or month_window(reference_date)
    elapsed_end = min(window_end, reference_date)

    active = [r for r in records if is_active(r, reference_date)]
    elapsed_days = (elapsed_end - window_start).days + 1 if elapsed_end >= window_start else 0
    window_days = (window_end - window_start).days + 1

    expected = len(active) * elapsed_days
    taken = 0
    for record in active:
        taken += sum(1 for d in taken_days(record, policy) if window_start <= d <= elapsed_end)

    any_taken = _any_taken(records, policy)
    week_start = reference_date - timedelta(days=6)

    return {
        "adherence_rate": _percent(taken, expected),
        "current_streak": current_streak(records, reference_date, window_start, policy),
        "missed_doses": max(0, expected - taken),
        "taken_doses": taken,
        "expected_doses": expected,
        "expected_doses_month": len(active) * window_days,
        "active_medications": len(active),
        "taken_today": reference_date in any_taken,
        "taken_this_week": sum(1 for d in any_taken if week_start <= d <= reference_date),
    }


def calendar_days(records, reference_date, month=None, policy=None):
    """One entry per day of ``month`` (a date inside it; default the reference month)."""
    policy = policy or AdherencePolicy()
    records = list(records or [])
    first, last = month_window(month or reference_date)
    taken = _any_taken(records, policy)

    days = []
    day = first
    while day <= last:
        active = any(is_active(r, day) for r in records)
        if day in taken:
            status = "taken"
        elif active and day < reference_date:
            status = "missed"
        elif active:
            status = "active"
        else:
            status = "none"
        days.append({"date": day.isoformat(), "status": status, "is_today": day == reference_date})
        day += timedelta(days=1)
    return days


def recent_activity(records, limit=RECENT_ACTIVITY_LIMIT):
    """Medications with at least one taken-date, most recently taken first."""
    entries = []
    for record in records or []:
        days = [d for d in (parse_day(v) for v in record.get("taken_date") or []) if d]
        if not days:
            continue
        entries.append({
            "medication_id": record.get("id"),
            "medication_name": record.get("medication_name"),
            "dosage": record.get("dosage"),
            "last_taken": max(days).isoformat(),
            "has_photo": bool(record.get("image_url")),
            "image_url": record.get("image_url"),
        })
    entries.sort(key=lambda e: e["last_taken"], reverse=True)
    return entries[:limit]
