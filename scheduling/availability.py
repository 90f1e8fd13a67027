"""Open-slot computation from calendar busy periods.

Everything here works on naive *local* datetimes: the date range is a pair of
calendar dates, each business day is walked on a fixed grid, and the slots
come back without an offset so the caller decides which timezone they are
shown in. Busy periods carrying an offset are converted to local time first.
"""
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from dateutil import parser as date_parser

from schemas.availability import AvailableSlot

DEFAULT_BUSINESS_HOUR_START = 9
DEFAULT_BUSINESS_HOUR_END = 18
DEFAULT_STEP_MINUTES = 30
DEFAULT_MAX_RESULTS = 100

_DAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
_SLOT_FORMAT = "%Y-%m-%dT%H:%M"


def compute_available_slots(
    busy_periods: Iterable[Any],
    *,
    start_date: str,
    end_date: str,
    duration_minutes: int,
    business_hour_start: int = DEFAULT_BUSINESS_HOUR_START,
    business_hour_end: int = DEFAULT_BUSINESS_HOUR_END,
    step_minutes: int = DEFAULT_STEP_MINUTES,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> List[AvailableSlot]:
    """Return weekday slots of ``duration_minutes`` that overlap no busy period.

    Args:
        busy_periods: items with ``start``/``end`` ISO-8601 strings (mappings
            or objects). Entries that fail to parse are ignored.
        start_date: first day, ``YYYY-MM-DD`` (inclusive).
        end_date: last day, ``YYYY-MM-DD`` (inclusive).
        duration_minutes: meeting length.
        business_hour_start: first hour of the day window.
        business_hour_end: hour the day window closes; slots must end by it.
        step_minutes: grid spacing, independent of the duration.
        max_results: cap across the whole range, not per day.

    Returns:
        Slots in chronological order; an empty list for invalid input.
    """
    if duration_minutes <= 0 or step_minutes <= 0 or max_results <= 0:
        return []
    if business_hour_start >= business_hour_end:
        return []
    if business_hour_start < 0 or business_hour_end > 24:
        return []

    start = _parse_local_date(start_date)
    end = _parse_local_date(end_date)
    if start is None or end is None or start > end:
        return []

    busy = sorted(filter(None, (_busy_bounds(p) for p in busy_periods)))
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)

    results: List[AvailableSlot] = []
    current = start
    while current <= end and len(results) < max_results:
        if current.isoweekday() <= 5:  # Mon–Fri
            midnight = datetime.combine(current, time())
            day_start = midnight + timedelta(hours=business_hour_start)
            day_end = midnight + timedelta(hours=business_hour_end)
            day_busy = [(s, e) for s, e in busy if s < day_end and e > day_start]
            date_key = current.isoformat()
            day_of_week = current.isoweekday() % 7

            slot_start = day_start
            while slot_start + duration <= day_end and len(results) < max_results:
                slot_end = slot_start + duration
                if not any(s < slot_end and e > slot_start for s, e in day_busy):
                    results.append(
                        AvailableSlot(
                            start_at=slot_start.strftime(_SLOT_FORMAT),
                            end_at=slot_end.strftime(_SLOT_FORMAT),
                            day_of_week=day_of_week,
                            date_key=date_key,
                        )
                    )
                slot_start += step
        current += timedelta(days=1)

    return results


def format_slot_label(start_at: str, end_at: str) -> str:
    """'2024-06-03T09:00', '2024-06-03T10:00' -> '6/3 (Mon) 09:00-10:00'."""
    start = datetime.strptime(start_at, _SLOT_FORMAT)
    end = datetime.strptime(end_at, _SLOT_FORMAT)
    day = _DAY_LABELS[start.isoweekday() % 7]
    return f"{start.month}/{start.day} ({day}) {start:%H:%M}-{end:%H:%M}"


def _parse_local_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def _busy_bounds(period: Any) -> Optional[Tuple[datetime, datetime]]:
    if isinstance(period, Mapping):
        start, end = period.get("start"), period.get("end")
    else:
        start, end = getattr(period, "start", None), getattr(period, "end", None)
    try:
        return _to_local_naive(start), _to_local_naive(end)
    except (TypeError, ValueError, OverflowError):
        return None


def _to_local_naive(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = date_parser.isoparse(value)
    else:
        raise TypeError(f"unsupported busy bound: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed
