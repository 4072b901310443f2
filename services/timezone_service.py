"""
Timezone helpers for run scheduling and expiry dates.

Runs are scheduled at local midnight of the company's timezone, and expiry
dates are calendar dates in that timezone. All instants handled here are
timezone-aware UTC datetimes; naive datetimes are read as UTC.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import NamedTuple, Optional, Union

import pytz

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'UTC'

DateLike = Union[datetime, date]


class TimezoneDayRange(NamedTuple):
    """A local calendar day as a half-open UTC interval."""
    start: datetime
    end: datetime
    label: str
    time_zone: str


def is_valid_timezone(value) -> bool:
    """Check whether value names a known IANA timezone."""
    if not value or not isinstance(value, str):
        return False
    try:
        pytz.timezone(value)
        return True
    except pytz.UnknownTimeZoneError:
        return False


def resolve_timezone(value: Optional[str], default: str = DEFAULT_TIMEZONE) -> str:
    """Return value when it is a valid timezone, else the default."""
    if is_valid_timezone(value):
        return value
    if value:
        logger.warning(f"Unknown timezone '{value}', falling back to {default}")
    return default


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are read as UTC."""
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def is_date_only(value: DateLike) -> bool:
    """
    True for values that carry a calendar date but no meaningful time.

    Plain dates, and instants at exactly 00:00:00 UTC, which is how parsed
    run dates and date-only spreadsheet cells materialize.

    An aware instant that genuinely means 00:00:00 UTC is indistinguishable
    from such a date and keeps its UTC calendar date instead of being
    converted; one second later it is converted as usual. Runs scheduled at
    local midnight outside UTC are never affected.
    """
    if not isinstance(value, datetime):
        return True
    return to_utc(value).time() == time(0, 0)


def convert_date_to_timezone_midnight(value: DateLike, time_zone: str) -> datetime:
    """
    Return the UTC instant of local midnight on value's calendar date.

    For datetimes the calendar date is taken in UTC.
    """
    calendar_date = to_utc(value).date() if isinstance(value, datetime) else value
    tz = pytz.timezone(resolve_timezone(time_zone))
    local_midnight = tz.localize(datetime.combine(calendar_date, time(0, 0)))
    return local_midnight.astimezone(pytz.UTC)


def determine_scheduled_for(
    run_date: Optional[DateLike],
    time_zone: Optional[str] = None,
    now: Optional[datetime] = None
) -> datetime:
    """
    Turn a parsed run date into the run's scheduled instant.

    Without a run date the run is scheduled now; without a timezone the
    run date is kept as UTC midnight.
    """
    if run_date is None:
        return to_utc(now) if now else datetime.now(pytz.UTC)
    if not time_zone:
        if isinstance(run_date, datetime):
            return to_utc(run_date)
        return pytz.UTC.localize(datetime.combine(run_date, time(0, 0)))
    return convert_date_to_timezone_midnight(run_date, time_zone)


def local_calendar_date(value: DateLike, time_zone: Optional[str]) -> date:
    """
    Calendar date of value in the given timezone.

    Date-only values keep their calendar date; other instants are converted
    to the timezone before the date is taken.
    """
    if is_date_only(value):
        return to_utc(value).date() if isinstance(value, datetime) else value
    tz = pytz.timezone(resolve_timezone(time_zone))
    return to_utc(value).astimezone(tz).date()


def format_date_in_timezone(value: DateLike, time_zone: Optional[str]) -> str:
    """Format value as YYYY-MM-DD in the given timezone."""
    return local_calendar_date(value, time_zone).isoformat()


def get_timezone_day_range(
    time_zone: str,
    day_offset: int = 0,
    reference: Optional[DateLike] = None
) -> TimezoneDayRange:
    """
    Return the local day `day_offset` days from reference's local date.

    Args:
        time_zone: IANA timezone name
        day_offset: Days relative to the reference day
        reference: Instant or date; defaults to now

    Returns:
        TimezoneDayRange with UTC start (inclusive), end (exclusive) and label
    """
    time_zone = resolve_timezone(time_zone)
    reference = reference if reference is not None else datetime.now(pytz.UTC)
    day = local_calendar_date(reference, time_zone) + timedelta(days=day_offset)
    start = convert_date_to_timezone_midnight(day, time_zone)
    end = convert_date_to_timezone_midnight(day + timedelta(days=1), time_zone)
    return TimezoneDayRange(start=start, end=end, label=day.isoformat(), time_zone=time_zone)
