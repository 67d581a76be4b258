"""
Time Range Resolver

Turns an interval token and an IANA timezone into an absolute, half-open
``[start, end)`` range plus the bucket size used for time series.

Bucket boundaries are computed on the local wall clock and then converted to
absolute instants:

- hourly buckets start at the local hour floor of ``start`` and advance by one
  absolute hour, so a repeated or skipped wall-clock hour neither duplicates
  nor drops a bucket
- daily buckets are one per local calendar date, starting at local midnight,
  so a 23h or 25h DST day is still exactly one bucket
"""

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from enum import Enum
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from src.analytics.exceptions import InvalidIntervalError, InvalidTimezoneError

logger = structlog.get_logger(__name__)

DEFAULT_TIMEZONE = "UTC"

# Trailing "now minus N days" intervals. "24h" is the API default and
# behaves exactly like "1d".
TRAILING_INTERVAL_DAYS = {
    "24h": 1,
    "1d": 1,
    "7d": 7,
    "30d": 30,
    "90d": 90,
}

CALENDAR_INTERVALS = ("today", "yesterday")

INTERVALS = CALENDAR_INTERVALS + tuple(TRAILING_INTERVAL_DAYS)

HOURLY_BUCKET_LIMIT = timedelta(hours=48)

# Explicit inclusive local date range, e.g. "2024-03-01..2024-03-31"
EXPLICIT_RANGE_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})\.\.(\d{4}-\d{2}-\d{2})$")


class Bucket(str, Enum):
    """Time series bucket size"""
    HOUR = "hour"
    DAY = "day"


def load_timezone(name: Optional[str]) -> ZoneInfo:
    """
    Load an IANA timezone.
    
    Raises:
        InvalidTimezoneError: If the zone id is empty or unknown
    """
    if not name:
        raise InvalidTimezoneError(name or "")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise InvalidTimezoneError(name) from e


def local_midnight(day: date, zone: ZoneInfo) -> datetime:
    """First instant of ``day`` on the wall clock of ``zone``, as UTC."""
    return datetime.combine(day, time.min, tzinfo=zone).astimezone(UTC)


@dataclass(frozen=True)
class TimeRange:
    """
    Absolute query range.
    
    ``start`` and ``end`` are timezone-aware UTC instants; ``end`` is exclusive.
    ``timezone`` is the zone the buckets are laid out in.
    """
    
    start: datetime
    end: datetime
    bucket: Bucket
    timezone: str = DEFAULT_TIMEZONE
    
    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("TimeRange bounds must be timezone-aware")
        if not self.start < self.end:
            raise ValueError(f"TimeRange start {self.start} must precede end {self.end}")
    
    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
    
    @property
    def duration(self) -> timedelta:
        return self.end - self.start
    
    def bucket_starts(self) -> List[datetime]:
        """
        Start instants of every bucket overlapping the range, in order.
        
        The first bucket may begin before ``start`` (it is aligned to the
        local hour or day); values are expressed in the range's zone.
        """
        zone = self.zone
        local_start = self.start.astimezone(zone)
        starts: List[datetime] = []
        
        if self.bucket is Bucket.HOUR:
            current = local_start.replace(minute=0, second=0, microsecond=0).astimezone(UTC)
            while current < self.end:
                starts.append(current.astimezone(zone))
                current += timedelta(hours=1)
            return starts
        
        day = local_start.date()
        last_day = (self.end - timedelta(microseconds=1)).astimezone(zone).date()
        while day <= last_day:
            starts.append(local_midnight(day, zone).astimezone(zone))
            day += timedelta(days=1)
        return starts
    
    def bucket_label(self, bucket_start: datetime) -> str:
        """ISO label for a bucket: a local date for daily buckets, a local datetime for hourly."""
        local = bucket_start.astimezone(self.zone)
        if self.bucket is Bucket.DAY:
            return local.date().isoformat()
        return local.isoformat()


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def _bucket_for(start: datetime, end: datetime) -> Bucket:
    return Bucket.HOUR if end - start <= HOURLY_BUCKET_LIMIT else Bucket.DAY


def _parse_explicit_range(interval: str, zone: ZoneInfo):
    match = EXPLICIT_RANGE_PATTERN.match(interval)
    if match is None:
        raise InvalidIntervalError(interval)
    try:
        first = date.fromisoformat(match.group(1))
        last = date.fromisoformat(match.group(2))
    except ValueError as e:
        raise InvalidIntervalError(interval, str(e)) from e
    if last < first:
        raise InvalidIntervalError(interval, "end date precedes start date")
    return local_midnight(first, zone), local_midnight(last + timedelta(days=1), zone)


def resolve_time_range(
    interval: str,
    tz: Optional[str] = DEFAULT_TIMEZONE,
    now: Optional[datetime] = None,
) -> TimeRange:
    """
    Resolve an interval token in a timezone to an absolute TimeRange.
    
    Args:
        interval: One of ``today``, ``yesterday``, ``24h``, ``1d``, ``7d``,
            ``30d``, ``90d`` or an explicit ``YYYY-MM-DD..YYYY-MM-DD`` range
        tz: IANA zone id; unknown zones fall back to UTC with a warning
        now: Evaluation instant (defaults to the current time)
        
    Returns:
        TimeRange: Resolved range and bucket size
        
    Raises:
        InvalidIntervalError: If the interval token is not recognized
    """
    tz_name = tz or DEFAULT_TIMEZONE
    try:
        zone = load_timezone(tz_name)
    except InvalidTimezoneError:
        logger.warning("Unknown timezone, falling back to UTC", timezone=tz_name)
        tz_name = DEFAULT_TIMEZONE
        zone = ZoneInfo(DEFAULT_TIMEZONE)
    
    now = _as_utc(now) if now is not None else datetime.now(UTC)
    today = now.astimezone(zone).date()
    
    if interval == "today":
        start = local_midnight(today, zone)
        # Evaluated exactly at midnight the range still covers the current second
        end = max(now, start + timedelta(seconds=1))
    elif interval == "yesterday":
        start = local_midnight(today - timedelta(days=1), zone)
        end = local_midnight(today, zone)
    elif interval in TRAILING_INTERVAL_DAYS:
        start = now - timedelta(days=TRAILING_INTERVAL_DAYS[interval])
        end = now
    elif interval and EXPLICIT_RANGE_PATTERN.match(interval):
        start, end = _parse_explicit_range(interval, zone)
    else:
        raise InvalidIntervalError(interval or "")
    
    time_range = TimeRange(
        start=start,
        end=end,
        bucket=_bucket_for(start, end),
        timezone=tz_name,
    )
    logger.debug(
        "Resolved time range",
        interval=interval,
        timezone=tz_name,
        start=time_range.start.isoformat(),
        end=time_range.end.isoformat(),
        bucket=time_range.bucket.value,
    )
    return time_range

