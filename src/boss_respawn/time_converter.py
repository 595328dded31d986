"""Convert between the fixed game-zone wall clock and absolute instants."""
import re
from datetime import datetime, timedelta
from typing import Optional, Tuple
import pytz

from .errors import InvalidTimeOfDay
from .logger import get_logger

logger = get_logger(__name__)

# Philippine time, no DST
DEFAULT_UTC_OFFSET_MINUTES = 8 * 60

DISPLAY_FORMAT = "%d/%m/%Y, %H:%M"

TIME_OF_DAY_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(pytz.utc)


def as_utc(instant: Optional[datetime]) -> datetime:
    """
    Normalize an instant to aware UTC.

    None means "now". Naive datetimes are taken to already be UTC.
    """
    if instant is None:
        return utc_now()
    if instant.tzinfo is None:
        return pytz.utc.localize(instant)
    return instant.astimezone(pytz.utc)


class TimeConverter:
    """Wall-clock arithmetic for a single fixed-offset zone."""

    def __init__(self, utc_offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES):
        """
        Initialize the converter.

        Args:
            utc_offset_minutes: Constant offset of the zone from UTC (default UTC+8).
                                The offset is applied arithmetically, host timezone
                                and locale tables are never consulted.
        """
        self.utc_offset_minutes = utc_offset_minutes
        self.zone = pytz.FixedOffset(utc_offset_minutes)

    def now_in_zone(self, now: Optional[datetime] = None) -> Tuple[int, int, int, int, int]:
        """
        Current wall clock in the zone.

        Returns:
            (year, month, day, hour, minute)
        """
        local = as_utc(now).astimezone(self.zone)
        return (local.year, local.month, local.day, local.hour, local.minute)

    def to_instant(self, year: int, month: int, day: int, hour: int, minute: int) -> datetime:
        """
        Convert a zone wall-clock reading to an aware UTC instant.

        Raises:
            InvalidTimeOfDay: hour not in 0..23 or minute not in 0..59
        """
        if not 0 <= hour <= 23 or not 0 <= minute <= 59:
            raise InvalidTimeOfDay(f"Invalid time of day {hour:02d}:{minute:02d}")
        local = self.zone.localize(datetime(year, month, day, hour, minute))
        return local.astimezone(pytz.utc)

    def format(self, instant: datetime) -> str:
        """Render an instant as zone wall clock, e.g. ``05/03/2026, 14:30``."""
        return as_utc(instant).astimezone(self.zone).strftime(DISPLAY_FORMAT)

    def parse(self, text: str) -> datetime:
        """
        Inverse of format().

        Raises:
            ValueError: text is not in the display format
        """
        naive = datetime.strptime(text.strip(), DISPLAY_FORMAT)
        return self.zone.localize(naive).astimezone(pytz.utc)

    @staticmethod
    def parse_time_of_day(text: str) -> Tuple[int, int]:
        """
        Split ``HH:MM`` into (hour, minute) and range-check it.

        Raises:
            InvalidTimeOfDay: malformed text or out-of-range values
        """
        match = TIME_OF_DAY_PATTERN.match(text or "")
        if not match:
            raise InvalidTimeOfDay(f"Invalid time of day '{text}' (expected HH:MM)")
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise InvalidTimeOfDay(f"Invalid time of day '{text}' (expected 00:00-23:59)")
        return hour, minute

    def resolve_death_instant(self, hour: int, minute: int, now: Optional[datetime] = None) -> datetime:
        """
        Pick the calendar day for a bare HH:MM death time.

        A time of day later than the current zone HH:MM cannot have happened
        today yet, so it is taken as yesterday's.
        """
        year, month, day, now_hour, now_minute = self.now_in_zone(now)
        death_day = datetime(year, month, day)
        if (hour, minute) > (now_hour, now_minute):
            death_day -= timedelta(days=1)
            logger.debug(f"Death time {hour:02d}:{minute:02d} is after {now_hour:02d}:{now_minute:02d}, using previous day")
        return self.to_instant(death_day.year, death_day.month, death_day.day, hour, minute)
