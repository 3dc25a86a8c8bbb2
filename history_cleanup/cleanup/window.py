"""
Batch window arithmetic for history cleanup.

A batch window is a daily time-of-day interval in which the cleanup job is
allowed to run. Windows whose end does not come after their start wrap past
midnight (e.g. 22:00-06:00).

Usage:
    from history_cleanup.cleanup.window import BatchWindow

    window = BatchWindow.from_config("22:00", "06:00")
    if window.is_within(now):
        ...
    next_run = window.next_run_at_or_after(now)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from loguru import logger

from history_cleanup.exceptions import ConfigurationError, ParseError
from history_cleanup.utils.clock import Clock, system_clock

# HH:mm followed by an RFC 822 offset, e.g. "22:00+0100"
_TIME_WITH_TIMEZONE = re.compile(r"^(\d{2}):(\d{2})([+-])(\d{2})(\d{2})$")
# HH:mm, interpreted in local time
_TIME_WITHOUT_TIMEZONE = re.compile(r"^(\d{2}):(\d{2})$")


@dataclass(frozen=True)
class TimeOfDay:
    """
    Wall-clock time-of-day with an optional UTC offset.

    Attributes:
        hour: Hour (0-23)
        minute: Minute (0-59)
        second: Second (0-59)
        millisecond: Millisecond (0-999)
        utc_offset: Offset the time was written in, None for local time
    """

    hour: int
    minute: int
    second: int = 0
    millisecond: int = 0
    utc_offset: timedelta | None = None

    def __post_init__(self) -> None:
        """Validate field ranges."""
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour must be between 0 and 23, got {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"minute must be between 0 and 59, got {self.minute}")
        if not 0 <= self.second <= 59:
            raise ValueError(f"second must be between 0 and 59, got {self.second}")
        if not 0 <= self.millisecond <= 999:
            raise ValueError(f"millisecond must be between 0 and 999, got {self.millisecond}")
        if self.utc_offset is not None and abs(self.utc_offset) >= timedelta(hours=24):
            raise ValueError(f"utc_offset must be less than 24 hours, got {self.utc_offset}")

    def as_time(self) -> time:
        """Time-of-day fields as a naive ``datetime.time``."""
        return time(self.hour, self.minute, self.second, self.millisecond * 1000)

    def local_time(self, now: datetime) -> time:
        """
        Express this time-of-day in the frame of ``now``.

        Offset-less values are already local. Values with an offset are
        converted into ``now``'s timezone, or into the host's local timezone
        when ``now`` is naive. The conversion is anchored on ``now``'s date so
        daylight-saving rules of that day apply.

        Args:
            now: Reference timestamp

        Returns:
            Naive time-of-day comparable with ``now.time()``
        """
        if self.utc_offset is None:
            return self.as_time()

        anchored = datetime.combine(now.date(), self.as_time(), tzinfo=timezone(self.utc_offset))
        if now.tzinfo is not None:
            converted = anchored.astimezone(now.tzinfo)
        else:
            converted = anchored.astimezone()
        return converted.time()

    def __str__(self) -> str:
        text = f"{self.hour:02d}:{self.minute:02d}"
        if self.second or self.millisecond:
            text += f":{self.second:02d}"
        if self.millisecond:
            text += f".{self.millisecond:03d}"
        if self.utc_offset is not None:
            total_minutes = int(self.utc_offset.total_seconds()) // 60
            sign = "+" if total_minutes >= 0 else "-"
            hours, minutes = divmod(abs(total_minutes), 60)
            text += f"{sign}{hours:02d}{minutes:02d}"
        return text


def parse_time_of_day(text: str) -> TimeOfDay:
    """
    Parse a batch window boundary.

    Accepts ``HH:mmZ`` (e.g. ``"22:00+0100"``) and, as a fallback,
    ``HH:mm`` (e.g. ``"22:00"``, local time).

    Args:
        text: Time-of-day text from configuration

    Returns:
        Parsed TimeOfDay

    Raises:
        ParseError: If the text matches neither format
    """
    if not isinstance(text, str):
        raise ParseError(f"Time of day must be a string, got {type(text).__name__}")
    value = text.strip()

    try:
        match = _TIME_WITH_TIMEZONE.match(value)
        if match:
            hour, minute, sign, offset_hours, offset_minutes = match.groups()
            if int(offset_minutes) > 59:
                raise ValueError(f"offset minutes must be between 0 and 59, got {offset_minutes}")
            offset = timedelta(hours=int(offset_hours), minutes=int(offset_minutes))
            return TimeOfDay(
                hour=int(hour),
                minute=int(minute),
                utc_offset=-offset if sign == "-" else offset,
            )

        match = _TIME_WITHOUT_TIMEZONE.match(value)
        if match:
            hour, minute = match.groups()
            return TimeOfDay(hour=int(hour), minute=int(minute))
    except ValueError as e:
        raise ParseError(f"Invalid time of day {text!r}: {e}") from e

    raise ParseError(f"Invalid time of day {text!r}: expected HH:mm or HH:mmZ (e.g. 22:00+0100)")


def _at_time_of_day(now: datetime, time_of_day: time) -> datetime:
    """Replace the time-of-day of ``now``, keeping its date and timezone."""
    return now.replace(
        hour=time_of_day.hour,
        minute=time_of_day.minute,
        second=time_of_day.second,
        microsecond=time_of_day.microsecond,
    )


def is_within_batch_window(
    now: datetime,
    start: TimeOfDay | None,
    end: TimeOfDay | None,
) -> bool:
    """
    Check whether ``now`` falls inside the batch window.

    The start boundary is inclusive, the end boundary exclusive. When the end
    does not come after the start the window wraps past midnight, and
    start == end therefore covers the whole day.

    Args:
        now: Timestamp to classify
        start: Window start
        end: Window end

    Returns:
        True if ``now`` is within the window

    Raises:
        ConfigurationError: If either boundary is missing
    """
    if start is None or end is None:
        raise ConfigurationError("Batch window must be configured")

    start_time = start.local_time(now)
    end_time = end.local_time(now)
    current = now.time()

    if end_time > start_time:
        return start_time <= current < end_time
    return current >= start_time or current < end_time


def next_run_within_batch_window(now: datetime, start: TimeOfDay | None) -> datetime:
    """
    Next timestamp strictly after ``now`` at which the batch window opens.

    Args:
        now: Reference timestamp
        start: Window start

    Returns:
        Today's window start if it is still ahead, otherwise tomorrow's

    Raises:
        ConfigurationError: If no window start is configured
    """
    if start is None:
        raise ConfigurationError("Batch window must be configured")

    todays_run = _at_time_of_day(now, start.local_time(now))
    if todays_run > now:
        return todays_run
    return todays_run + timedelta(days=1)


class BatchWindow:
    """
    Daily batch window built once from configuration.

    Stateless apart from its boundaries and clock; safe to share between
    threads.
    """

    def __init__(
        self,
        start: TimeOfDay | None,
        end: TimeOfDay | None,
        clock: Clock | None = None,
    ):
        """
        Initialize the batch window.

        Args:
            start: Window start, None when cleanup has no window
            end: Window end, None when cleanup has no window
            clock: Time provider used when no explicit ``now`` is given
        """
        self._start = start
        self._end = end
        self._clock = clock or system_clock

    @classmethod
    def from_config(
        cls,
        start_time: str | None,
        end_time: str | None,
        clock: Clock | None = None,
    ) -> "BatchWindow":
        """
        Build a window from configuration strings.

        Raises:
            ParseError: If a boundary cannot be parsed
        """
        start = parse_time_of_day(start_time) if start_time is not None else None
        end = parse_time_of_day(end_time) if end_time is not None else None
        return cls(start, end, clock=clock)

    @property
    def start(self) -> TimeOfDay | None:
        return self._start

    @property
    def end(self) -> TimeOfDay | None:
        return self._end

    def is_configured(self) -> bool:
        """True iff both boundaries are present."""
        return self._start is not None and self._end is not None

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise ConfigurationError("Batch window must be configured")

    def is_within(self, now: datetime | None = None) -> bool:
        """
        Check whether ``now`` (defaults to the clock) lies inside the window.

        Raises:
            ConfigurationError: If the window is not configured
        """
        self._require_configured()
        now = now or self._clock()
        within = is_within_batch_window(now, self._start, self._end)
        logger.debug(f"Batch window {self}: {now.isoformat()} within={within}")
        return within

    def next_run_at_or_after(self, now: datetime | None = None) -> datetime:
        """
        Next window opening strictly after ``now`` (defaults to the clock).

        Raises:
            ConfigurationError: If the window is not configured
        """
        self._require_configured()
        now = now or self._clock()
        return next_run_within_batch_window(now, self._start)

    def __repr__(self) -> str:
        return f"BatchWindow(start={self._start!r}, end={self._end!r})"

    def __str__(self) -> str:
        if not self.is_configured():
            return "<not configured>"
        return f"{self._start}-{self._end}"
