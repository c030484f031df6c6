"""Availability slot generation.

A coach opens a window on a given day (e.g. 09:00-18:00) and picks a lesson
length; the window is cut into back-to-back slots of that length. A trailing
remainder shorter than one lesson is dropped.
"""
from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, time, timedelta

DEFAULT_START_TIME = "09:00"
DEFAULT_END_TIME = "18:00"
DEFAULT_DURATION_MINUTES = 60


def parse_hhmm(value: str) -> time:
    """Parse ``"HH:MM"`` into a :class:`~datetime.time`."""
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"time must be in HH:MM format, got {value!r}") from exc


def iter_slots(
    day: date,
    start_time: time,
    end_time: time,
    duration: timedelta,
) -> Iterator[tuple[datetime, datetime]]:
    """Yield ``(starts_at, ends_at)`` pairs covering ``[start_time, end_time)``."""
    if duration <= timedelta(0):
        raise ValueError("duration must be positive")

    current = datetime.combine(day, start_time)
    window_end = datetime.combine(day, end_time)

    while current < window_end:
        slot_end = current + duration
        if slot_end > window_end:
            break
        yield current, slot_end
        current = slot_end


class SlotPlan:
    """The inputs of one generation request; iterating it always starts over."""

    def __init__(self, day: date, start_time: time, end_time: time, duration_minutes: int) -> None:
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be a positive integer")
        self.day = day
        self.start_time = start_time
        self.end_time = end_time
        self.duration = timedelta(minutes=duration_minutes)

    def __iter__(self) -> Iterator[tuple[datetime, datetime]]:
        return iter_slots(self.day, self.start_time, self.end_time, self.duration)

    def to_list(self) -> list[dict[str, str]]:
        return [
            {"starts_at": starts_at.isoformat(), "ends_at": ends_at.isoformat()}
            for starts_at, ends_at in self
        ]

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "SlotPlan":
        """Build a plan from a JSON body, raising ``ValueError`` on bad input."""
        date_str = payload.get("date")
        if not date_str:
            raise ValueError("date (YYYY-MM-DD) is required")
        try:
            day = date.fromisoformat(str(date_str))
        except ValueError as exc:
            raise ValueError("date must be in YYYY-MM-DD format") from exc

        start_time = parse_hhmm(str(payload.get("start_time") or DEFAULT_START_TIME))
        end_time = parse_hhmm(str(payload.get("end_time") or DEFAULT_END_TIME))

        raw_duration = payload.get("duration_minutes", DEFAULT_DURATION_MINUTES)
        if isinstance(raw_duration, bool):
            raise ValueError("duration_minutes must be a positive integer")
        try:
            duration_minutes = int(raw_duration)
        except (TypeError, ValueError) as exc:
            raise ValueError("duration_minutes must be a positive integer") from exc

        return cls(day, start_time, end_time, duration_minutes)
