from __future__ import annotations

from dataclasses import dataclass
from datetime import MAXYEAR, MINYEAR, date, datetime, time
from typing import Optional, Union
from zoneinfo import ZoneInfo


@dataclass(frozen=True, order=True)
class Month:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be in 1..12, got {self.month}")
        if not MINYEAR <= self.year <= MAXYEAR:
            raise ValueError(f"Year {self.year} is out of range")

    @classmethod
    def of(cls, value: date) -> "Month":
        return cls(value.year, value.month)

    @classmethod
    def parse(cls, value: str) -> "Month":
        """Parse ``YYYY-MM`` (a full ISO date is accepted and truncated)."""
        text = value.strip()
        try:
            if len(text) > 7:
                return cls.of(date.fromisoformat(text))
            year_part, month_part = text.split("-")
            return cls(int(year_part), int(month_part))
        except ValueError as exc:
            raise ValueError(f"Invalid month: {value!r}") from exc

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def shift(self, count: int) -> "Month":
        month_index = (self.year * 12) + (self.month - 1) + count
        return Month(month_index // 12, (month_index % 12) + 1)

    def __str__(self) -> str:
        return self.label


class LocalCalendar:
    """Maps calendar days to storage instants in one time zone.

    A stored instant is the Unix timestamp of local midnight. ``tz=None``
    uses the process's system local time zone.
    """

    def __init__(self, tz: Optional[ZoneInfo] = None) -> None:
        self.tz = tz

    def truncate(self, value: Union[date, datetime]) -> date:
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                return value.astimezone(self.tz).date()
            return value.date()
        return value

    def to_storage_instant(self, day: Union[date, datetime]) -> int:
        local_midnight = datetime.combine(self.truncate(day), time(), tzinfo=self.tz)
        return int(local_midnight.timestamp())

    def from_storage_instant(self, instant: int) -> date:
        return datetime.fromtimestamp(instant, self.tz).date()

    def month_start(self, year: int, month: int) -> date:
        return Month(year, month).first_day

    def month_range(self, month: Month) -> tuple[int, int]:
        start = self.to_storage_instant(month.first_day)
        end = self.to_storage_instant(month.shift(1).first_day)
        return start, end

    def month_of_instant(self, instant: int) -> Month:
        return Month.of(self.from_storage_instant(instant))


def month_sequence(end_inclusive: Month, count: int) -> list[Month]:
    if count < 1:
        raise ValueError("Month count must be at least 1")
    return [end_inclusive.shift(offset) for offset in range(-(count - 1), 1)]


_system_calendar = LocalCalendar()


def truncate_to_local_midnight(value: Union[date, datetime]) -> date:
    return _system_calendar.truncate(value)


def to_storage_instant(day: Union[date, datetime]) -> int:
    return _system_calendar.to_storage_instant(day)


def from_storage_instant(instant: int) -> date:
    return _system_calendar.from_storage_instant(instant)


def month_start(year: int, month: int) -> date:
    return _system_calendar.month_start(year, month)


def month_range(month: Month) -> tuple[int, int]:
    return _system_calendar.month_range(month)
