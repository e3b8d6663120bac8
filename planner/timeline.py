"""Month keys and the month/year column descriptors of a planning period."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Mapping, Optional, TypeVar

MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

# "2026-03", "2026-03-01" and full ISO timestamps ("2026-03-01T00:00:00.000Z").
_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?(?:[T ].*)?$")

V = TypeVar("V")


class MonthKeyError(ValueError):
    """Raised for malformed month keys; these indicate a bug in the caller."""


class PeriodMode(str, Enum):
    DATES = "dates"
    DURATION = "duration"


@dataclass(frozen=True, order=True)
class MonthKey:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise MonthKeyError(f"Month must be within 1..12, got {self.month}")
        if self.year < 0:
            raise MonthKeyError(f"Year must not be negative, got {self.year}")

    @property
    def ordinal(self) -> int:
        return self.year * 12 + (self.month - 1)

    @classmethod
    def from_ordinal(cls, ordinal: int) -> "MonthKey":
        if ordinal < 0:
            raise MonthKeyError(f"Month ordinal must not be negative, got {ordinal}")
        year, month_zero = divmod(ordinal, 12)
        return cls(year, month_zero + 1)

    @classmethod
    def parse(cls, raw: str) -> "MonthKey":
        """
        Parse a "YYYY-MM" key or an ISO-8601 date/datetime string.

        Timestamps are read as written: the time and UTC offset are ignored, so
        "2025-12-31T23:00:00.000Z" is December 2025 whatever its local date was.
        """
        if not isinstance(raw, str):
            raise MonthKeyError(f"Month key must be a string, got {type(raw).__name__}")
        match = _MONTH_KEY_RE.match(raw.strip())
        if not match:
            raise MonthKeyError(f"Malformed month key: {raw!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    def shift(self, months: int) -> "MonthKey":
        return MonthKey.from_ordinal(self.ordinal + months)

    def iso(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-01"

    @property
    def month_abbrev(self) -> str:
        return MONTH_ABBREVIATIONS[self.month - 1]

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def coerce_month(value) -> Optional[MonthKey]:
    """Normalize ``None``, strings, dates and month keys to an optional MonthKey."""
    if value is None or value == "":
        return None
    if isinstance(value, MonthKey):
        return value
    if isinstance(value, (date, datetime)):
        return MonthKey(value.year, value.month)
    return MonthKey.parse(value)


def month_span(start: Optional[MonthKey], end: Optional[MonthKey]) -> int:
    """Inclusive number of months between two keys; 0 when the period is invalid."""
    if start is None or end is None or start > end:
        return 0
    return end.ordinal - start.ordinal + 1


@dataclass(frozen=True)
class MonthColumn:
    key: str
    label: str
    month_index: int
    year_index: int
    month_in_year: int

    def as_descriptor(self) -> Dict[str, str]:
        return {"key": self.key, "label": self.label}


def month_label(month: MonthKey, month_index: int, mode: PeriodMode) -> str:
    year_index = (month_index - 1) // 12 + 1
    month_in_year = (month_index - 1) % 12 + 1
    if PeriodMode(mode) is PeriodMode.DURATION:
        return f"M{month_in_year} Y{year_index}"
    return f"{month.month_abbrev} {month.year}"


def generate(
    start: Optional[MonthKey],
    end: Optional[MonthKey],
    mode: PeriodMode | str = PeriodMode.DATES,
) -> List[MonthColumn]:
    """
    Ordered month columns from ``start`` to ``end`` inclusive.

    An unset boundary or ``start`` after ``end`` yields an empty list.
    """
    count = month_span(start, end)
    columns: List[MonthColumn] = []
    for offset in range(count):
        current = start.shift(offset)
        month_index = offset + 1
        columns.append(
            MonthColumn(
                key=str(current),
                label=month_label(current, month_index, mode),
                month_index=month_index,
                year_index=(month_index - 1) // 12 + 1,
                month_in_year=(month_index - 1) % 12 + 1,
            )
        )
    return columns


@dataclass(frozen=True)
class YearColumn:
    key: str
    label: str
    year_index: int

    def as_descriptor(self) -> Dict[str, str]:
        return {"key": self.key, "label": self.label}


def year_key_to_label(key: str, mode: PeriodMode | str, start: Optional[MonthKey]) -> str:
    if PeriodMode(mode) is PeriodMode.DURATION or start is None:
        return key
    year_index = int(key.lstrip("Y"))
    return str(start.shift((year_index - 1) * 12).year)


def generate_year_columns(
    start: Optional[MonthKey],
    end: Optional[MonthKey],
    mode: PeriodMode | str = PeriodMode.DATES,
) -> List[YearColumn]:
    """One column per 12-month block of the period, keyed "Y1", "Y2", ..."""
    count = month_span(start, end)
    years = (count + 11) // 12
    return [
        YearColumn(key=f"Y{idx}", label=year_key_to_label(f"Y{idx}", mode, start), year_index=idx)
        for idx in range(1, years + 1)
    ]


@dataclass(frozen=True)
class Timeline:
    """The active planning timeline; month positions are 1-based."""

    start: Optional[MonthKey]
    end: Optional[MonthKey]
    mode: PeriodMode = PeriodMode.DATES

    def __len__(self) -> int:
        return month_span(self.start, self.end)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def columns(self) -> List[MonthColumn]:
        return generate(self.start, self.end, self.mode)

    def month_keys(self) -> List[str]:
        return [column.key for column in self.columns()]

    def year_columns(self) -> List[YearColumn]:
        return generate_year_columns(self.start, self.end, self.mode)

    def ramp_up_columns(self) -> List[MonthColumn]:
        return self.columns()[:12]

    def targeted_year_columns(self) -> List[YearColumn]:
        return [column for column in self.year_columns() if column.key != "Y1"]

    def month_index(self, month: MonthKey | str) -> Optional[int]:
        """1-based position of ``month`` or ``None`` when it lies outside the timeline."""
        if self.is_empty:
            return None
        key = coerce_month(month)
        position = key.ordinal - self.start.ordinal + 1
        if position < 1 or position > len(self):
            return None
        return position

    def contains(self, month: MonthKey | str) -> bool:
        return self.month_index(month) is not None


def shift_month_keys(
    values: Mapping[str, V],
    offset: int,
    within: Optional[Timeline] = None,
) -> Dict[str, V]:
    """
    Re-key a month-keyed mapping by ``offset`` months.

    Keys that would land before the epoch or outside ``within`` are dropped.
    """
    shifted: Dict[str, V] = {}
    for raw_key, value in values.items():
        ordinal = MonthKey.parse(raw_key).ordinal + offset
        if ordinal < 0:
            continue
        target = MonthKey.from_ordinal(ordinal)
        if within is not None and not within.contains(target):
            continue
        shifted[str(target)] = value
    return shifted
