#!/usr/bin/env python3

"""
Core data structures for the Weight Goal Tracker.

A user owns a list of dated weight entries (one per calendar day) and a single
current goal. Both are plain frozen dataclasses: a snapshot handed to the UI is
never mutated, only replaced.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional, Union


# ---------------------------
# Data structures
# ---------------------------

@dataclass(frozen=True)
class WeightEntry:
    date: date
    weight: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "weight": float(self.weight)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeightEntry":
        return cls(parse_date(data["date"]), float(data["weight"]))


@dataclass(frozen=True)
class UserGoals:
    start_weight: float
    target_weight: float
    start_date: date
    target_date: date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startWeight": float(self.start_weight),
            "targetWeight": float(self.target_weight),
            "startDate": self.start_date.isoformat(),
            "targetDate": self.target_date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserGoals":
        return cls(
            start_weight=float(data["startWeight"]),
            target_weight=float(data["targetWeight"]),
            start_date=parse_date(data["startDate"]),
            target_date=parse_date(data["targetDate"]),
        )


# ---------------------------
# Utilities
# ---------------------------

DATE_FORMATS = [
    "%Y-%m-%d",              # 2025-08-19
    "%Y-%m-%d %H:%M:%S",     # 2025-08-19 14:30:00
    "%Y-%m-%d %H:%M",        # 2025-08-19 14:30
    "%Y/%m/%d",              # 2025/08/19
    "%m/%d/%Y",              # 08/19/2025
    "%m/%d/%Y %H:%M:%S",     # 08/19/2025 14:30:00
    "%m/%d/%Y %H:%M",        # 08/19/2025 14:30
    "%m/%d/%y",              # 8/19/25
    "%d-%b-%Y",              # 19-Aug-2025
]


def parse_date(value: Union[str, date, datetime]) -> date:
    """Parse a calendar date; datetimes are truncated to their day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    v = str(value).strip()
    last_err: Optional[Exception] = None
    try:
        return datetime.fromisoformat(v).date()
    except ValueError as e:
        last_err = e

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt).date()
        except ValueError as e:
            last_err = e
            continue

    raise ValueError(f"Could not parse date: '{value}'. Use YYYY-MM-DD.") from last_err
