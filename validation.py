#!/usr/bin/env python3

"""
Goal rules: direction of travel, weight bounds and goal-form validation.
"""

import math
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import NamedTuple, Optional

from weight_tracker import UserGoals

# 0.5-1% of body weight per week is the usual safe range; 0.75% is the midpoint
SUGGESTED_WEEKLY_RATE = 0.0075


class GoalDirection(str, Enum):
    LOSS = "loss"
    GAIN = "gain"


class WeightBounds(NamedTuple):
    min: float
    max: float


class GoalValidationError(ValueError):
    pass


@dataclass(frozen=True)
class SuggestedDate:
    date: date
    weeks: int
    rate_kg: float


def goal_direction(start_weight: float, target_weight: float) -> GoalDirection:
    return GoalDirection.LOSS if target_weight < start_weight else GoalDirection.GAIN


def weight_bounds(start_weight: float, target_weight: float) -> WeightBounds:
    return WeightBounds(min(start_weight, target_weight), max(start_weight, target_weight))


def is_weight_in_range(weight: float, start_weight: float, target_weight: float) -> bool:
    bounds = weight_bounds(start_weight, target_weight)
    return bounds.min <= weight <= bounds.max


def is_favorable_change(change: float, direction: GoalDirection) -> Optional[bool]:
    """True if the change moves toward the goal, False if away, None if flat."""
    if change == 0:
        return None
    if direction is GoalDirection.LOSS:
        return change < 0
    return change > 0


def validate_goals(goals: UserGoals) -> None:
    """Raise GoalValidationError with a user-facing message if goals are invalid."""
    if goals.start_weight <= 0 or goals.target_weight <= 0:
        raise GoalValidationError("Los pesos deben ser mayores a cero")
    if goals.target_weight == goals.start_weight:
        raise GoalValidationError("El peso meta debe ser diferente al peso inicial")
    if goals.target_date <= goals.start_date:
        raise GoalValidationError("La fecha meta debe ser posterior a la fecha de inicio")


def suggest_target_date(start_weight: float, target_weight: float,
                        start_date: Optional[date]) -> Optional[SuggestedDate]:
    if not start_date or start_weight <= 0 or target_weight <= 0 or start_weight == target_weight:
        return None
    weekly_rate = start_weight * SUGGESTED_WEEKLY_RATE
    weeks_needed = math.ceil(abs(start_weight - target_weight) / weekly_rate)
    return SuggestedDate(
        date=start_date + timedelta(weeks=weeks_needed),
        weeks=weeks_needed,
        rate_kg=round(weekly_rate, 2),
    )
