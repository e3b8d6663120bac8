"""Environment driven planner configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_EPOCH_YEAR = 2000
DEFAULT_SIMULATION_YEARS = 4


def _positive_int_from_env(name: str, default: int) -> int:
    raw_value = os.environ.get(name)
    try:
        value = int(raw_value) if raw_value else default
        if value <= 0:
            raise ValueError
    except ValueError:
        value = default
    return value


@dataclass(frozen=True)
class PlannerSettings:
    epoch_year: int = DEFAULT_EPOCH_YEAR
    default_simulation_years: int = DEFAULT_SIMULATION_YEARS

    @classmethod
    def from_env(cls) -> "PlannerSettings":
        """
        Build settings from the environment. Blank, non-numeric or non-positive
        values fall back to the defaults:

        * PLANNER_EPOCH_YEAR sets the first year of the Duration mode timeline.
        * PLANNER_DEFAULT_SIMULATION_YEARS sets the year count used when no
          explicit count is requested.
        """
        return cls(
            epoch_year=_positive_int_from_env("PLANNER_EPOCH_YEAR", DEFAULT_EPOCH_YEAR),
            default_simulation_years=_positive_int_from_env(
                "PLANNER_DEFAULT_SIMULATION_YEARS", DEFAULT_SIMULATION_YEARS
            ),
        )
