# backend/modules/forecasting/services/external_factors.py

"""
External factor lookups used by aggregation and forecasting.

Weather and holiday information is injected so a real weather or calendar
service can replace the synthetic defaults without touching the
aggregation or forecasting logic.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Dict, Any, Iterable, Optional, Tuple

from ..constants import WEATHER_CONDITIONS


@dataclass(frozen=True)
class WeatherSnapshot:
    temperature: int
    condition: str
    humidity: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class WeatherProvider(ABC):
    """Source of weather conditions for a given local moment"""

    @abstractmethod
    def get_weather(self, moment: datetime) -> WeatherSnapshot:
        ...


class MockWeatherProvider(WeatherProvider):
    """
    Synthetic weather generator.

    Values are random but seeded by (date, hour), so asking twice about the
    same hour returns the same snapshot. Re-running aggregation therefore
    reproduces identical buckets.
    """

    def __init__(self, seed: int = 0):
        self.seed = seed

    def get_weather(self, moment: datetime) -> WeatherSnapshot:
        rng = random.Random(self.seed * 1_000_003 + moment.date().toordinal() * 24 + moment.hour)
        return WeatherSnapshot(
            temperature=rng.randint(15, 44),
            condition=rng.choice(WEATHER_CONDITIONS),
            humidity=rng.randint(40, 79),
        )


class FixedWeatherProvider(WeatherProvider):
    """Always reports the same conditions (useful for demos and tests)"""

    def __init__(self, condition: str = "cloudy", temperature: int = 25, humidity: int = 50):
        self.snapshot = WeatherSnapshot(
            temperature=temperature, condition=condition, humidity=humidity
        )

    def get_weather(self, moment: datetime) -> WeatherSnapshot:
        return self.snapshot


class HolidayCalendar(ABC):
    """Holiday and special event lookup keyed by calendar day"""

    @abstractmethod
    def is_holiday(self, day: date) -> bool:
        ...

    def special_event(self, day: date) -> Optional[str]:
        return None


class StaticHolidayCalendar(HolidayCalendar):
    """Fixed-date holidays that recur every year, plus optional dated events"""

    DEFAULT_HOLIDAYS: Tuple[Tuple[int, int], ...] = (
        (1, 1),    # New Year's Day
        (1, 26),   # Republic Day
        (8, 15),   # Independence Day
        (10, 2),   # Gandhi Jayanti
        (12, 25),  # Christmas
    )

    def __init__(
        self,
        holidays: Optional[Iterable[Tuple[int, int]]] = None,
        events: Optional[Dict[date, str]] = None
    ):
        self.holidays = set(holidays if holidays is not None else self.DEFAULT_HOLIDAYS)
        self.events = dict(events or {})

    def is_holiday(self, day: date) -> bool:
        return (day.month, day.day) in self.holidays

    def special_event(self, day: date) -> Optional[str]:
        return self.events.get(day)
