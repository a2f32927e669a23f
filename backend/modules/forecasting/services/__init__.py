# backend/modules/forecasting/services/__init__.py

from .aggregation_service import HistoricalAggregationService
from .forecasting_service import DemandForecastingService
from .accuracy_service import AccuracyTrackingService
from .prediction_service import PredictionService
from .external_factors import (
    WeatherProvider,
    HolidayCalendar,
    MockWeatherProvider,
    FixedWeatherProvider,
    StaticHolidayCalendar,
)

__all__ = [
    "HistoricalAggregationService",
    "DemandForecastingService",
    "AccuracyTrackingService",
    "PredictionService",
    "WeatherProvider",
    "HolidayCalendar",
    "MockWeatherProvider",
    "FixedWeatherProvider",
    "StaticHolidayCalendar",
]
