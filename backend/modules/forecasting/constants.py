# backend/modules/forecasting/constants.py

"""
Constants for the forecasting module.

Centralizes the multiplier tables and scoring bounds used by the
forecaster and the accuracy tracker.
"""

# Confidence bounds for the variance-based stability score
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95

# Trend adjustments
WEEKEND_DAYS = (5, 6)  # Saturday, Sunday (Monday=0)
WEEKEND_MULTIPLIER = 1.2
MEAL_PEAK_HOURS = (range(12, 15), range(19, 22))  # 12-14 and 19-21 inclusive
MEAL_PEAK_MULTIPLIER = 1.3

# Seasonal adjustment indexed by month - 1 (January first)
SEASONAL_FACTORS = (
    0.90, 0.95, 1.00, 1.10, 1.20, 1.30,
    1.25, 1.20, 1.10, 1.05, 1.15, 1.30,
)

# Weather condition impact; unknown conditions default to neutral
WEATHER_MULTIPLIERS = {
    "sunny": 1.1,
    "rainy": 1.3,
    "cloudy": 1.0,
    "stormy": 1.4,
}
DEFAULT_WEATHER_MULTIPLIER = 1.0

WEATHER_CONDITIONS = ("sunny", "rainy", "cloudy", "stormy")

# Factor names recorded on each predicted item, in order
FACTOR_HISTORICAL_AVERAGE = "historical_average"
FACTOR_TREND = "trend_adjustment"
FACTOR_SEASONAL = "seasonal_adjustment"
FACTOR_WEATHER = "weather_impact"

# Singleton key for the training metadata row
TRAINING_META_KEY = "default"

# Accuracy summary defaults
ACCURACY_SUMMARY_LIMIT = 20
ACCURACY_RECENT_LIMIT = 5
HISTORY_DEFAULT_LIMIT = 10
