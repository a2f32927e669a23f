# backend/modules/forecasting/services/forecasting_service.py

"""
Demand Forecasting Service.

Predicts per-item order quantities for a future (date, hour) from the
historical buckets that share its weekday and hour, adjusted by trend,
seasonal and weather multipliers.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..constants import (
    MIN_CONFIDENCE, MAX_CONFIDENCE, WEEKEND_DAYS, WEEKEND_MULTIPLIER,
    MEAL_PEAK_HOURS, MEAL_PEAK_MULTIPLIER, SEASONAL_FACTORS,
    WEATHER_MULTIPLIERS, DEFAULT_WEATHER_MULTIPLIER,
    FACTOR_HISTORICAL_AVERAGE, FACTOR_TREND, FACTOR_SEASONAL, FACTOR_WEATHER,
)
from ..exceptions import (
    InsufficientDataError, TransientStoreError, ValidationError, PredictionConflictError
)
from ..models.forecast_models import HistoricalBucket, Prediction, PredictionItem
from ..utils.time_utils import window_start
from .external_factors import WeatherProvider, MockWeatherProvider

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def confidence_score(quantities: Sequence[float]) -> Tuple[float, float, float]:
    """
    Heuristic stability score for a quantity series.

    Returns (mean, population variance, confidence) where confidence is
    1 - variance / (mean + 1) clamped to [MIN_CONFIDENCE, MAX_CONFIDENCE].
    """
    mean = sum(quantities) / len(quantities)
    variance = sum((q - mean) ** 2 for q in quantities) / len(quantities)
    confidence = max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, 1 - variance / (mean + 1)))
    return mean, variance, confidence


def trend_multiplier(target_date: date, hour: int) -> float:
    """Weekend boost composed with the meal-peak boost."""
    weekend = WEEKEND_MULTIPLIER if target_date.weekday() in WEEKEND_DAYS else 1.0
    peak = MEAL_PEAK_MULTIPLIER if any(hour in peak_range for peak_range in MEAL_PEAK_HOURS) else 1.0
    return weekend * peak


def seasonal_multiplier(target_date: date) -> float:
    return SEASONAL_FACTORS[target_date.month - 1]


def weather_multiplier(condition: Optional[str]) -> float:
    return WEATHER_MULTIPLIERS.get(condition, DEFAULT_WEATHER_MULTIPLIER)


def validate_target(target_date: Any, hour: Any) -> Tuple[date, int]:
    """
    Normalize and check a forecast target before any store access.

    Accepts a date, a datetime (its calendar date is used) or an ISO
    formatted string for the date, and an integer hour 0-23.
    """
    if isinstance(target_date, datetime):
        target_date = target_date.date()
    elif isinstance(target_date, str):
        try:
            target_date = date.fromisoformat(target_date)
        except ValueError:
            raise ValidationError("target_date", target_date, "expected YYYY-MM-DD")
    elif not isinstance(target_date, date):
        raise ValidationError("target_date", target_date, "expected a date")

    if isinstance(hour, bool) or not isinstance(hour, int):
        raise ValidationError("hour", hour, "expected an integer")
    if hour < 0 or hour > 23:
        raise ValidationError("hour", hour, "must be between 0 and 23")

    return target_date, hour


class DemandForecastingService:
    """Generates and stores per-item predictions for a (date, hour) target"""

    def __init__(self, db: Session, weather_provider: Optional[WeatherProvider] = None):
        self.db = db
        self.weather_provider = weather_provider or MockWeatherProvider()

    def generate_predictions(self, target_date: Any, target_hour: Any) -> Prediction:
        """
        Generate and persist a prediction for one future hour.

        Args:
            target_date: Calendar day to forecast
            target_hour: Hour of day (0-23)

        Returns:
            The stored Prediction

        Raises:
            ValidationError: malformed target
            PredictionConflictError: a prediction for the target already exists
            InsufficientDataError: no bucket shares the target weekday and hour
            TransientStoreError: the store could not be read or written
        """
        target_date, target_hour = validate_target(target_date, target_hour)
        day_of_week = target_date.weekday()

        logger.info(f"Generating predictions for {target_date} at {target_hour:02d}:00")

        try:
            existing = self.db.query(Prediction.id).filter(
                Prediction.prediction_for == target_date,
                Prediction.hour == target_hour
            ).first()

            buckets = (
                self.db.query(HistoricalBucket)
                .options(selectinload(HistoricalBucket.item_totals))
                .filter(
                    HistoricalBucket.day_of_week == day_of_week,
                    HistoricalBucket.hour == target_hour
                )
                .order_by(HistoricalBucket.bucket_date)
                .all()
            )
        except SQLAlchemyError as e:
            raise TransientStoreError("load_historical_buckets", str(e)) from e

        if existing is not None:
            raise PredictionConflictError(target_date, target_hour, existing.id)

        if not buckets:
            raise InsufficientDataError(day_of_week, target_hour, target_date)

        weather = self.weather_provider.get_weather(window_start(target_date, target_hour))
        trend = trend_multiplier(target_date, target_hour)
        seasonal = seasonal_multiplier(target_date)
        weather_impact = weather_multiplier(weather.condition)

        items = self._predict_items(buckets, trend, seasonal, weather_impact)

        total_orders = sum(item["predicted_quantity"] for item in items)
        avg_revenue = sum(b.total_revenue or 0 for b in buckets) / len(buckets)
        avg_order_count = sum(b.total_order_count or 0 for b in buckets) / len(buckets)
        if avg_order_count > 0:
            total_revenue = round(avg_revenue * (total_orders / avg_order_count), 2)
        else:
            total_revenue = 0.0

        prediction = Prediction(
            prediction_for=target_date,
            hour=target_hour,
            total_predicted_orders=total_orders,
            total_predicted_revenue=total_revenue,
            weather=weather.to_dict(),
        )
        for position, item in enumerate(items):
            prediction.items.append(PredictionItem(position=position, **item))

        try:
            self.db.add(prediction)
            self.db.commit()
            self.db.refresh(prediction)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise TransientStoreError("save_prediction", str(e)) from e

        logger.info(
            f"Generated {len(items)} item predictions for {target_date} {target_hour:02d}:00 "
            f"({total_orders} units, {len(buckets)} matching buckets)"
        )
        return prediction

    def _predict_items(
        self,
        buckets: List[HistoricalBucket],
        trend: float,
        seasonal: float,
        weather_impact: float
    ) -> List[Dict[str, Any]]:
        series: Dict[int, List[int]] = {}
        for bucket in buckets:
            for total in bucket.item_totals:
                series.setdefault(total.menu_item_id, []).append(total.quantity or 0)

        items = []
        for menu_item_id, quantities in series.items():
            avg_quantity, _, confidence = confidence_score(quantities)
            predicted = max(0, round_half_up(avg_quantity * trend * seasonal * weather_impact))
            items.append({
                "menu_item_id": menu_item_id,
                "predicted_quantity": predicted,
                "confidence": round(confidence, 4),
                "factors": [
                    {"name": FACTOR_HISTORICAL_AVERAGE, "impact": round(avg_quantity, 4)},
                    {"name": FACTOR_TREND, "impact": round(trend, 4)},
                    {"name": FACTOR_SEASONAL, "impact": seasonal},
                    {"name": FACTOR_WEATHER, "impact": weather_impact},
                ],
            })

        items.sort(key=lambda item: (-item["predicted_quantity"], item["menu_item_id"]))
        return items
