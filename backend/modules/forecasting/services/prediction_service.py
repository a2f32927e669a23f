# backend/modules/forecasting/services/prediction_service.py

"""
Prediction Service - entry point used by the API layer and the scheduler.

Wraps training, generation, upcoming/accuracy queries and retention
cleanup behind one object bound to a database session.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..config.forecast_config import get_forecast_config
from ..constants import (
    ACCURACY_SUMMARY_LIMIT, ACCURACY_RECENT_LIMIT, HISTORY_DEFAULT_LIMIT, TRAINING_META_KEY
)
from ..exceptions import TransientStoreError
from ..models.forecast_models import (
    HistoricalBucket, Prediction, PredictionItem, TrainingMeta
)
from ..utils.time_utils import local_now
from .aggregation_service import HistoricalAggregationService
from .external_factors import WeatherProvider, HolidayCalendar, MockWeatherProvider
from .forecasting_service import DemandForecastingService, validate_target
from .order_source import OrderSource

logger = logging.getLogger(__name__)


class PredictionService:
    """Trigger surface for demand forecasting"""

    def __init__(
        self,
        db: Session,
        weather_provider: Optional[WeatherProvider] = None,
        holiday_calendar: Optional[HolidayCalendar] = None
    ):
        self.db = db
        self.config = get_forecast_config()
        self.weather_provider = weather_provider or MockWeatherProvider()
        self.order_source = OrderSource(db)
        self.aggregator = HistoricalAggregationService(
            db,
            weather_provider=self.weather_provider,
            holiday_calendar=holiday_calendar,
            order_source=self.order_source,
        )
        self.forecaster = DemandForecastingService(db, weather_provider=self.weather_provider)

    # Training and generation

    def train(self, lookback_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """Rebuild historical buckets; returns the number of buckets produced."""
        return self.aggregator.collect_historical_data(lookback_days=lookback_days, now=now)

    def generate(self, target_date: Any, hour: Any) -> Prediction:
        return self.forecaster.generate_predictions(target_date, hour)

    def get_prediction(self, target_date: Any, hour: Any) -> Optional[Prediction]:
        target_date, hour = validate_target(target_date, hour)
        try:
            return (
                self.db.query(Prediction)
                .options(selectinload(Prediction.items))
                .filter(Prediction.prediction_for == target_date, Prediction.hour == hour)
                .first()
            )
        except SQLAlchemyError as e:
            raise TransientStoreError("get_prediction", str(e)) from e

    def prediction_exists(self, target_date: Any, hour: Any) -> bool:
        target_date, hour = validate_target(target_date, hour)
        try:
            return self.db.query(Prediction.id).filter(
                Prediction.prediction_for == target_date,
                Prediction.hour == hour
            ).first() is not None
        except SQLAlchemyError as e:
            raise TransientStoreError("prediction_exists", str(e)) from e

    def current_prediction(self, now: Optional[datetime] = None) -> Prediction:
        """
        Prediction for the hour that contains ``now``.

        Generated on demand when none is stored yet, so the call raises
        InsufficientDataError when there is no history for this slot.
        """
        now = now or local_now()
        prediction = self.get_prediction(now.date(), now.hour)
        if prediction is None:
            logger.info(f"No prediction for {now.date()} {now.hour:02d}:00, generating one")
            prediction = self.generate(now.date(), now.hour)
        return prediction

    # Queries

    def list_recent(self, limit: int = HISTORY_DEFAULT_LIMIT) -> List[Prediction]:
        """Prediction history, newest target first."""
        try:
            return (
                self.db.query(Prediction)
                .options(selectinload(Prediction.items))
                .order_by(Prediction.prediction_for.desc(), Prediction.hour.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise TransientStoreError("list_recent", str(e)) from e

    def list_upcoming(self, now: Optional[datetime] = None, hours: Optional[int] = None) -> List[Prediction]:
        """Predictions whose hour starts within the next ``hours`` hours."""
        now = now or local_now()
        hours = hours or self.config.HORIZON_HOURS
        horizon = now + timedelta(hours=hours)

        try:
            rows = (
                self.db.query(Prediction)
                .options(selectinload(Prediction.items))
                .filter(
                    Prediction.prediction_for >= now.date(),
                    Prediction.prediction_for <= horizon.date()
                )
                .all()
            )
        except SQLAlchemyError as e:
            raise TransientStoreError("list_upcoming", str(e)) from e

        upcoming = [p for p in rows if now < p.window_start <= horizon]
        upcoming.sort(key=lambda p: p.window_start)
        return upcoming

    def count_upcoming(self, now: Optional[datetime] = None, hours: Optional[int] = None) -> int:
        return len(self.list_upcoming(now=now, hours=hours))

    def accuracy_summary(
        self,
        limit: int = ACCURACY_SUMMARY_LIMIT,
        recent: int = ACCURACY_RECENT_LIMIT
    ) -> Dict[str, Any]:
        """
        Accuracy over the most recently scored predictions.

        Returns overall mean accuracy, mean accuracy per target hour and the
        ``recent`` latest scored predictions.
        """
        try:
            scored = (
                self.db.query(Prediction)
                .filter(Prediction.accuracy.isnot(None))
                .order_by(Prediction.prediction_for.desc(), Prediction.hour.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise TransientStoreError("accuracy_summary", str(e)) from e

        if not scored:
            return {
                "overall_accuracy": None,
                "prediction_count": 0,
                "hourly_accuracy": [],
                "recent_predictions": [],
            }

        by_hour: Dict[int, List[float]] = {}
        for prediction in scored:
            by_hour.setdefault(prediction.hour, []).append(prediction.accuracy)

        return {
            "overall_accuracy": sum(p.accuracy for p in scored) / len(scored),
            "prediction_count": len(scored),
            "hourly_accuracy": [
                {
                    "hour": hour,
                    "accuracy": sum(values) / len(values),
                    "predictions": len(values),
                }
                for hour, values in sorted(by_hour.items())
            ],
            "recent_predictions": [
                {
                    "id": p.id,
                    "prediction_for": p.prediction_for,
                    "hour": p.hour,
                    "accuracy": p.accuracy,
                    "total_predicted_orders": p.total_predicted_orders,
                }
                for p in scored[:recent]
            ],
        }

    def system_status(self) -> Dict[str, int]:
        """Row counts describing how much the forecaster has to work with."""
        try:
            return {
                "menu_items": self.order_source.count_menu_items(),
                "historical_buckets": self.db.query(func.count(HistoricalBucket.id)).scalar() or 0,
                "predictions": self.db.query(func.count(Prediction.id)).scalar() or 0,
                "scored_predictions": self.db.query(func.count(Prediction.id)).filter(
                    Prediction.accuracy.isnot(None)
                ).scalar() or 0,
            }
        except SQLAlchemyError as e:
            raise TransientStoreError("system_status", str(e)) from e

    def menu_item_details(self, predictions: List[Prediction]) -> Dict[int, Dict[str, Any]]:
        ids = {item.menu_item_id for p in predictions for item in p.items}
        return self.order_source.menu_item_details(ids)

    # Retention

    def purge_expired(self, retention_days: Optional[int] = None, today: Optional[date] = None) -> int:
        """Delete predictions targeting a day more than ``retention_days`` ago."""
        retention_days = retention_days or self.config.RETENTION_DAYS
        today = today or local_now().date()
        cutoff = today - timedelta(days=retention_days)

        try:
            expired_ids = [
                row.id for row in
                self.db.query(Prediction.id).filter(Prediction.prediction_for < cutoff).all()
            ]
            if not expired_ids:
                return 0

            self.db.query(PredictionItem).filter(
                PredictionItem.prediction_id.in_(expired_ids)
            ).delete(synchronize_session=False)
            deleted = self.db.query(Prediction).filter(
                Prediction.id.in_(expired_ids)
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise TransientStoreError("purge_expired_predictions", str(e)) from e

        logger.info(f"Deleted {deleted} predictions older than {cutoff}")
        return deleted

    # Training bookkeeping

    def get_training_meta(self) -> Optional[TrainingMeta]:
        try:
            return self.db.query(TrainingMeta).filter(TrainingMeta.key == TRAINING_META_KEY).first()
        except SQLAlchemyError as e:
            raise TransientStoreError("get_training_meta", str(e)) from e

    def record_training(self, trained_at: datetime, buckets_produced: int) -> TrainingMeta:
        try:
            meta = self.get_training_meta()
            if meta is None:
                meta = TrainingMeta(key=TRAINING_META_KEY)
                self.db.add(meta)
            meta.last_training_at = trained_at
            meta.buckets_produced = buckets_produced
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise TransientStoreError("record_training", str(e)) from e
        return meta

    def count_new_orders(self) -> int:
        """Orders created since the last recorded training (all orders if never trained)."""
        meta = self.get_training_meta()
        since = meta.last_training_at if meta else None
        return self.order_source.count_orders_since(since)
