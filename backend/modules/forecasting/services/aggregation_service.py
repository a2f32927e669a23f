# backend/modules/forecasting/services/aggregation_service.py

"""
Historical aggregation for demand forecasting.

Folds raw order history into one bucket per (date, hour) with per-item
quantity and revenue totals. Buckets are recomputed from the source orders
on every run, so repeated runs over the same orders produce the same rows.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config.forecast_config import get_forecast_config
from ..exceptions import TransientStoreError
from ..models.forecast_models import HistoricalBucket, BucketItemTotal
from ..utils.time_utils import local_now, window_start
from .external_factors import (
    WeatherProvider, HolidayCalendar, MockWeatherProvider, StaticHolidayCalendar
)
from .order_source import OrderSource, OrderSnapshot

logger = logging.getLogger(__name__)

BucketKey = Tuple[date, int]


@dataclass
class _BucketAccumulator:
    order_count: int = 0
    revenue: float = 0.0
    items: Dict[int, Dict[str, float]] = field(default_factory=dict)

    def add_order(self, order: OrderSnapshot) -> None:
        self.order_count += 1
        for line in order.lines:
            line_revenue = line.unit_price * line.quantity
            self.revenue += line_revenue
            totals = self.items.setdefault(line.menu_item_id, {"quantity": 0, "revenue": 0.0})
            totals["quantity"] += line.quantity
            totals["revenue"] += line_revenue


class HistoricalAggregationService:
    """Builds HistoricalBucket rows from order history"""

    def __init__(
        self,
        db: Session,
        weather_provider: Optional[WeatherProvider] = None,
        holiday_calendar: Optional[HolidayCalendar] = None,
        order_source: Optional[OrderSource] = None
    ):
        self.db = db
        self.weather_provider = weather_provider or MockWeatherProvider()
        self.holiday_calendar = holiday_calendar or StaticHolidayCalendar()
        self.order_source = order_source or OrderSource(db)

    def collect_historical_data(
        self,
        lookback_days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Aggregate orders from the lookback window into historical buckets.

        Args:
            lookback_days: Days of order history to read (default from config)
            now: Reference time in local wall-clock (default: current time)

        Returns:
            Number of buckets written. Zero means there was nothing to train
            on; it is not an error.
        """
        lookback_days = lookback_days or get_forecast_config().LOOKBACK_DAYS
        now = now or local_now()
        start = now - timedelta(days=lookback_days)

        orders = self.order_source.orders_between(start, now)
        if not orders:
            logger.warning(f"No orders found in the last {lookback_days} days; nothing to aggregate")
            return 0

        accumulators: Dict[BucketKey, _BucketAccumulator] = {}
        for order in orders:
            key = (order.created_at.date(), order.created_at.hour)
            accumulators.setdefault(key, _BucketAccumulator()).add_order(order)

        try:
            for key, accumulator in accumulators.items():
                self._upsert_bucket(key, accumulator)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save historical buckets: {e}")
            raise TransientStoreError("collect_historical_data", str(e)) from e

        logger.info(
            f"Aggregated {len(orders)} orders into {len(accumulators)} historical buckets"
        )
        return len(accumulators)

    def _upsert_bucket(self, key: BucketKey, accumulator: _BucketAccumulator) -> HistoricalBucket:
        bucket_date, hour = key
        bucket = self.db.query(HistoricalBucket).filter(
            HistoricalBucket.bucket_date == bucket_date,
            HistoricalBucket.hour == hour
        ).first()

        if bucket is None:
            bucket = HistoricalBucket(bucket_date=bucket_date, hour=hour)
            self.db.add(bucket)

        moment = window_start(bucket_date, hour)
        bucket.day_of_week = bucket_date.weekday()
        bucket.weather = self.weather_provider.get_weather(moment).to_dict()
        bucket.is_holiday = self.holiday_calendar.is_holiday(bucket_date)
        bucket.special_event = self.holiday_calendar.special_event(bucket_date)
        bucket.total_order_count = accumulator.order_count
        bucket.total_revenue = round(accumulator.revenue, 2)

        # Update rows in place so (bucket, menu item) stays unique during flush
        existing = {total.menu_item_id: total for total in bucket.item_totals}
        for menu_item_id, totals in accumulator.items.items():
            row = existing.pop(menu_item_id, None)
            if row is None:
                row = BucketItemTotal(menu_item_id=menu_item_id)
                bucket.item_totals.append(row)
            row.quantity = int(totals["quantity"])
            row.revenue = round(totals["revenue"], 2)

        for stale in existing.values():
            bucket.item_totals.remove(stale)

        return bucket
