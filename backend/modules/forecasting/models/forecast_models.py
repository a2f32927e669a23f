# backend/modules/forecasting/models/forecast_models.py

"""
Persistence models for demand forecasting.

HistoricalBucket rows summarise the orders of one (date, hour); Prediction
rows hold the per-item forecast for one future (date, hour).
"""

from datetime import datetime, timedelta, time

from sqlalchemy import (Column, Integer, String, ForeignKey, Date, DateTime,
                        Float, Boolean, JSON, Index, UniqueConstraint)
from sqlalchemy.orm import relationship

from core.database import Base
from core.mixins import TimestampMixin


class HistoricalBucket(Base, TimestampMixin):
    """Aggregated orders for a single calendar date and hour."""
    __tablename__ = "forecast_historical_buckets"

    id = Column(Integer, primary_key=True, index=True)
    bucket_date = Column(Date, nullable=False)
    hour = Column(Integer, nullable=False)  # 0-23
    day_of_week = Column(Integer, nullable=False)  # 0=Monday, 6=Sunday

    # Weather snapshot captured at collection time: temperature, condition, humidity
    weather = Column(JSON, nullable=True)
    is_holiday = Column(Boolean, nullable=False, default=False)
    special_event = Column(String(200), nullable=True)

    total_order_count = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Float, nullable=False, default=0.0)

    item_totals = relationship(
        "BucketItemTotal",
        back_populates="bucket",
        cascade="all, delete-orphan",
        order_by="BucketItemTotal.menu_item_id",
    )

    __table_args__ = (
        UniqueConstraint("bucket_date", "hour", name="uq_forecast_bucket_date_hour"),
        Index("ix_forecast_buckets_dow_hour", "day_of_week", "hour"),
    )

    @property
    def per_item_totals(self):
        """Mapping of menu item id to its quantity and revenue in this bucket."""
        return {
            total.menu_item_id: {"quantity": total.quantity, "revenue": total.revenue}
            for total in self.item_totals
        }

    def __repr__(self):
        return (
            f"<HistoricalBucket(date={self.bucket_date}, hour={self.hour}, "
            f"orders={self.total_order_count})>"
        )


class BucketItemTotal(Base):
    __tablename__ = "forecast_bucket_item_totals"

    id = Column(Integer, primary_key=True, index=True)
    bucket_id = Column(Integer, ForeignKey("forecast_historical_buckets.id"),
                       nullable=False, index=True)
    menu_item_id = Column(Integer, nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    revenue = Column(Float, nullable=False, default=0.0)

    bucket = relationship("HistoricalBucket", back_populates="item_totals")

    __table_args__ = (
        UniqueConstraint("bucket_id", "menu_item_id", name="uq_forecast_bucket_item"),
    )


class Prediction(Base, TimestampMixin):
    """Per-item demand forecast for one future date and hour."""
    __tablename__ = "forecast_predictions"

    id = Column(Integer, primary_key=True, index=True)
    prediction_for = Column(Date, nullable=False, index=True)
    hour = Column(Integer, nullable=False)  # 0-23

    total_predicted_orders = Column(Integer, nullable=False, default=0)
    total_predicted_revenue = Column(Float, nullable=False, default=0.0)

    # Written once by the accuracy tracker
    accuracy = Column(Float, nullable=True)
    scored_at = Column(DateTime, nullable=True)

    weather = Column(JSON, nullable=True)

    items = relationship(
        "PredictionItem",
        back_populates="prediction",
        cascade="all, delete-orphan",
        order_by="PredictionItem.position",
    )

    __table_args__ = (
        UniqueConstraint("prediction_for", "hour", name="uq_forecast_prediction_target"),
        Index("ix_forecast_predictions_accuracy", "accuracy"),
    )

    @property
    def window_start(self) -> datetime:
        return datetime.combine(self.prediction_for, time(hour=self.hour))

    @property
    def window_end(self) -> datetime:
        return self.window_start + timedelta(hours=1)

    @property
    def is_scored(self) -> bool:
        return self.accuracy is not None

    def __repr__(self):
        return (
            f"<Prediction(id={self.id}, for={self.prediction_for}, hour={self.hour}, "
            f"orders={self.total_predicted_orders}, accuracy={self.accuracy})>"
        )


class PredictionItem(Base):
    __tablename__ = "forecast_prediction_items"

    id = Column(Integer, primary_key=True, index=True)
    prediction_id = Column(Integer, ForeignKey("forecast_predictions.id"),
                           nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    menu_item_id = Column(Integer, nullable=False, index=True)
    predicted_quantity = Column(Integer, nullable=False, default=0)
    confidence = Column(Float, nullable=False)
    # Ordered list of {"name": ..., "impact": ...}
    factors = Column(JSON, nullable=False, default=list)

    prediction = relationship("Prediction", back_populates="items")

    __table_args__ = (
        UniqueConstraint("prediction_id", "menu_item_id", name="uq_forecast_prediction_item"),
    )


class TrainingMeta(Base, TimestampMixin):
    """Bookkeeping for the nightly training job (single row by convention)."""
    __tablename__ = "forecast_training_meta"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(50), nullable=False, unique=True)
    last_training_at = Column(DateTime, nullable=True)
    buckets_produced = Column(Integer, nullable=False, default=0)
