# backend/modules/forecasting/models/__init__.py

from .forecast_models import (
    HistoricalBucket,
    BucketItemTotal,
    Prediction,
    PredictionItem,
    TrainingMeta,
)

__all__ = [
    "HistoricalBucket",
    "BucketItemTotal",
    "Prediction",
    "PredictionItem",
    "TrainingMeta",
]
