# backend/modules/forecasting/schemas/forecast_schemas.py

from typing import List, Optional, Dict, Any
from datetime import date, datetime
from pydantic import BaseModel, Field, ConfigDict


# Training
class TrainRequest(BaseModel):
    """Training request schema"""

    lookback_days: Optional[int] = Field(None, ge=1, le=365)


class TrainResponse(BaseModel):
    buckets_produced: int
    lookback_days: int


# Predictions
class GenerateRequest(BaseModel):
    """Prediction generation request schema"""

    target_date: date = Field(..., alias="date")
    hour: int
    model_config = ConfigDict(populate_by_name=True)


class PredictionFactor(BaseModel):
    name: str
    impact: float


class PredictionItemResponse(BaseModel):
    """Predicted demand for one menu item"""

    menu_item_id: int
    predicted_quantity: int
    confidence: float
    factors: List[PredictionFactor] = []
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    model_config = ConfigDict(from_attributes=True)


class PredictionResponse(BaseModel):
    """Prediction response schema"""

    id: int
    prediction_for: date
    hour: int
    total_predicted_orders: int
    total_predicted_revenue: float
    accuracy: Optional[float] = None
    scored_at: Optional[datetime] = None
    weather: Optional[Dict[str, Any]] = None
    items: List[PredictionItemResponse] = []
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class UpcomingPredictionsResponse(BaseModel):
    window_hours: int
    count: int
    predictions: List[PredictionResponse]


# Accuracy
class HourlyAccuracy(BaseModel):
    hour: int
    accuracy: float
    predictions: int


class RecentAccuracy(BaseModel):
    id: int
    prediction_for: date
    hour: int
    accuracy: float
    total_predicted_orders: int


class AccuracySummaryResponse(BaseModel):
    """Accuracy over the most recently scored predictions"""

    overall_accuracy: Optional[float] = None
    prediction_count: int
    hourly_accuracy: List[HourlyAccuracy] = []
    recent_predictions: List[RecentAccuracy] = []


# Status
class TrainingStatus(BaseModel):
    last_training_at: Optional[datetime] = None
    buckets_produced: int = 0


class SystemStatusResponse(BaseModel):
    menu_items: int
    historical_buckets: int
    predictions: int
    scored_predictions: int
    training: TrainingStatus
    scheduler_running: bool


class JobRunResponse(BaseModel):
    job: str
    result: Optional[Dict[str, Any]] = None
