# backend/modules/forecasting/exceptions.py

"""
Custom exceptions for the forecasting module.

Every error carries a stable error code and a details dict so the
scheduler statistics and the API layer can report failures uniformly.
"""

from datetime import date
from typing import Optional, Dict, Any


class ForecastingError(Exception):
    """Base exception for all forecasting errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class InsufficientDataError(ForecastingError):
    """Raised when no historical buckets match a requested forecast target"""

    def __init__(self, day_of_week: int, hour: int, target_date: Optional[date] = None):
        message = (
            f"No historical data for day_of_week={day_of_week} hour={hour}; "
            f"run training before generating predictions"
        )
        details = {
            "day_of_week": day_of_week,
            "hour": hour,
            "target_date": target_date.isoformat() if target_date else None,
        }
        super().__init__(message, "INSUFFICIENT_DATA", details)


class TransientStoreError(ForecastingError):
    """Raised when reading or writing the forecast store fails"""

    def __init__(self, context: str, reason: str):
        message = f"Store operation '{context}' failed: {reason}"
        details = {"context": context, "reason": reason}
        super().__init__(message, "STORE_UNAVAILABLE", details)
        self.context = context


class ValidationError(ForecastingError):
    """Raised when a caller supplies a malformed forecast target"""

    def __init__(self, field: str, value: Any, reason: str):
        message = f"Invalid {field} {value!r}: {reason}"
        details = {"field": field, "value": str(value), "reason": reason}
        super().__init__(message, "VALIDATION_ERROR", details)


class PredictionConflictError(ForecastingError):
    """Raised when a prediction already exists for the requested target"""

    def __init__(self, target_date: date, hour: int, prediction_id: int):
        message = f"Prediction for {target_date.isoformat()} {hour:02d}:00 already exists"
        details = {
            "target_date": target_date.isoformat(),
            "hour": hour,
            "prediction_id": prediction_id,
        }
        super().__init__(message, "PREDICTION_EXISTS", details)
