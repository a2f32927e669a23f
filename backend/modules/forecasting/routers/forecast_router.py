# backend/modules/forecasting/routers/forecast_router.py

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from core.database import get_db

from ..exceptions import (
    ForecastingError, InsufficientDataError, PredictionConflictError,
    TransientStoreError, ValidationError
)
from ..models.forecast_models import Prediction
from ..schemas.forecast_schemas import (
    TrainRequest, TrainResponse, GenerateRequest, PredictionResponse,
    PredictionItemResponse, UpcomingPredictionsResponse, AccuracySummaryResponse,
    SystemStatusResponse, TrainingStatus, JobRunResponse
)
from ..services.prediction_service import PredictionService
from ..tasks.forecast_scheduler import ForecastScheduler

router = APIRouter(prefix="/forecasting", tags=["Demand Forecasting"])
logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    InsufficientDataError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PredictionConflictError: status.HTTP_409_CONFLICT,
    TransientStoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _http_error(error: ForecastingError) -> HTTPException:
    status_code = _ERROR_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(
        status_code=status_code,
        detail={"error_code": error.error_code, "message": error.message, "details": error.details}
    )


def get_prediction_service(db: Session = Depends(get_db)) -> PredictionService:
    return PredictionService(db)


def get_forecast_scheduler(request: Request) -> Optional[ForecastScheduler]:
    return getattr(request.app.state, "forecast_scheduler", None)


def _prediction_response(prediction: Prediction, details: dict) -> PredictionResponse:
    response = PredictionResponse.model_validate(prediction)
    response.items = [
        PredictionItemResponse.model_validate(item).model_copy(
            update=details.get(item.menu_item_id, {})
        )
        for item in prediction.items
    ]
    return response


@router.post("/train", response_model=TrainResponse)
async def train_model(
    request: Optional[TrainRequest] = None,
    service: PredictionService = Depends(get_prediction_service)
):
    """
    Rebuild historical buckets from recent orders.

    Returns the number of (date, hour) buckets produced; zero means there
    were no orders in the lookback window.
    """
    lookback_days = (request.lookback_days if request else None) or service.config.LOOKBACK_DAYS
    try:
        buckets = service.train(lookback_days=lookback_days)
    except ForecastingError as e:
        logger.error(f"Training failed: {e}")
        raise _http_error(e)

    return TrainResponse(buckets_produced=buckets, lookback_days=lookback_days)


@router.post("/generate", response_model=PredictionResponse, status_code=status.HTTP_201_CREATED)
async def generate_prediction(
    request: GenerateRequest,
    service: PredictionService = Depends(get_prediction_service)
):
    """Generate and store the prediction for one future date and hour."""
    try:
        prediction = service.generate(request.target_date, request.hour)
        return _prediction_response(prediction, service.menu_item_details([prediction]))
    except ForecastingError as e:
        logger.warning(f"Prediction generation rejected: {e}")
        raise _http_error(e)


@router.get("/current", response_model=PredictionResponse)
async def get_current_prediction(
    service: PredictionService = Depends(get_prediction_service)
):
    """
    Prediction for the current hour with menu item details.

    Generated on demand when the hourly job has not produced it yet.
    """
    try:
        prediction = service.current_prediction()
        return _prediction_response(prediction, service.menu_item_details([prediction]))
    except ForecastingError as e:
        logger.warning(f"Current prediction unavailable: {e}")
        raise _http_error(e)


@router.get("/all", response_model=List[PredictionResponse])
async def list_predictions(
    limit: int = Query(10, ge=1, le=200),
    service: PredictionService = Depends(get_prediction_service)
):
    """Prediction history, newest target date and hour first."""
    try:
        predictions = service.list_recent(limit=limit)
        details = service.menu_item_details(predictions)
    except ForecastingError as e:
        raise _http_error(e)

    return [_prediction_response(p, details) for p in predictions]


@router.get("/upcoming", response_model=UpcomingPredictionsResponse)
async def get_upcoming_predictions(
    hours: int = Query(6, ge=1, le=48, description="Look-ahead window in hours"),
    service: PredictionService = Depends(get_prediction_service)
):
    try:
        predictions = service.list_upcoming(hours=hours)
        details = service.menu_item_details(predictions)
    except ForecastingError as e:
        raise _http_error(e)

    return UpcomingPredictionsResponse(
        window_hours=hours,
        count=len(predictions),
        predictions=[_prediction_response(p, details) for p in predictions]
    )


@router.get("/accuracy", response_model=AccuracySummaryResponse)
async def get_accuracy_summary(
    limit: int = Query(20, ge=1, le=200),
    recent: int = Query(5, ge=0, le=50),
    service: PredictionService = Depends(get_prediction_service)
):
    try:
        return service.accuracy_summary(limit=limit, recent=recent)
    except ForecastingError as e:
        raise _http_error(e)


@router.get("/status", response_model=SystemStatusResponse)
async def get_system_status(
    service: PredictionService = Depends(get_prediction_service),
    scheduler: Optional[ForecastScheduler] = Depends(get_forecast_scheduler)
):
    """Row counts and training bookkeeping for troubleshooting."""
    try:
        counts = service.system_status()
        meta = service.get_training_meta()
    except ForecastingError as e:
        raise _http_error(e)

    return SystemStatusResponse(
        **counts,
        training=TrainingStatus(
            last_training_at=meta.last_training_at if meta else None,
            buckets_produced=meta.buckets_produced if meta else 0
        ),
        scheduler_running=bool(scheduler and scheduler.is_running)
    )


@router.get("/scheduler/stats")
async def get_scheduler_stats(
    scheduler: Optional[ForecastScheduler] = Depends(get_forecast_scheduler)
):
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Forecast scheduler is not configured"
        )
    return {"running": scheduler.is_running, "jobs": scheduler.get_stats()}


@router.post("/scheduler/jobs/{job_name}/run", response_model=JobRunResponse)
async def run_scheduler_job(
    job_name: str,
    scheduler: Optional[ForecastScheduler] = Depends(get_forecast_scheduler)
):
    """Run one scheduled job immediately; failures are reported through the stats."""
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Forecast scheduler is not configured"
        )
    try:
        result = await scheduler.run_job(job_name)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown job '{job_name}'"
        )

    return JobRunResponse(job=job_name, result=result)
