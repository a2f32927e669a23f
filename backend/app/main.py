from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from core.config import get_settings
from app.startup import run_startup_checks, configure_logging

# ========== Demand Forecasting ==========
from modules.forecasting.routers.forecast_router import router as forecasting_router
from modules.forecasting.config.forecast_config import get_forecast_config
from modules.forecasting.tasks.forecast_scheduler import ForecastScheduler

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="""
    Menu demand forecasting for restaurant operations.

    Aggregates order history into hourly buckets, predicts per-item demand
    for upcoming hours, scores past predictions against realized orders and
    runs those steps on a recurring schedule.
    """,
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(forecasting_router, prefix="/api/v1")


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup"""
    run_startup_checks()

    app.state.forecast_scheduler = ForecastScheduler()
    if get_forecast_config().SCHEDULER_ENABLED:
        app.state.forecast_scheduler.start()
    else:
        logger.info("Forecast scheduler disabled by configuration")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown"""
    scheduler = getattr(app.state, "forecast_scheduler", None)
    if scheduler is not None:
        scheduler.stop()


@app.get("/")
def read_root():
    return {"message": "AuraConnect forecasting service is running"}


@app.get("/health")
def health():
    scheduler = getattr(app.state, "forecast_scheduler", None)
    return {
        "status": "ok",
        "environment": settings.environment,
        "scheduler_running": bool(scheduler and scheduler.is_running),
    }
