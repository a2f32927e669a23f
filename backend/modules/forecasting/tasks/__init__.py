# backend/modules/forecasting/tasks/__init__.py

from .forecast_scheduler import ForecastScheduler, JobName

__all__ = ["ForecastScheduler", "JobName"]
