# backend/modules/forecasting/routers/__init__.py

from .forecast_router import router as forecast_router

__all__ = ["forecast_router"]
