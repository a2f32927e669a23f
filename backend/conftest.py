"""
Pytest configuration file for backend testing.
"""
import os
import sys
from pathlib import Path

# Add the backend directory to Python path so imports work correctly
backend_dir = Path(__file__).parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Tests run against a private in-memory database with throttling disabled.
# These must be set before core.database and the forecasting config are imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("FORECAST_GENERATION_DELAY_SECONDS", "0")
os.environ.setdefault("FORECAST_ACCURACY_DELAY_SECONDS", "0")
os.environ.setdefault("FORECAST_POST_TRAINING_DELAY_SECONDS", "0")
os.environ.setdefault("FORECAST_SCHEDULER_ENABLED", "false")

# Import all models to register them with SQLAlchemy
from core import menu_models  # noqa: E402,F401
from modules.orders.models import order_models  # noqa: E402,F401
from modules.forecasting import models as forecast_models  # noqa: E402,F401
