# backend/modules/forecasting/config/forecast_config.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class ForecastConfig(BaseSettings):
    """
    Configuration for demand forecasting and its scheduled jobs.

    All cadences run in FORECAST_TIMEZONE. Delays are in seconds and may be
    set to zero (tests do this) to disable throttling.
    """

    model_config = SettingsConfigDict(env_prefix="FORECAST_", case_sensitive=False)

    # Local time zone every job and bucket key is expressed in
    TIMEZONE: str = "Asia/Kolkata"

    # How far back the aggregator reads orders
    LOOKBACK_DAYS: int = 90

    # Hourly generation covers now+1 .. now+HORIZON_HOURS
    HORIZON_HOURS: int = 6
    GENERATION_DELAY_SECONDS: float = 0.5

    # Accuracy refresh batch
    ACCURACY_BATCH_SIZE: int = 10
    ACCURACY_DELAY_SECONDS: float = 0.3
    ACCURACY_MIN_AGE_HOURS: int = 1
    ACCURACY_MAX_AGE_HOURS: int = 3

    # Retention for generated predictions (by target date)
    RETENTION_DAYS: int = 30

    # Health check triggers generation below this many upcoming predictions
    HEALTH_MIN_UPCOMING: int = 3

    # Generation pass queued after a successful nightly training
    POST_TRAINING_DELAY_SECONDS: int = 5

    # Start the recurring jobs with the application
    SCHEDULER_ENABLED: bool = True

    # Job cadences
    GENERATION_CRON_MINUTE: int = 5
    TRAINING_CRON_HOUR: int = 2
    TRAINING_CRON_MINUTE: int = 30
    ACCURACY_INTERVAL_MINUTES: int = 30
    CLEANUP_CRON_DAY_OF_WEEK: str = "sun"
    CLEANUP_CRON_HOUR: int = 3
    HEALTH_CHECK_INTERVAL_HOURS: int = 6


# Global instance
forecast_config = ForecastConfig()


def get_forecast_config() -> ForecastConfig:
    """Get the forecasting configuration."""
    return forecast_config
