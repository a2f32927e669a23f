# backend/modules/forecasting/utils/time_utils.py

"""
Local-time helpers.

Buckets, predictions and job cadences are all expressed as naive datetimes
in the configured forecasting time zone.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from ..config.forecast_config import get_forecast_config


def local_now(timezone: Optional[str] = None) -> datetime:
    """Current wall-clock time in the forecasting time zone, without tzinfo."""
    tz = ZoneInfo(timezone or get_forecast_config().TIMEZONE)
    return datetime.now(tz).replace(tzinfo=None)


def window_start(target_date: date, hour: int) -> datetime:
    """Start of the one-hour window a (date, hour) target covers."""
    return datetime.combine(target_date, time(hour=hour))


def window_end(target_date: date, hour: int) -> datetime:
    return window_start(target_date, hour) + timedelta(hours=1)


def truncate_to_hour(moment: datetime) -> datetime:
    return moment.replace(minute=0, second=0, microsecond=0)
