# backend/modules/forecasting/tasks/forecast_scheduler.py

"""
Recurring jobs for demand forecasting.

Implements hourly prediction generation, nightly training, accuracy
refresh, weekly cleanup and a health check using APScheduler. Each job
type has its own run guard so two runs of the same job never overlap,
while different jobs may run side by side.
"""

import asyncio
import copy
import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from core.database import SessionLocal
from ..config.forecast_config import ForecastConfig, get_forecast_config
from ..services.accuracy_service import AccuracyTrackingService
from ..services.external_factors import WeatherProvider, HolidayCalendar
from ..services.prediction_service import PredictionService
from ..utils.pacing import ThrottlePolicy
from ..utils.time_utils import local_now, truncate_to_hour

logger = logging.getLogger(__name__)


class JobName(str, Enum):
    HOURLY_GENERATION = "hourly_generation"
    NIGHTLY_TRAINING = "nightly_training"
    ACCURACY_REFRESH = "accuracy_refresh"
    WEEKLY_CLEANUP = "weekly_cleanup"
    HEALTH_CHECK = "health_check"


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class JobGuard:
    """At most one in-flight run per job type"""

    def __init__(self, name: JobName):
        self.name = name
        self._state = JobState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> JobState:
        return self._state

    def try_acquire(self) -> bool:
        with self._lock:
            if self._state is JobState.RUNNING:
                return False
            self._state = JobState.RUNNING
            return True

    def release(self) -> None:
        with self._lock:
            self._state = JobState.IDLE

    @asynccontextmanager
    async def hold(self):
        """Yield True when this caller owns the run, False if one is already in flight."""
        acquired = self.try_acquire()
        try:
            yield acquired
        finally:
            if acquired:
                self.release()


@dataclass
class JobStats:
    runs: int = 0
    skipped: int = 0
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[Dict[str, Any]] = None


class SchedulerStats:
    """In-memory, best-effort run statistics per job"""

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[JobName, JobStats] = {name: JobStats() for name in JobName}

    def record_run(self, name: JobName, at: datetime) -> None:
        with self._lock:
            stats = self._jobs[name]
            stats.runs += 1
            stats.last_run_at = at

    def record_skip(self, name: JobName) -> None:
        with self._lock:
            self._jobs[name].skipped += 1

    def record_success(self, name: JobName, at: datetime) -> None:
        with self._lock:
            self._jobs[name].last_success_at = at

    def record_error(self, name: JobName, message: str, context: str, at: datetime) -> None:
        with self._lock:
            self._jobs[name].last_error = {"message": message, "context": context, "at": at}

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {
                name.value: copy.deepcopy(vars(stats))
                for name, stats in self._jobs.items()
            }


@dataclass
class SchedulerState:
    guards: Dict[JobName, JobGuard] = field(default_factory=lambda: {
        name: JobGuard(name) for name in (
            JobName.HOURLY_GENERATION, JobName.NIGHTLY_TRAINING, JobName.ACCURACY_REFRESH
        )
    })
    stats: SchedulerStats = field(default_factory=SchedulerStats)


def _error_context(error: Exception, default: str) -> str:
    return getattr(error, "context", None) or default


class ForecastScheduler:
    """Owns the APScheduler instance and the per-job state"""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        config: Optional[ForecastConfig] = None,
        weather_provider: Optional[WeatherProvider] = None,
        holiday_calendar: Optional[HolidayCalendar] = None,
        generation_pacing: Optional[ThrottlePolicy] = None,
        accuracy_pacing: Optional[ThrottlePolicy] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.config = config or get_forecast_config()
        self.session_factory = session_factory
        self.weather_provider = weather_provider
        self.holiday_calendar = holiday_calendar
        self.generation_pacing = generation_pacing or ThrottlePolicy(self.config.GENERATION_DELAY_SECONDS)
        self.accuracy_pacing = accuracy_pacing or ThrottlePolicy(self.config.ACCURACY_DELAY_SECONDS)
        self.clock = clock or (lambda: local_now(self.config.TIMEZONE))
        self.timezone = ZoneInfo(self.config.TIMEZONE)
        self.state = SchedulerState()
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self.is_running = False
        self._followups: Set[asyncio.Task] = set()

        self._jobs: Dict[JobName, Callable[[], Awaitable[Any]]] = {
            JobName.HOURLY_GENERATION: self.run_hourly_generation,
            JobName.NIGHTLY_TRAINING: self.run_nightly_training,
            JobName.ACCURACY_REFRESH: self.run_accuracy_refresh,
            JobName.WEEKLY_CLEANUP: self.run_weekly_cleanup,
            JobName.HEALTH_CHECK: self.run_health_check,
        }

    def start(self):
        """Register the recurring jobs and start the scheduler"""
        if self.is_running:
            logger.warning("Forecast scheduler already running")
            return

        config = self.config
        triggers = {
            JobName.HOURLY_GENERATION: CronTrigger(
                minute=config.GENERATION_CRON_MINUTE, timezone=self.timezone
            ),
            JobName.NIGHTLY_TRAINING: CronTrigger(
                hour=config.TRAINING_CRON_HOUR, minute=config.TRAINING_CRON_MINUTE,
                timezone=self.timezone
            ),
            JobName.ACCURACY_REFRESH: IntervalTrigger(
                minutes=config.ACCURACY_INTERVAL_MINUTES, timezone=self.timezone
            ),
            JobName.WEEKLY_CLEANUP: CronTrigger(
                day_of_week=config.CLEANUP_CRON_DAY_OF_WEEK, hour=config.CLEANUP_CRON_HOUR,
                minute=0, timezone=self.timezone
            ),
            JobName.HEALTH_CHECK: IntervalTrigger(
                hours=config.HEALTH_CHECK_INTERVAL_HOURS, timezone=self.timezone
            ),
        }

        try:
            for name, trigger in triggers.items():
                self.scheduler.add_job(
                    func=self._jobs[name],
                    trigger=trigger,
                    id=f"forecast_{name.value}",
                    name=name.value.replace("_", " ").title(),
                    max_instances=1,
                    coalesce=True,
                    misfire_grace_time=300,
                    replace_existing=True
                )

            self.scheduler.start()
            self.is_running = True
            logger.info(f"Forecast scheduler started in {config.TIMEZONE}")

        except Exception as e:
            logger.critical(f"Failed to start forecast scheduler: {e}", exc_info=True)
            raise

    def stop(self):
        """Stop the scheduler and drop follow-up passes that have not run yet"""
        for task in list(self._followups):
            task.cancel()

        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Forecast scheduler stopped")

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        return self.state.stats.snapshot()

    def pending_followups(self) -> Set[asyncio.Task]:
        """Post-training generation passes queued on the event loop"""
        return set(self._followups)

    def get_scheduled_jobs(self) -> Dict[str, Optional[datetime]]:
        return {
            job.id: getattr(job, "next_run_time", None)
            for job in self.scheduler.get_jobs()
        }

    async def run_job(self, name: str) -> Any:
        """Run one job immediately. Raises ValueError for an unknown job name."""
        job_name = JobName(name)
        return await self._jobs[job_name]()

    # Job plumbing

    async def _execute(
        self,
        name: JobName,
        action: Callable[[Session, datetime], Awaitable[Any]]
    ) -> Any:
        now = self.clock()
        self.state.stats.record_run(name, now)
        db = None
        try:
            db = self.session_factory()
            result = await action(db, now)
        except Exception as e:
            context = _error_context(e, name.value)
            logger.error(f"Forecast job {name.value} failed ({context}): {e}", exc_info=True)
            self.state.stats.record_error(name, str(e), context, self.clock())
            return None
        finally:
            if db is not None:
                db.close()

        self.state.stats.record_success(name, self.clock())
        return result

    async def _execute_guarded(
        self,
        name: JobName,
        action: Callable[[Session, datetime], Awaitable[Any]]
    ) -> Any:
        async with self.state.guards[name].hold() as acquired:
            if not acquired:
                self.state.stats.record_skip(name)
                logger.info(f"Forecast job {name.value} already in progress, skipping")
                return None
            return await self._execute(name, action)

    def _prediction_service(self, db: Session) -> PredictionService:
        return PredictionService(
            db,
            weather_provider=self.weather_provider,
            holiday_calendar=self.holiday_calendar
        )

    # Jobs

    async def run_hourly_generation(self) -> Optional[Dict[str, int]]:
        return await self._execute_guarded(JobName.HOURLY_GENERATION, self._generate_upcoming)

    async def _generate_upcoming(self, db: Session, now: datetime) -> Dict[str, int]:
        service = self._prediction_service(db)
        summary = {"generated": 0, "existing": 0, "failed": 0}
        base = truncate_to_hour(now)

        for offset in range(1, self.config.HORIZON_HOURS + 1):
            if offset > 1:
                await self.generation_pacing.pause()

            target = base + timedelta(hours=offset)
            context = f"generation:{target.date()} {target.hour:02d}:00"
            try:
                if service.prediction_exists(target.date(), target.hour):
                    summary["existing"] += 1
                    continue
                service.generate(target.date(), target.hour)
                summary["generated"] += 1
            except Exception as e:
                summary["failed"] += 1
                logger.warning(f"Prediction generation failed for {context}: {e}")
                self.state.stats.record_error(
                    JobName.HOURLY_GENERATION, str(e), _error_context(e, context), self.clock()
                )

        logger.info(
            f"Hourly generation: {summary['generated']} generated, "
            f"{summary['existing']} already present, {summary['failed']} failed"
        )
        return summary

    async def run_nightly_training(self) -> Optional[Dict[str, Any]]:
        return await self._execute_guarded(JobName.NIGHTLY_TRAINING, self._train)

    async def _train(self, db: Session, now: datetime) -> Dict[str, Any]:
        service = self._prediction_service(db)

        new_orders = service.count_new_orders()
        if new_orders == 0:
            logger.info("No new orders since last training, skipping")
            return {"trained": False, "new_orders": 0, "buckets": 0}

        buckets = service.train(now=now)
        service.record_training(now, buckets)
        self._schedule_followup_generation()

        logger.info(f"Nightly training aggregated {buckets} buckets from {new_orders} new orders")
        return {"trained": True, "new_orders": new_orders, "buckets": buckets}

    def _schedule_followup_generation(self) -> str:
        delay = self.config.POST_TRAINING_DELAY_SECONDS
        run_date = datetime.now(self.timezone) + timedelta(seconds=delay)
        job_id = f"forecast_post_training_generation_{int(run_date.timestamp())}"

        if not self.scheduler.running:
            # Manual runs with the recurring jobs disabled; nothing would pick up a pending job
            task = asyncio.get_running_loop().create_task(self._delayed_generation(delay))
            task.set_name(job_id)
            self._followups.add(task)
            task.add_done_callback(self._followups.discard)
            logger.info(f"Post-training generation will run in {delay}s")
            return job_id

        self.scheduler.add_job(
            self.run_hourly_generation,
            trigger="date",
            run_date=run_date,
            id=job_id,
            name="Post-training generation",
            max_instances=1,
            replace_existing=True
        )
        logger.info(f"Scheduled post-training generation at {run_date}")
        return job_id

    async def _delayed_generation(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.run_hourly_generation()

    async def run_accuracy_refresh(self) -> Optional[Dict[str, int]]:
        return await self._execute_guarded(JobName.ACCURACY_REFRESH, self._refresh_accuracy)

    async def _refresh_accuracy(self, db: Session, now: datetime) -> Dict[str, int]:
        tracker = AccuracyTrackingService(db)
        result = await tracker.update_accuracy_metrics(
            now=now,
            limit=self.config.ACCURACY_BATCH_SIZE,
            pacing=self.accuracy_pacing
        )
        if result.errors:
            last = result.errors[-1]
            self.state.stats.record_error(
                JobName.ACCURACY_REFRESH, last["message"], last["context"], self.clock()
            )
        return {"candidates": result.candidates, "scored": result.scored, "failed": result.failed}

    async def run_weekly_cleanup(self) -> Optional[Dict[str, int]]:
        return await self._execute(JobName.WEEKLY_CLEANUP, self._cleanup)

    async def _cleanup(self, db: Session, now: datetime) -> Dict[str, int]:
        deleted = self._prediction_service(db).purge_expired(
            retention_days=self.config.RETENTION_DAYS, today=now.date()
        )
        return {"deleted": deleted}

    async def run_health_check(self) -> Optional[Dict[str, Any]]:
        result = await self._execute(JobName.HEALTH_CHECK, self._check_health)
        if result and result["triggered"]:
            await self.run_hourly_generation()
        return result

    async def _check_health(self, db: Session, now: datetime) -> Dict[str, Any]:
        upcoming = self._prediction_service(db).count_upcoming(
            now=now, hours=self.config.HORIZON_HOURS
        )
        triggered = upcoming < self.config.HEALTH_MIN_UPCOMING
        if triggered:
            logger.warning(
                f"Only {upcoming} predictions in the next {self.config.HORIZON_HOURS} hours, "
                f"running generation"
            )
        return {"upcoming": upcoming, "triggered": triggered}
