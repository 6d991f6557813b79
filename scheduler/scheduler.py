"""APScheduler integration for periodic emerging trends discovery.

One background job runs discovery on an interval or cron trigger. Jobs are
coalesced and limited to a single instance, so a process never runs two
discovery cycles at once; cross-process exclusion comes from the
per-community leases.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from data_models.discovery import DiscoveryOptions, DiscoveryResult
from data_models.settings import SchedulerConfig, Settings, get_settings

logger = logging.getLogger(__name__)

DISCOVERY_JOB_ID = "emerging_trends_discovery"


class DiscoveryScheduler:
    """Manages the scheduled discovery job."""

    def __init__(
        self,
        settings: Settings | None = None,
        run_discovery: Callable[[DiscoveryOptions], DiscoveryResult] | None = None,
    ):
        """Initialize scheduler.

        Args:
            settings: Pipeline settings (scheduler section is used here)
            run_discovery: Function running one cycle; defaults to
                discover_emerging_trends with these settings
        """
        self.settings = settings or get_settings()
        self.config: SchedulerConfig = self.settings.scheduler
        self._run_discovery = run_discovery or self._default_discovery
        self._running = False
        self.last_result: DiscoveryResult | None = None
        self.last_run_at: datetime | None = None

        self.scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                "coalesce": True,  # Combine missed runs
                "max_instances": 1,  # Only one instance per job
                "misfire_grace_time": 3600,
            },
            timezone=self.config.timezone,
        )
        logger.info("Scheduler initialized")

    def _default_discovery(self, options: DiscoveryOptions) -> DiscoveryResult:
        from services.emerging_trends import discover_emerging_trends

        return discover_emerging_trends(options, settings=self.settings)

    @property
    def is_running(self) -> bool:
        return self._running

    def discovery_options(self) -> DiscoveryOptions:
        """Options used by scheduled runs."""
        return DiscoveryOptions(
            platforms=self.config.platforms,
            velocity_preset=self.config.velocity_preset,
        )

    def run_discovery_job(self) -> DiscoveryResult | None:
        """Execute one scheduled discovery cycle."""
        logger.info("Running scheduled emerging trends discovery")
        self.last_run_at = datetime.now(timezone.utc)
        try:
            result = self._run_discovery(self.discovery_options())
        except Exception as e:
            logger.error(f"Scheduled discovery failed: {e}")
            return None

        self.last_result = result
        if result.errors:
            logger.warning(f"Scheduled discovery finished with {len(result.errors)} errors")
        else:
            logger.info(f"Scheduled discovery created {result.trends_created} trends")
        return result

    def _trigger(self):
        if self.config.cron:
            return CronTrigger.from_crontab(self.config.cron, timezone=self.config.timezone)
        return IntervalTrigger(minutes=self.config.interval_minutes or 360)

    def add_discovery_job(self) -> str:
        """Schedule the discovery job (replacing any existing one).

        Returns:
            Job ID
        """
        self.scheduler.add_job(
            self.run_discovery_job,
            trigger=self._trigger(),
            id=DISCOVERY_JOB_ID,
            name="Emerging trends discovery",
            replace_existing=True,
        )
        logger.info(f"Added job: {DISCOVERY_JOB_ID}")
        return DISCOVERY_JOB_ID

    def run_now(self) -> bool:
        """Trigger immediate execution of the discovery job.

        Returns:
            True if triggered
        """
        job = self.scheduler.get_job(DISCOVERY_JOB_ID)
        if job is None:
            return False
        job.modify(next_run_time=datetime.now(timezone.utc))
        logger.info(f"Triggered job: {DISCOVERY_JOB_ID}")
        return True

    def get_jobs(self) -> list[dict]:
        """Get all scheduled jobs.

        Returns:
            List of job info dicts
        """
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })
        return jobs

    def start(self) -> bool:
        """Start the scheduler.

        Returns:
            True if started
        """
        if not self.config.enabled:
            logger.info("Scheduler disabled via settings")
            return False

        if self._running:
            logger.warning("Scheduler already running")
            return True

        if self.scheduler.get_job(DISCOVERY_JOB_ID) is None:
            self.add_discovery_job()

        try:
            self.scheduler.start()
            self._running = True
            logger.info("Scheduler started")
            return True
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            return False

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the scheduler.

        Args:
            wait: Wait for running jobs to complete
        """
        if self._running:
            self.scheduler.shutdown(wait=wait)
            self._running = False
            logger.info("Scheduler stopped")


# Singleton instance
_scheduler: DiscoveryScheduler | None = None


def get_scheduler() -> DiscoveryScheduler:
    """Get the singleton DiscoveryScheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = DiscoveryScheduler()
    return _scheduler
