from typing import Any, Dict, List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from app.core.config import settings
from app.services.alert_checker import AlertChecker, alert_checker


class SchedulerService:
    """
    Service for managing scheduled tasks of the API server.
    Runs the server-side alert checker on a fixed interval.
    """

    def __init__(self, checker: AlertChecker = alert_checker,
                 interval_seconds: int = None):
        self.scheduler = AsyncIOScheduler()
        self.is_running = False
        self.checker = checker
        self.interval_seconds = interval_seconds or settings.alert_check_interval_seconds

    async def start(self):
        """Start the scheduler service"""
        if self.is_running:
            logger.warning("Scheduler service is already running")
            return

        try:
            self.scheduler.add_job(
                func=self.run_alert_check,
                trigger=IntervalTrigger(seconds=self.interval_seconds),
                id="alert_check",
                name="Server-side Alert Check",
                replace_existing=True,
                max_instances=1,  # Prevent overlapping executions
                coalesce=True,
            )

            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler service started successfully")
            logger.info(f"Alert check scheduled every {self.interval_seconds}s")

        except Exception as e:
            logger.error(f"Failed to start scheduler service: {e}")
            raise

    async def stop(self):
        """Stop the scheduler service"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler service stopped")
        except Exception as e:
            logger.error(f"Error stopping scheduler service: {e}")

    async def run_alert_check(self):
        """Scheduled entry point; failures are logged so the job keeps its schedule."""
        try:
            summary = await self.checker.run_check()
            logger.debug(f"Scheduled alert check finished: {summary['checked']} rules checked")
        except Exception as e:
            logger.error(f"Error during scheduled alert check: {e}")

    def get_scheduled_jobs(self) -> List[Dict[str, Any]]:
        """Get list of scheduled jobs"""
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            })
        return jobs


scheduler_service = SchedulerService()
