"""Scheduler for the periodic SMTP connectivity probe."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.logging import get_logger

logger = get_logger(__name__, component="scheduler")

PROBE_JOB_ID = "smtp-probe"


class ProbeScheduler:
    """
    Wraps APScheduler to re-run the SMTP fallback ladder at a fixed interval.

    Uses BackgroundScheduler so probes run in their own thread while the
    caller keeps serving requests. A probe that raises is logged and the
    schedule continues.
    """

    def __init__(
        self,
        probe_callable: Callable[[], object],
        interval_minutes: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            probe_callable: Function to call on each run (e.g. EmailDeliveryEngine.verify)
            interval_minutes: Minutes between probes; must be positive
            shutdown_event: Optional event to set on shutdown for coordination
        """
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")

        self.probe_callable = probe_callable
        self.interval_minutes = interval_minutes
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping probes
                "coalesce": True,
                "misfire_grace_time": interval_minutes * 60,
            },
            timezone=timezone.utc,
        )

    def start(self, run_immediately: bool = False) -> None:
        """Register the probe job and start the scheduler thread."""
        trigger = IntervalTrigger(minutes=self.interval_minutes, timezone=timezone.utc)

        now = datetime.now(timezone.utc)
        next_run = now if run_immediately else now + timedelta(minutes=self.interval_minutes)
        self.scheduler.add_job(
            func=self._run_probe,
            trigger=trigger,
            id=PROBE_JOB_ID,
            name="SMTP connectivity probe",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()

        logger.info(
            f"Probe scheduler started with interval: {self.interval_minutes} minutes",
            extra={
                "event": "scheduler.started",
                "interval_minutes": self.interval_minutes,
                "next_run_time": next_run.isoformat(),
            },
        )

    def _run_probe(self) -> None:
        try:
            self.probe_callable()
        except Exception as e:
            logger.error(
                f"Scheduled SMTP probe failed: {e}",
                exc_info=True,
                extra={"event": "scheduler.probe_failed"},
            )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: If True, wait for a running probe to complete before returning
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Probe scheduler stopped", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """Run one probe synchronously in the current thread."""
        logger.info("Triggering immediate SMTP probe", extra={"event": "scheduler.trigger_now"})
        self._run_probe()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(PROBE_JOB_ID)
        return job.next_run_time if job else None
