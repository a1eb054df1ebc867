"""APScheduler wrapper running the daily refresh job."""

from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import ScheduleConfig
from ..logging_conf import configure_logging

REFRESH_JOB_ID = "refresh::daily"


class APSchedulerAdapter:
    """Manage the background refresh job."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_refresh(self, callback: Callable[[], object], schedule: ScheduleConfig) -> None:
        trigger = CronTrigger.from_crontab(schedule.cron)
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=REFRESH_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("job_scheduled", job=REFRESH_JOB_ID, cron=schedule.cron)

    def remove_refresh(self) -> None:
        try:
            self.scheduler.remove_job(REFRESH_JOB_ID)
        except Exception:  # noqa: BLE001
            self.logger.warning("job_remove_failed", job=REFRESH_JOB_ID)

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs


__all__ = ["APSchedulerAdapter", "REFRESH_JOB_ID"]
