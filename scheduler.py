import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from periods import countdown_level, days_until_payday, local_now, next_payday


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Countdown:
    days: int
    level: str
    next_payday: date
    refreshed_at: datetime


def compute_countdown(now: Optional[datetime] = None) -> Countdown:
    now = now or local_now()
    days = days_until_payday(now)
    return Countdown(
        days=days,
        level=countdown_level(days),
        next_payday=next_payday(now),
        refreshed_at=now,
    )


class CountdownState:
    """Last countdown computed by the hourly job."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: Optional[Countdown] = None

    def refresh(self, now: Optional[datetime] = None) -> Countdown:
        countdown = compute_countdown(now)
        with self._lock:
            self._current = countdown
        return countdown

    def current(self) -> Countdown:
        with self._lock:
            countdown = self._current
        return countdown or self.refresh()


class SchedulerManager:
    def __init__(self, state: Optional[CountdownState] = None) -> None:
        settings = get_settings()
        self.state = state or CountdownState()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        countdown = self.state.refresh()
        logger.info(
            f"countdown_refresh: source={source} days={countdown.days} "
            f"level={countdown.level} next_payday={countdown.next_payday}"
        )

    def start(self) -> None:
        self._run_job("startup")

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["hourly"],
            id="countdown_hourly",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with hourly payday countdown refresh")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
