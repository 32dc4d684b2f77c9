"""
Scheduler module for Weather Live Poller.

Runs the poll cycle on a fixed interval:
fetch current weather -> store observation -> broadcast to clients.

A failing cycle is logged and skipped; the next one runs on schedule.
"""

import logging
import threading
from typing import Optional
from datetime import datetime, timezone
from dataclasses import dataclass, asdict

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .broadcaster import ConnectionManager, WEATHER_UPDATE_EVENT
from .config import Settings
from .database import Database
from .fetcher import WeatherFetcher, normalize_observation

logger = logging.getLogger(__name__)

POLL_JOB_ID = "weather_poll_job"


@dataclass
class PollResult:
    """Result of one poll cycle."""
    success: bool
    observation_id: Optional[int]
    temperature: Optional[float]
    error_message: Optional[str]
    poll_time: str
    response_time_ms: int
    broadcast_scheduled: bool


class WeatherPoller:
    """
    Polls the weather API on a fixed cadence.

    Only one poll job exists; overlapping runs are prevented by the
    scheduler (max_instances=1) and missed runs are coalesced.
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        broadcaster: ConnectionManager,
        fetcher: Optional[WeatherFetcher] = None
    ):
        self.settings = settings
        self.database = database
        self.broadcaster = broadcaster
        self.interval_seconds = settings.poll_interval_seconds
        self.fetcher = fetcher or WeatherFetcher(
            api_key=settings.api_key,
            lat=settings.lat,
            lon=settings.lon,
            units=settings.units,
            base_url=settings.api_url,
            timeout=settings.request_timeout
        )
        self.scheduler = BackgroundScheduler(timezone=timezone.utc)
        self._is_running = False

        self._stats_lock = threading.Lock()
        self._poll_count = 0
        self._success_count = 0
        self._failure_count = 0
        self._last_result: Optional[PollResult] = None

    def poll_once(self) -> PollResult:
        """Run one fetch-store-broadcast cycle."""
        poll_time = datetime.now(timezone.utc).isoformat()

        try:
            payload, metadata = self.fetcher.fetch_current()
            observation = normalize_observation(payload)
            record = self.database.insert_observation(observation)
            logger.info(f"Saved weather at {record['timestamp']} temp: {record['temperature']}")

            scheduled = self.broadcaster.publish(WEATHER_UPDATE_EVENT, record)

            result = PollResult(
                success=True,
                observation_id=record["id"],
                temperature=record["temperature"],
                error_message=None,
                poll_time=poll_time,
                response_time_ms=metadata.response_time_ms,
                broadcast_scheduled=scheduled
            )

        except Exception as e:
            logger.error(f"Poll cycle error: {e}")
            result = PollResult(
                success=False,
                observation_id=None,
                temperature=None,
                error_message=str(e),
                poll_time=poll_time,
                response_time_ms=0,
                broadcast_scheduled=False
            )

        self._record(result)
        return result

    def _record(self, result: PollResult) -> None:
        with self._stats_lock:
            self._poll_count += 1
            if result.success:
                self._success_count += 1
            else:
                self._failure_count += 1
            self._last_result = result

    def start(self) -> None:
        """Start polling: first cycle immediately, then every interval."""
        if self._is_running:
            logger.warning("Poller already running")
            return

        self.scheduler.add_job(
            self.poll_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=POLL_JOB_ID,
            name='Weather API Poll',
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc)
        )

        self.scheduler.start()
        self._is_running = True

        logger.info(f"Poller started: every {self.interval_seconds:g}s")

    def stop(self) -> None:
        """Stop the poller."""
        if not self._is_running:
            return
        self.scheduler.shutdown(wait=True)
        self._is_running = False
        self.fetcher.close()
        logger.info("Poller stopped")

    def trigger_immediate_poll(self) -> PollResult:
        """Run a poll cycle now, outside the schedule."""
        return self.poll_once()

    def get_last_result(self) -> Optional[PollResult]:
        return self._last_result

    def get_scheduler_status(self) -> dict:
        """Get scheduler status information."""
        job = self.scheduler.get_job(POLL_JOB_ID) if self._is_running else None

        with self._stats_lock:
            last = self._last_result
            return {
                "is_running": self._is_running,
                "poll_interval_seconds": self.interval_seconds,
                "next_poll": job.next_run_time.isoformat() if job and job.next_run_time else None,
                "poll_count": self._poll_count,
                "success_count": self._success_count,
                "failure_count": self._failure_count,
                "last_result": asdict(last) if last else None,
            }

    @property
    def is_running(self) -> bool:
        return self._is_running
