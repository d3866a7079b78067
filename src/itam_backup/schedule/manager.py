"""Schedule manager: periodic sweep that triggers due backups.

Per-schedule state machine::

    Idle --(next_run_at reached)--> Due --(single-flight)--> Running
    Running --(success: next_run_at advanced)--> Idle
    Running --(failure: next_run_at unchanged)--> Due

A failed run leaves ``next_run_at`` untouched so the next sweep retries
the same window -- scheduled backups are at-least-once, never skipped.
Different schedules run concurrently; one schedule never overlaps itself.

Usage:
    manager = ScheduleManager(store, run_backup=service.run_scheduled_backup)
    await manager.create_schedule(ScheduleSpec(frequency="daily", time_of_day="02:00"))
    await manager.run_forever(poll_interval=60)
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from itam_backup.errors import (
    ScheduleConcurrencyConflict,
    ScheduleNotDue,
    ScheduleNotFoundError,
)
from itam_backup.schedule.models import (
    Schedule,
    ScheduleRun,
    ScheduleSpec,
    first_run_at,
    next_run_after,
)
from itam_backup.schedule.store import ScheduleStore

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 60.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleManager:
    """Holds named schedules and runs them when due.

    Args:
        store: Schedule persistence.
        run_backup: Coroutine function performing one scheduled backup
            (snapshot, store, deliver).  Raising marks the run failed.
        timezone_name: IANA zone in which ``time_of_day`` is interpreted.
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        store: ScheduleStore,
        run_backup: Callable[[Schedule], Awaitable[object]],
        timezone_name: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._run_backup = run_backup
        self._tz = ZoneInfo(timezone_name)
        self._clock = clock
        self._running: set[str] = set()
        self._stop = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    async def create_schedule(self, spec: ScheduleSpec) -> Schedule:
        next_run_at = first_run_at(spec.time_of_day, self._clock(), self._tz)
        schedule = await self._store.create(spec, next_run_at)
        logger.info(
            f"Created {schedule.frequency} schedule {schedule.id} at {schedule.time_of_day}, "
            f"first run {schedule.next_run_at.isoformat()}"
        )
        return schedule

    async def list_schedules(self) -> list[Schedule]:
        return await self._store.list()

    async def delete_schedule(self, schedule_id: str) -> None:
        await self._store.delete(schedule_id)
        logger.info(f"Deleted schedule {schedule_id}")

    async def set_enabled(self, schedule_id: str, enabled: bool) -> Schedule:
        return await self._store.set_enabled(schedule_id, enabled)

    def is_running(self, schedule_id: str) -> bool:
        return schedule_id in self._running

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def _check_due(self, schedule: Schedule, now: datetime) -> None:
        if not schedule.enabled or schedule.next_run_at > now:
            raise ScheduleNotDue(schedule.id)

    async def tick(self, now: datetime | None = None) -> list[ScheduleRun]:
        """Run every enabled schedule whose ``next_run_at`` has been reached.

        Returns:
            One ``ScheduleRun`` per due schedule.  Never raises for a failed
            backup; failures are reported in the returned list.
        """
        now = now or self._clock()
        due: list[Schedule] = []
        for schedule in await self._store.list():
            try:
                self._check_due(schedule, now)
            except ScheduleNotDue:
                continue
            due.append(schedule)

        if not due:
            return []
        return list(await asyncio.gather(*(self._run_one(s, now) for s in due)))

    async def _run_one(self, schedule: Schedule, now: datetime) -> ScheduleRun:
        try:
            self._acquire(schedule.id)
        except ScheduleConcurrencyConflict:
            logger.debug(f"Schedule {schedule.id} already running, skipping")
            return ScheduleRun(schedule_id=schedule.id, status="busy")

        try:
            logger.info(f"Running scheduled backup {schedule.id} ({schedule.frequency})")
            try:
                await self._run_backup(schedule)
            except Exception as e:
                logger.error(
                    f"Scheduled backup {schedule.id} failed, will retry next sweep: {e!r}"
                )
                return ScheduleRun(
                    schedule_id=schedule.id,
                    status="failed",
                    error=str(e) or type(e).__name__,
                    next_run_at=schedule.next_run_at,
                )

            next_run_at = next_run_after(schedule, now, self._tz)
            try:
                await self._store.update_run(
                    schedule.id,
                    expected_next_run_at=schedule.next_run_at,
                    last_run_at=now,
                    next_run_at=next_run_at,
                )
            except (ScheduleNotFoundError, ScheduleConcurrencyConflict) as e:
                # Operator deleted or edited the schedule mid-run; their change wins.
                logger.info(f"Schedule {schedule.id} not advanced: {e}")

            logger.info(f"Scheduled backup {schedule.id} done, next run {next_run_at.isoformat()}")
            return ScheduleRun(
                schedule_id=schedule.id, status="succeeded", next_run_at=next_run_at
            )
        finally:
            self._running.discard(schedule.id)

    def _acquire(self, schedule_id: str) -> None:
        if schedule_id in self._running:
            raise ScheduleConcurrencyConflict(schedule_id)
        self._running.add(schedule_id)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _guarded_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Schedule sweep failed")

    async def run_forever(self, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Sweep every ``poll_interval`` seconds until ``stop()`` is called.

        Each sweep runs as its own task so a slow backup does not delay
        other schedules; the single-flight guard prevents overlap.
        """
        self._stop.clear()
        logger.info(f"Scheduler started (poll interval {poll_interval}s, tz {self._tz.key})")
        while not self._stop.is_set():
            task = asyncio.create_task(self._guarded_tick())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()
