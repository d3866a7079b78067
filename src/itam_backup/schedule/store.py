"""Schedule stores.

``ScheduleStore`` is the persistence capability the manager depends on.
Run-timestamp updates are compare-and-swap on ``next_run_at``: an update
whose expected value no longer matches (the operator edited or deleted
the schedule mid-run) is rejected instead of overwriting.

Two implementations:

- ``InMemoryScheduleStore``: process-local, for tests and embedding.
- ``FileScheduleStore``: a JSON file replaced atomically on every change,
  with each read-modify-write under an exclusive ``flock`` on a sidecar
  ``<file>.lock`` so the CLI and the scheduler process never lose updates.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import uuid
from collections.abc import AsyncIterator
from datetime import datetime
from pathlib import Path
from typing import Protocol

from itam_backup.errors import ScheduleConcurrencyConflict, ScheduleNotFoundError
from itam_backup.fileio import file_lock, write_atomic
from itam_backup.schedule.models import Schedule, ScheduleSpec


def new_schedule_id() -> str:
    return f"schedule_{uuid.uuid4().hex[:12]}"


class ScheduleStore(Protocol):
    """Create/list/update/delete capability for schedules."""

    async def create(self, spec: ScheduleSpec, next_run_at: datetime) -> Schedule:
        ...

    async def list(self) -> list[Schedule]:
        ...

    async def get(self, schedule_id: str) -> Schedule:
        """Raises ``ScheduleNotFoundError`` if absent."""
        ...

    async def update_run(
        self,
        schedule_id: str,
        expected_next_run_at: datetime,
        last_run_at: datetime,
        next_run_at: datetime,
    ) -> Schedule:
        """Compare-and-swap the run timestamps.

        Raises:
            ScheduleNotFoundError: The schedule was deleted.
            ScheduleConcurrencyConflict: ``next_run_at`` changed since read.
        """
        ...

    async def set_enabled(self, schedule_id: str, enabled: bool) -> Schedule:
        ...

    async def delete(self, schedule_id: str) -> None:
        """Raises ``ScheduleNotFoundError`` if absent."""
        ...


class InMemoryScheduleStore:
    """Dict-backed ``ScheduleStore`` guarded by an ``asyncio.Lock``."""

    def __init__(self) -> None:
        self._schedules: dict[str, Schedule] = {}
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, Schedule]:
        return self._schedules

    def _save(self, schedules: dict[str, Schedule]) -> None:
        self._schedules = schedules

    @contextlib.asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        async with self._lock:
            yield

    async def create(self, spec: ScheduleSpec, next_run_at: datetime) -> Schedule:
        schedule = Schedule(
            id=new_schedule_id(),
            next_run_at=next_run_at,
            **spec.model_dump(),
        )
        async with self._locked():
            schedules = dict(self._load())
            schedules[schedule.id] = schedule
            self._save(schedules)
        return schedule

    async def list(self) -> list[Schedule]:
        async with self._locked():
            return sorted(self._load().values(), key=lambda s: s.next_run_at)

    async def get(self, schedule_id: str) -> Schedule:
        async with self._locked():
            schedules = self._load()
        if schedule_id not in schedules:
            raise ScheduleNotFoundError(f"Schedule not found: {schedule_id}")
        return schedules[schedule_id]

    async def update_run(
        self,
        schedule_id: str,
        expected_next_run_at: datetime,
        last_run_at: datetime,
        next_run_at: datetime,
    ) -> Schedule:
        async with self._locked():
            schedules = dict(self._load())
            current = schedules.get(schedule_id)
            if current is None:
                raise ScheduleNotFoundError(f"Schedule not found: {schedule_id}")
            if current.next_run_at != expected_next_run_at:
                raise ScheduleConcurrencyConflict(
                    f"Schedule {schedule_id} changed while running"
                )
            updated = current.model_copy(
                update={"last_run_at": last_run_at, "next_run_at": next_run_at}
            )
            schedules[schedule_id] = updated
            self._save(schedules)
        return updated

    async def set_enabled(self, schedule_id: str, enabled: bool) -> Schedule:
        async with self._locked():
            schedules = dict(self._load())
            if schedule_id not in schedules:
                raise ScheduleNotFoundError(f"Schedule not found: {schedule_id}")
            updated = schedules[schedule_id].model_copy(update={"enabled": enabled})
            schedules[schedule_id] = updated
            self._save(schedules)
        return updated

    async def delete(self, schedule_id: str) -> None:
        async with self._locked():
            schedules = dict(self._load())
            if schedules.pop(schedule_id, None) is None:
                raise ScheduleNotFoundError(f"Schedule not found: {schedule_id}")
            self._save(schedules)


class FileScheduleStore(InMemoryScheduleStore):
    """``ScheduleStore`` persisted to a JSON file.

    The file is re-read on every operation so edits made by another
    process (e.g. the CLI while the scheduler runs) are picked up.

    Args:
        path: JSON file location.  Missing file means no schedules.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)

    @contextlib.asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        async with self._lock:
            with file_lock(self._path.with_name(f"{self._path.name}.lock")):
                yield

    def _load(self) -> dict[str, Schedule]:
        if not self._path.exists():
            return {}
        with open(self._path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return {
            s.id: s for s in (Schedule.model_validate(raw) for raw in data.get("schedules", []))
        }

    def _save(self, schedules: dict[str, Schedule]) -> None:
        payload = {
            "schedules": [
                s.model_dump(mode="json", by_alias=True) for s in schedules.values()
            ]
        }
        write_atomic(self._path, json.dumps(payload, indent=2))
