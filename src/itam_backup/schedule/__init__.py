"""Backup schedules: models, stores and the periodic manager.

Usage:
    from itam_backup.schedule import ScheduleManager, ScheduleSpec, FileScheduleStore
"""

from itam_backup.schedule.manager import ScheduleManager
from itam_backup.schedule.models import Schedule, ScheduleRun, ScheduleSpec, next_run_after
from itam_backup.schedule.store import FileScheduleStore, InMemoryScheduleStore, ScheduleStore

__all__ = [
    "FileScheduleStore",
    "InMemoryScheduleStore",
    "Schedule",
    "ScheduleManager",
    "ScheduleRun",
    "ScheduleSpec",
    "ScheduleStore",
    "next_run_after",
]
