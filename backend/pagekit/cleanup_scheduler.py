"""
Recurring sweep that deletes expired asset sessions.

Runs as a background asyncio task on a cron schedule (UTC). A sweep that is
triggered while another is still running is skipped, never queued. Locked
sessions are left alone by the store's delete and counted as skips.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from croniter import croniter

from pagekit.session_store import AssetSessionStore

SCHEDULES = {
    "EVERY_15_MIN": "*/15 * * * *",
    "EVERY_30_MIN": "*/30 * * * *",
    "EVERY_HOUR": "0 * * * *",
    "EVERY_6_HOURS": "0 */6 * * *",
    "EVERY_12_HOURS": "0 */12 * * *",
    "TWICE_DAILY": "0 0,12 * * *",
    "DAILY_MIDNIGHT": "0 0 * * *",
    "DAILY_2AM": "0 2 * * *",
}

SHUTDOWN_POLL_S = 0.5


@dataclass
class CleanupReport:
    started_at: str
    duration: float = 0.0
    checked: int = 0
    deleted: int = 0
    skipped_locked: int = 0
    locks_pruned: int = 0
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at,
            "duration": self.duration,
            "checked": self.checked,
            "deleted": self.deleted,
            "skipped_locked": self.skipped_locked,
            "locks_pruned": self.locks_pruned,
            "errors": self.errors,
        }


def _validate_schedule(schedule: str) -> str:
    schedule = SCHEDULES.get(schedule, schedule)
    if not croniter.is_valid(schedule):
        raise ValueError(f"Invalid cron expression: {schedule!r}")
    return schedule


class CleanupScheduler:
    def __init__(self, store: AssetSessionStore, schedule: str = SCHEDULES["EVERY_HOUR"],
                 enabled: bool = True, run_on_start: bool = False, shutdown_timeout: float = 30.0):
        self.store = store
        self.schedule = _validate_schedule(schedule)
        self.enabled = enabled
        self.run_on_start = run_on_start
        self.shutdown_timeout = shutdown_timeout
        self._task: asyncio.Task | None = None
        self._running = False
        self.stats = {
            "total_runs": 0,
            "total_sessions_deleted": 0,
            "total_skipped_locked": 0,
            "total_errors": 0,
            "skipped_runs": 0,
            "last_run_at": None,
            "last_run_duration": None,
            "last_error": None,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_run_at(self, now: datetime | None = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        return croniter(self.schedule, now).get_next(datetime)

    def start(self):
        if not self.enabled:
            print("  [cleanup] Scheduler disabled")
            return
        if self.is_scheduled:
            return
        self._task = asyncio.create_task(self._loop())
        print(f"  [cleanup] Scheduled '{self.schedule}' (UTC), next run {self.next_run_at().isoformat()}")

    async def _loop(self):
        if self.run_on_start:
            await self.run_cleanup()
        while True:
            now = datetime.now(timezone.utc)
            delay = (self.next_run_at(now) - now).total_seconds()
            await asyncio.sleep(max(delay, 0))
            await self.run_cleanup()

    async def run_cleanup(self) -> CleanupReport | None:
        """One sweep. Returns None when another sweep is already in progress."""
        if self._running:
            self.stats["skipped_runs"] += 1
            print("  [cleanup] Previous run still in progress, skipping")
            return None
        self._running = True

        started = time.monotonic()
        report = CleanupReport(started_at=datetime.now(timezone.utc).isoformat())
        try:
            expired = await self.store.get_expired_sessions()
            report.checked = len(expired)
            for session_id in expired:
                try:
                    # The listing is a snapshot; expiry is re-checked under the file lock
                    if await self.store.delete_session(session_id, expired_only=True):
                        report.deleted += 1
                    else:
                        report.skipped_locked += 1
                except Exception as e:
                    print(f"  [cleanup] Failed to delete {session_id[:8]}: {e}")
                    report.errors.append({"session_id": session_id, "error": str(e)})
            report.locks_pruned = await self.store.prune_lock_files()
        except Exception as e:
            print(f"  [cleanup] Sweep failed: {e}")
            report.errors.append({"session_id": None, "error": str(e)})
        finally:
            report.duration = round(time.monotonic() - started, 3)
            self.stats["total_runs"] += 1
            self.stats["total_sessions_deleted"] += report.deleted
            self.stats["total_skipped_locked"] += report.skipped_locked
            self.stats["total_errors"] += len(report.errors)
            self.stats["last_run_at"] = report.started_at
            self.stats["last_run_duration"] = report.duration
            if report.errors:
                self.stats["last_error"] = report.errors[-1]["error"]
            self._running = False

        print(f"  [cleanup] Checked {report.checked}, deleted {report.deleted}, "
              f"skipped {report.skipped_locked} locked, {len(report.errors)} errors ({report.duration}s)")
        return report

    async def trigger_manual_cleanup(self) -> dict:
        report = await self.run_cleanup()
        return {
            "skipped": report is None,
            "report": report.to_dict() if report else None,
            "stats": self.get_stats(),
        }

    def reschedule(self, schedule: str):
        self.schedule = _validate_schedule(schedule)
        if self.is_scheduled:
            self._task.cancel()
            self._task = None
            self.start()
        print(f"  [cleanup] Rescheduled to '{self.schedule}'")

    def get_stats(self) -> dict:
        return {
            **self.stats,
            "schedule": self.schedule,
            "enabled": self.enabled,
            "is_running": self._running,
            "next_run_at": self.next_run_at().isoformat() if self.is_scheduled else None,
        }

    async def shutdown(self):
        deadline = time.monotonic() + self.shutdown_timeout
        while self._running and time.monotonic() < deadline:
            await asyncio.sleep(SHUTDOWN_POLL_S)
        if self._running:
            print(f"  [cleanup] Run still in progress after {self.shutdown_timeout}s, cancelling")

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        print("  [cleanup] Scheduler stopped")
