from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from trivia_progression.db_constants import DEFAULT_AUTO_SAVE_MINUTES
from trivia_progression.errors import WriteFailure
from trivia_progression.models import SaveStatus, SchedulerState
from trivia_progression.snapshot import SaveSnapshot, decode_snapshot, encode_snapshot
from trivia_progression.storage import SnapshotStore
from trivia_progression.time_utils import ensure_aware, now_utc

logger = logging.getLogger(__name__)

SnapshotSource = Callable[[datetime], SaveSnapshot]


class PersistenceScheduler:
    """Serializes snapshot writes for one engine.

    At most one write is in flight. `force_save` calls that arrive during a
    write share a single queued follow-up write, which captures whatever state
    the engine holds when it starts. Scheduled saves never queue; they are
    skipped while anything else is running.
    """

    def __init__(
        self,
        store: SnapshotStore,
        source: SnapshotSource,
        interval: timedelta = timedelta(minutes=DEFAULT_AUTO_SAVE_MINUTES),
        enabled: bool = True,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._store = store
        self._source = source
        self._interval = interval
        self._enabled = enabled
        self._clock = clock

        self._state = SchedulerState.IDLE
        self._clearing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._queued: asyncio.Future[datetime | None] | None = None
        self._save_task: asyncio.Task[None] | None = None
        self._loop_task: asyncio.Task[None] | None = None

        self._last_saved: datetime | None = None
        self._last_stamp: datetime | None = None
        self._next_save: datetime | None = None
        self._consecutive_failures = 0
        self._retry_pending = False

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def retry_pending(self) -> bool:
        return self._retry_pending

    def _set_state(self, state: SchedulerState) -> None:
        self._state = state
        self._refresh_idle()

    def _refresh_idle(self) -> None:
        if self._state is SchedulerState.IDLE and not self._clearing:
            self._idle.set()
        else:
            self._idle.clear()

    async def _wait_idle(self) -> None:
        while not self._idle.is_set():
            await self._idle.wait()

    def _save_timestamp(self) -> datetime:
        stamp = ensure_aware(self._clock())
        if self._last_stamp is not None and stamp <= self._last_stamp:
            stamp = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = stamp
        return stamp

    async def _write_snapshot(self) -> datetime | None:
        saved_at = self._save_timestamp()
        payload = encode_snapshot(self._source(saved_at))
        try:
            await asyncio.to_thread(self._store.write_snapshot, payload)
        except WriteFailure as exc:
            self._consecutive_failures += 1
            self._retry_pending = True
            if self._consecutive_failures > 1:
                logger.error("Snapshot write failed %d times in a row: %s", self._consecutive_failures, exc)
                raise
            logger.warning("Snapshot write failed, retrying on next scheduled save: %s", exc)
            return None

        self._consecutive_failures = 0
        self._retry_pending = False
        self._last_saved = saved_at
        logger.info("Snapshot saved at %s", saved_at.isoformat())
        return saved_at

    async def _run_save(self, waiter: asyncio.Future[datetime | None]) -> None:
        try:
            result = await self._write_snapshot()
        except asyncio.CancelledError:
            waiter.cancel()
            raise
        except Exception as exc:
            if not waiter.done():
                waiter.set_exception(exc)
        else:
            if not waiter.done():
                waiter.set_result(result)
        finally:
            self._finish_save()

    def _finish_save(self) -> None:
        queued, self._queued = self._queued, None
        if queued is not None:
            # State stays SAVE_IN_FLIGHT; the follow-up write starts immediately.
            self._save_task = asyncio.create_task(self._run_save(queued))
        else:
            self._save_task = None
            self._set_state(SchedulerState.IDLE)

    async def force_save(self) -> datetime | None:
        """Write a snapshot now, or join the write queued behind the current one.

        Returns the save timestamp, or None when the write failed once and a
        retry is scheduled. Raises `WriteFailure` on a repeated failure.
        """
        while True:
            if self._state is SchedulerState.SAVE_IN_FLIGHT:
                if self._queued is None:
                    self._queued = asyncio.get_running_loop().create_future()
                return await asyncio.shield(self._queued)
            if self._idle.is_set():
                break
            await self._idle.wait()

        waiter: asyncio.Future[datetime | None] = asyncio.get_running_loop().create_future()
        self._set_state(SchedulerState.SAVE_IN_FLIGHT)
        self._save_task = asyncio.create_task(self._run_save(waiter))
        return await asyncio.shield(waiter)

    async def run_scheduled_save(self) -> datetime | None:
        if not self._idle.is_set():
            logger.debug("Scheduled save skipped: %s", self._state.value)
            return None
        if not (self._enabled or self._retry_pending):
            return None
        try:
            return await self.force_save()
        except WriteFailure as exc:
            logger.error("Scheduled save failed: %s", exc)
            return None

    async def _loop(self) -> None:
        while True:
            self._next_save = self._clock() + self._interval
            await asyncio.sleep(self._interval.total_seconds())
            try:
                await self.run_scheduled_save()
            except Exception:
                logger.exception("Scheduled save crashed, auto-save continues")

    def start(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        self._next_save = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._wait_idle()

    def set_enabled(self, enabled: bool) -> None:
        if enabled != self._enabled:
            logger.info("Auto-save %s", "enabled" if enabled else "disabled")
        self._enabled = enabled

    async def load(self) -> SaveSnapshot | None:
        await self._wait_idle()
        self._set_state(SchedulerState.LOAD_IN_FLIGHT)
        try:
            payload = await asyncio.to_thread(self._store.read_snapshot)
            if payload is None:
                return None
            snapshot = decode_snapshot(payload)
        finally:
            self._set_state(SchedulerState.IDLE)

        self._last_saved = snapshot.saved_at
        if self._last_stamp is None or snapshot.saved_at > self._last_stamp:
            self._last_stamp = snapshot.saved_at
        return snapshot

    async def clear(self, reset: Callable[[], None]) -> None:
        await self._wait_idle()
        self._clearing = True
        self._refresh_idle()
        try:
            await asyncio.to_thread(self._store.delete_snapshot)
            reset()
            self._last_saved = None
            self._consecutive_failures = 0
            self._retry_pending = False
            logger.info("Snapshot cleared")
        finally:
            self._clearing = False
            self._refresh_idle()

    def status(self) -> SaveStatus:
        next_save = self._next_save if (self._enabled or self._retry_pending) else None
        return SaveStatus(
            enabled=self._enabled,
            last_saved=self._last_saved,
            next_save=next_save,
            state=self._state,
        )
