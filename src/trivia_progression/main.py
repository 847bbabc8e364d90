from __future__ import annotations

import asyncio
import logging
import sys
from datetime import timedelta

from trivia_progression.config import Settings, load_settings
from trivia_progression.engine import ProgressionEngine
from trivia_progression.logging_setup import setup_logging
from trivia_progression.policy import load_policy
from trivia_progression.storage import build_store
from trivia_progression.time_utils import day_key_for, day_range_for, now_utc

logger = logging.getLogger(__name__)

USAGE = "Usage: trivia-progression <run|status|clear>"


def build_engine(settings: Settings) -> ProgressionEngine:
    store = build_store(settings.storage_backend, settings.database_path, settings.snapshot_path)
    return ProgressionEngine(
        store=store,
        policy=load_policy(settings.policy_config_path),
        tz=settings.tz,
        auto_save_interval=timedelta(minutes=settings.auto_save_minutes),
        auto_save_enabled=settings.auto_save_enabled,
    )


def seconds_until_next_tick(settings: Settings) -> float:
    now = now_utc()
    boundary = day_range_for(day_key_for(now, settings.tz), settings.tz).end
    until_boundary = max((boundary - now).total_seconds(), 0.0) + 1.0
    return min(float(settings.tick_seconds), until_boundary)


async def run_engine(settings: Settings) -> None:
    engine = build_engine(settings)
    await engine.start()
    try:
        while True:
            await asyncio.sleep(seconds_until_next_tick(settings))
            engine.on_tick()
    finally:
        await engine.stop(save=True)
        logger.info("Progression engine stopped")


async def show_status(settings: Settings) -> None:
    engine = build_engine(settings)
    loaded = await engine.load()
    stats = engine.get_stats()
    level = engine.get_level()
    rating = engine.get_rating()
    task_set = engine.get_task_set()
    save = engine.get_save_status()

    print(f"Snapshot: {'loaded' if loaded else 'none (fresh state)'}")
    print(f"Level {level.level} {level.title}: {stats.total_xp} XP, {level.remaining_to_next} to next")
    print(f"Streak: {stats.current_streak} (longest {stats.longest_streak})")
    print(f"Grace period: {'available' if stats.grace_period_available else 'used'}")
    print(f"Points: {stats.points_balance} (earned {stats.total_points})")
    print(f"Rating: {rating.rating} {engine.get_rating_category()} (peak {rating.peak_rating})")
    if task_set is not None:
        print(f"Tasks for {task_set.day_key}: {task_set.completed_count}/{len(task_set.tasks)}")
        for task in task_set.tasks:
            mark = "x" if task.completed else " "
            print(f"  [{mark}] {task.title}: {task.progress}/{task.target}")
    last = save.last_saved.isoformat() if save.last_saved else "never"
    print(f"Auto-save: {'on' if save.enabled else 'off'}, last saved {last}")


async def clear_progress(settings: Settings) -> None:
    engine = build_engine(settings)
    await engine.clear()
    print("Progress cleared")


COMMANDS = {
    "run": run_engine,
    "status": show_status,
    "clear": clear_progress,
}


def main() -> None:
    if len(sys.argv) != 2 or sys.argv[1] not in COMMANDS:
        raise SystemExit(USAGE)

    settings = load_settings()
    setup_logging(settings.log_level)
    try:
        asyncio.run(COMMANDS[sys.argv[1]](settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
