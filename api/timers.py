"""Per-game timer registry.

Holds at most one pending job per game so repeated requests (several players
joining, several clients ticking) never schedule the same follow-up twice.
The game id is the job id.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone

from apscheduler.jobstores.base import ConflictingIdError, JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger('api.timers')

_scheduler = None
_lock = threading.Lock()


def get_scheduler():
    global _scheduler
    with _lock:
        if _scheduler is None:
            _scheduler = BackgroundScheduler(daemon=True, timezone=timezone.utc)
            _scheduler.start()
        return _scheduler


def _run(game_id, fn, args):
    # Blocks until the scheduler has retired this job, so the slot is free
    get_scheduler().get_job(game_id)
    fn(*args)


def schedule(game_id, delay, fn, *args):
    run_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
    try:
        get_scheduler().add_job(_run, 'date', run_date=run_at, args=(game_id, fn, args),
                                id=game_id, misfire_grace_time=None)
    except ConflictingIdError:
        logger.info(f"Timer already pending for game {game_id}")
        return False
    return True


def clear(game_id):
    try:
        get_scheduler().remove_job(game_id)
    except JobLookupError:
        return False
    logger.info(f"Cleared timer for game {game_id}")
    return True


def has_active(game_id):
    return get_scheduler().get_job(game_id) is not None


def clear_all():
    get_scheduler().remove_all_jobs()
