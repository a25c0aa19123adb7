"""Failed-attempt counters for the login endpoints.

Counters live in ``auth_throttle`` so a restart does not reset them. The
wait imposed after a failure follows ``settings.auth_throttle_steps``: a
list of ``(failures, seconds)`` pairs where the highest step reached wins.
"""

import time

from sqlalchemy import text
from sqlalchemy.orm import Session

from admission.config import settings
from admission.models.hr_user import AuthThrottle


def delay_for(failed_attempts: int, steps: list[tuple[int, float]] | None = None) -> float:
    """Full wait, in seconds, owed after ``failed_attempts`` consecutive failures."""
    delay = 0.0
    for threshold, seconds in sorted(steps if steps is not None else settings.auth_throttle_steps):
        if failed_attempts >= threshold:
            delay = float(seconds)
    return delay


def get_throttle_delay(db: Session, key: str) -> float:
    """Seconds the caller must still wait before another attempt under ``key``."""
    entry = db.get(AuthThrottle, key)
    if entry is None:
        return 0
    delay = delay_for(entry.failed_attempts)
    if not delay:
        return 0
    return max(0, delay - (time.time() - entry.last_failed_at))


def _upsert(db: Session, key: str, increment: bool):
    # One statement so concurrent failures for the same key cannot lose a count.
    failures = "auth_throttle.failed_attempts + 1" if increment else "0"
    db.execute(
        text(
            f"""
            INSERT INTO auth_throttle (key, failed_attempts, last_failed_at)
            VALUES (:key, :initial, :now)
            ON CONFLICT(key) DO UPDATE SET
                failed_attempts = {failures},
                last_failed_at = :now
            """
        ),
        {"key": key, "initial": 1 if increment else 0, "now": time.time()},
    )
    db.commit()


def record_failed_attempt(db: Session, key: str):
    _upsert(db, key, increment=True)


def reset_failed_attempts(db: Session, key: str):
    _upsert(db, key, increment=False)
