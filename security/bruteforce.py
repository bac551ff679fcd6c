import math
from collections import namedtuple
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_, delete, or_, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.db import upsert_insert
from models.login_attempt import LoginAttempt
from utils import clock

LockStatus = namedtuple("LockStatus", "locked retry_after_minutes")
AttemptState = namedtuple("AttemptState", "attempts locked locked_now locked_until retry_after_minutes")


def _max_attempts() -> int:
    return int(current_app.config.get("MAX_LOGIN_ATTEMPTS", 5))


def _lock_minutes() -> int:
    return int(current_app.config.get("LOCKOUT_MINUTES", 10))


def _idle_cutoff(now: datetime) -> datetime:
    return now - timedelta(seconds=int(current_app.config.get("LOGIN_ATTEMPT_IDLE_SECONDS", 1200)))


def _minutes_left(locked_until: datetime, now: datetime) -> int:
    return max(1, math.ceil((locked_until - now).total_seconds() / 60))


def _not_locked(now: datetime):
    return or_(LoginAttempt.locked_until.is_(None), LoginAttempt.locked_until <= now)


def check_lock(email: str) -> LockStatus:
    """
    Read-only. Locked iff a lockout expiry is set and still in the future.
    """
    now = clock.utcnow()
    row = LoginAttempt.query.filter_by(email=email).first()
    if not row or not row.locked_until or row.locked_until <= now:
        return LockStatus(False, 0)
    return LockStatus(True, _minutes_left(row.locked_until, now))


def _increment(email: str, now: datetime) -> None:
    stmt = upsert_insert(LoginAttempt)
    if stmt is not None:
        stmt = stmt.values(email=email, attempts=1, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[LoginAttempt.email],
            set_={"attempts": LoginAttempt.attempts + 1, "updated_at": now},
        )
        db.session.execute(stmt)
        return

    # no native upsert: insert, and on a duplicate key fall back to an in-place increment
    try:
        with db.session.begin_nested():
            db.session.add(LoginAttempt(email=email, attempts=1, created_at=now, updated_at=now))
    except IntegrityError:
        db.session.execute(
            update(LoginAttempt)
            .where(LoginAttempt.email == email)
            .values(attempts=LoginAttempt.attempts + 1, updated_at=now)
        )


def record_failure(email: str) -> AttemptState:
    """
    Counts one failed password check for email. The counter and the lockout
    stamp are both changed with single conditional statements, so concurrent
    failures are never lost and an active lockout is never extended.
    """
    now = clock.utcnow()

    # a record idle past the window (and not locked) starts over
    db.session.execute(
        update(LoginAttempt)
        .where(and_(LoginAttempt.email == email,
                    LoginAttempt.updated_at < _idle_cutoff(now),
                    _not_locked(now)))
        .values(attempts=0, locked_until=None)
        .execution_options(synchronize_session=False)
    )

    _increment(email, now)

    locked_until = now + timedelta(minutes=_lock_minutes())
    result = db.session.execute(
        update(LoginAttempt)
        .where(and_(LoginAttempt.email == email,
                    LoginAttempt.attempts >= _max_attempts(),
                    _not_locked(now)))
        .values(locked_until=locked_until)
        .execution_options(synchronize_session=False)
    )
    locked_now = result.rowcount == 1
    db.session.commit()

    row = LoginAttempt.query.filter_by(email=email).populate_existing().first()
    locked = bool(row.locked_until and row.locked_until > now)
    return AttemptState(
        attempts=row.attempts,
        locked=locked,
        locked_now=locked_now,
        locked_until=row.locked_until,
        retry_after_minutes=_minutes_left(row.locked_until, now) if locked else 0,
    )


def reset_attempts(email: str) -> None:
    """
    Forgets every failure for email. Only called after a complete login.
    """
    db.session.execute(
        delete(LoginAttempt)
        .where(LoginAttempt.email == email)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


def sweep_idle_attempts(now: datetime = None) -> int:
    now = now or clock.utcnow()
    result = db.session.execute(
        delete(LoginAttempt)
        .where(and_(LoginAttempt.updated_at < _idle_cutoff(now), _not_locked(now)))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount
