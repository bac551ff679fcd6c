from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_, delete, update

from models import db
from models.db import upsert_insert
from models.ip_rate_limit import IpRateLimit
from utils import clock


def _open_window(ip: str, now: datetime) -> None:
    stmt = upsert_insert(IpRateLimit)
    if stmt is not None:
        db.session.execute(
            stmt.values(ip=ip, window_start=now, count=0, updated_at=now)
            .on_conflict_do_nothing(index_elements=[IpRateLimit.ip])
        )
    elif IpRateLimit.query.filter_by(ip=ip).first() is None:
        db.session.add(IpRateLimit(ip=ip, window_start=now, count=0, updated_at=now))
        db.session.flush()


def check_and_increment_login_rate(ip: str) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Fixed window per IP, kept in the database so every instance shares it.
    """
    now = clock.utcnow()

    window_seconds = current_app.config.get("LOGIN_RATE_WINDOW_SECONDS", 60)
    max_requests = current_app.config.get("LOGIN_RATE_MAX_REQUESTS", 30)
    window_floor = now - timedelta(seconds=window_seconds)

    _open_window(ip, now)

    # Reset window if expired
    db.session.execute(
        update(IpRateLimit)
        .where(and_(IpRateLimit.ip == ip, IpRateLimit.window_start <= window_floor))
        .values(window_start=now, count=0)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(
        update(IpRateLimit)
        .where(IpRateLimit.ip == ip)
        .values(count=IpRateLimit.count + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    row = IpRateLimit.query.filter_by(ip=ip).populate_existing().first()
    if row.count > max_requests:
        window_end = row.window_start + timedelta(seconds=window_seconds)
        retry_after = int((window_end - now).total_seconds())
        return False, max(retry_after, 1)

    return True, 0


def sweep_stale_windows(now: datetime) -> int:
    window_seconds = current_app.config.get("LOGIN_RATE_WINDOW_SECONDS", 60)
    result = db.session.execute(
        delete(IpRateLimit)
        .where(IpRateLimit.window_start <= now - timedelta(seconds=window_seconds))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount
