import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import delete

from models import db
from models.one_time_code import PURPOSES, OneTimeCode


def _hash_code(user_id: int, purpose: str, code: str) -> str:
    key = current_app.config["SECRET_KEY"].encode("utf-8")
    message = f"{user_id}:{purpose}:{code}".encode("utf-8")
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def ttl_minutes(purpose: str) -> int:
    ttls = current_app.config.get("OTP_TTL_SECONDS", {})
    return int(ttls.get(purpose, 300)) // 60


def generate_code(length: int = None) -> str:
    length = length or int(current_app.config.get("OTP_LENGTH", 6))
    return "".join(secrets.choice("0123456789") for _ in range(length))


def issue_code(user, purpose: str, now: datetime, context=None) -> str:
    """
    Replaces any earlier code for (user, purpose) and returns the new raw code.
    Only its HMAC is stored. The caller commits.
    """
    if purpose not in PURPOSES:
        raise ValueError(f"Unknown one-time code purpose: {purpose}")

    discard_codes(user, purpose)
    code = generate_code()
    ttls = current_app.config.get("OTP_TTL_SECONDS", {})
    db.session.add(OneTimeCode(
        user_id=user.id,
        purpose=purpose,
        code_hash=_hash_code(user.id, purpose, code),
        created_at=now,
        expires_at=now + timedelta(seconds=int(ttls.get(purpose, 300))),
        ip=context.ip if context else None,
        user_agent=context.user_agent if context else None,
    ))
    return code


def discard_codes(user, purpose: str) -> None:
    db.session.execute(
        delete(OneTimeCode)
        .where(OneTimeCode.user_id == user.id, OneTimeCode.purpose == purpose)
        .execution_options(synchronize_session=False)
    )


def _live_code(user, purpose: str, now: datetime) -> Optional[OneTimeCode]:
    return (
        OneTimeCode.query
        .filter(OneTimeCode.user_id == user.id,
                OneTimeCode.purpose == purpose,
                OneTimeCode.consumed_at.is_(None),
                OneTimeCode.expires_at > now)
        .order_by(OneTimeCode.id.desc())
        .first()
    )


def check_code(user, purpose: str, code: str, now: datetime) -> Optional[OneTimeCode]:
    """
    Returns the matching live code row, or None. A wrong guess counts against
    the code; once OTP_MAX_ATTEMPTS wrong guesses pile up the code is dead.
    Does not consume; the caller decides when the code has been used.
    """
    row = _live_code(user, purpose, now)
    if row is None:
        return None

    max_attempts = int(current_app.config.get("OTP_MAX_ATTEMPTS", 5))
    if row.attempts >= max_attempts:
        return None

    if not isinstance(code, str):
        return None
    expected = _hash_code(user.id, purpose, code.strip())
    if not hmac.compare_digest(row.code_hash, expected):
        row.attempts += 1
        db.session.commit()
        return None
    return row


def consume_code(row: OneTimeCode, now: datetime) -> None:
    row.consumed_at = now


def sweep_expired_codes(now: datetime) -> int:
    result = db.session.execute(
        delete(OneTimeCode)
        .where((OneTimeCode.expires_at <= now) | OneTimeCode.consumed_at.isnot(None))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount
