import hashlib
from collections import namedtuple
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_, delete, update
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.refresh_token import RefreshToken
from models.user import User
from security.tokens import create_access_token, create_refresh_jwt, decode_refresh_jwt
from utils import clock
from utils.errors import TokenInvalid, TokenNotFound, TokenReuseDetected, TransientFailure

RotationResult = namedtuple("RotationResult", "user access_token refresh_token record")


def hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random, high-entropy tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _ttl() -> timedelta:
    return timedelta(seconds=int(current_app.config.get("REFRESH_TOKEN_TTL_SECONDS", 7 * 24 * 3600)))


def _new_record(user_id: int, now: datetime, context=None):
    raw_token = create_refresh_jwt(user_id)
    row = RefreshToken(
        user_id=user_id,
        token_hash=hash_token(raw_token),
        created_at=now,
        expires_at=now + _ttl(),
        ip=context.ip if context else None,
        user_agent=context.user_agent if context else None,
    )
    db.session.add(row)
    return raw_token, row


def issue_refresh_token(user, context=None):
    """
    Creates a ledger record and returns (raw_token, record).
    Only the hash is stored; the raw token goes to the caller for the cookie.
    """
    raw_token, row = _new_record(user.id, clock.utcnow(), context)
    db.session.commit()
    return raw_token, row


def _revoke_family(user_id: int, now: datetime) -> int:
    result = db.session.execute(
        update(RefreshToken)
        .where(and_(RefreshToken.user_id == user_id,
                    RefreshToken.revoked_at.is_(None),
                    RefreshToken.expires_at > now))
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _find_by_hash(token_hash: str):
    return RefreshToken.query.filter_by(token_hash=token_hash).first()


def verify_and_rotate(raw_token: str, context=None) -> RotationResult:
    """
    Exchanges a refresh token for a new access/refresh pair.

    Presenting a revoked token is treated as theft: every live token of the
    owner is revoked and TokenReuseDetected is raised. Revoking the old record
    is conditional on it still being unrevoked, so two concurrent refreshes
    with one token cannot both succeed.
    """
    claims = decode_refresh_jwt(raw_token) if raw_token else None
    if not claims:
        raise TokenInvalid()

    now = clock.utcnow()
    token_hash = hash_token(raw_token)
    existing = _find_by_hash(token_hash)
    if existing is None or existing.expires_at <= now:
        raise TokenNotFound()

    if existing.revoked_at is not None:
        revoked = _revoke_family(existing.user_id, now)
        db.session.commit()
        current_app.logger.critical(
            "Refresh token reuse detected for user %s; %s sessions revoked", existing.user_id, revoked
        )
        raise TokenReuseDetected(existing.user_id, revoked)

    user = db.session.get(User, existing.user_id)
    if user is None or str(user.id) != claims.get("sub"):
        raise TokenNotFound()

    try:
        new_raw, new_row = _new_record(user.id, now, context)
        claimed = db.session.execute(
            update(RefreshToken)
            .where(and_(RefreshToken.id == existing.id, RefreshToken.revoked_at.is_(None)))
            .values(revoked_at=now, replaced_by_hash=new_row.token_hash)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            # another request rotated this token first
            db.session.rollback()
            raise TokenNotFound()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise TransientFailure("Could not refresh the session, please retry") from exc

    return RotationResult(user, create_access_token(user), new_raw, new_row)


def revoke_token(raw_token: str) -> bool:
    if not raw_token:
        return False
    now = clock.utcnow()
    result = db.session.execute(
        update(RefreshToken)
        .where(and_(RefreshToken.token_hash == hash_token(raw_token), RefreshToken.revoked_at.is_(None)))
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def revoke_all_tokens(user_id: int, commit: bool = True) -> int:
    count = _revoke_family(user_id, clock.utcnow())
    if commit:
        db.session.commit()
    return count


def active_sessions(user_id: int):
    now = clock.utcnow()
    return (
        RefreshToken.query
        .filter(RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now)
        .order_by(RefreshToken.created_at.desc())
        .all()
    )


def sweep_expired_tokens(now: datetime = None) -> int:
    now = now or clock.utcnow()
    result = db.session.execute(
        delete(RefreshToken)
        .where(RefreshToken.expires_at <= now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount
