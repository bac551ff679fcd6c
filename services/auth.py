"""
Credential verification flow.

login() walks LOCK_CHECK -> ACCOUNT_LOOKUP -> EMAIL_VERIFIED_CHECK -> ROLE_CHECK
-> PASSWORD_CHECK and then either issues tokens or stops at a second-factor
challenge that verify_login_code() completes. Every stage can end the flow
with a typed failure from utils.errors; only a wrong password counts against
the login attempt tracker.
"""
import secrets

from sqlalchemy import and_, or_, update

from models import db
from models.one_time_code import PURPOSE_LOGIN
from models.user import User, normalize_email
from security import one_time_codes, totp
from security.bruteforce import check_lock, record_failure, reset_attempts
from security.password import verify_password
from security.password_policy import is_password_expired
from security.refresh_tokens import issue_refresh_token, revoke_all_tokens, revoke_token, verify_and_rotate
from security.tokens import create_access_token, create_challenge_token, decode_challenge_token
from services.common import LoginResult, commit_or_retry, deliver_code, find_user, require_text
from utils import clock
from utils.audit import log_activity, log_security_event
from utils.errors import (
    AuthorizationMismatch,
    InvalidCredentials,
    NotFoundFailure,
    RateLimited,
    TokenReuseDetected,
)


def _locked_message(minutes: int) -> str:
    return f"Too many login attempts. Please try again after {minutes} minutes."


def issue_session(context, user: User, action: str = "AUTH_LOGIN") -> LoginResult:
    access_token = create_access_token(user)
    refresh_token, _ = issue_refresh_token(user, context)
    expired = is_password_expired(user, clock.utcnow())
    log_activity(action, context=context.with_account(user), metadata={"credential_expired": expired})
    return LoginResult(
        user=user,
        access_token=access_token,
        refresh_token=refresh_token,
        password_expired=expired,
    )


def login(context, email: str, password: str, role: str) -> LoginResult:
    require_text("Email, password, and role are required", email, password, role)
    email = normalize_email(email)

    lock = check_lock(email)
    if lock.locked:
        # no hash work while locked
        log_security_event("AUTH_LOGIN_LOCKED", context=context, user_email=email, status="FAIL",
                           severity="WARN", metadata={"retry_after_minutes": lock.retry_after_minutes})
        raise RateLimited(_locked_message(lock.retry_after_minutes), retry_after_minutes=lock.retry_after_minutes)

    user = find_user(email)
    if user is None:
        raise NotFoundFailure("User does not exist")

    if not user.email_verified:
        raise AuthorizationMismatch("Please verify your email address before signing in.",
                                    code="EMAIL_NOT_VERIFIED")

    if user.role != role:
        raise AuthorizationMismatch(f"User is not registered as a {role}.", code="ROLE_MISMATCH")

    if not verify_password(password, user.password_hash):
        state = record_failure(email)
        if state.locked_now:
            log_security_event("AUTH_LOGIN_LOCKOUT", context=context, user_id=user.id, user_email=email,
                               status="FAIL", severity="CRITICAL",
                               metadata={"attempts": state.attempts,
                                         "retry_after_minutes": state.retry_after_minutes})
            raise RateLimited(_locked_message(state.retry_after_minutes),
                              retry_after_minutes=state.retry_after_minutes)
        log_security_event("AUTH_LOGIN_FAIL", context=context, user_id=user.id, user_email=email,
                           status="FAIL", severity="WARN",
                           metadata={"attempts": state.attempts, "reason": "Invalid credentials"})
        raise InvalidCredentials("Invalid user credentials")

    method = user.second_factor_method
    if method is None:
        reset_attempts(email)
        return issue_session(context, user)

    # a new challenge replaces any earlier one that was never completed
    challenge_id = secrets.token_urlsafe(24)
    user.mfa_challenge_id = challenge_id
    commit_or_retry()
    if method == "email":
        deliver_code(context, user, PURPOSE_LOGIN)

    log_security_event("AUTH_2FA_CHALLENGE", context=context.with_account(user), metadata={"method": method})
    return LoginResult(
        user=user,
        requires_verification=True,
        method=method,
        challenge_token=create_challenge_token(user, method, challenge_id),
    )


def _close_challenge(user: User, challenge_id, step=None) -> bool:
    """
    Clears the open challenge if it is still the one presented, and records
    the authenticator step if it is newer than the last accepted one. One
    conditional UPDATE, so two concurrent completions cannot both win.
    """
    if not challenge_id:
        return False
    conditions = [User.id == user.id, User.mfa_challenge_id == challenge_id]
    values = {"mfa_challenge_id": None}
    if step is not None:
        conditions.append(or_(User.totp_last_step.is_(None), User.totp_last_step < step))
        values["totp_last_step"] = step
    result = db.session.execute(
        update(User)
        .where(and_(*conditions))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def verify_login_code(context, email: str, code: str, challenge_token: str) -> LoginResult:
    """
    Second step of a login with 2FA. The challenge token proves the password
    step passed; it completes at most once, and an authenticator code is never
    accepted twice. A wrong code does not count against the attempt tracker.
    """
    require_text("Email, code, and challenge are required", email, code, challenge_token)
    email = normalize_email(email)

    claims = decode_challenge_token(challenge_token)
    user = find_user(email)
    if claims is None or user is None or claims.get("sub") != str(user.id) or not user.two_factor_enabled:
        raise InvalidCredentials("Invalid or expired verification code")

    now = clock.utcnow()
    method = user.second_factor_method
    row = step = None
    if method == "authenticator":
        step = totp.match_step(user.totp_secret, code)
        valid = step is not None
    else:
        row = one_time_codes.check_code(user, PURPOSE_LOGIN, code, now)
        valid = row is not None

    if valid:
        valid = _close_challenge(user, claims.get("jti"), step)
        if valid and row is not None:
            one_time_codes.consume_code(row, now)
        if valid:
            commit_or_retry()
        else:
            db.session.rollback()

    if not valid:
        log_security_event("AUTH_2FA_FAIL", context=context.with_account(user), status="FAIL",
                           severity="WARN", metadata={"method": method})
        raise InvalidCredentials("Invalid or expired verification code")

    reset_attempts(email)
    return issue_session(context, user, action="AUTH_LOGIN_2FA")


def refresh_session(context, raw_refresh_token: str) -> LoginResult:
    if not raw_refresh_token:
        raise InvalidCredentials("unauthorized request")
    try:
        rotated = verify_and_rotate(raw_refresh_token, context)
    except TokenReuseDetected as exc:
        log_security_event("AUTH_REFRESH_REUSE", context=context, user_id=exc.user_id, status="FAIL",
                           severity="CRITICAL", metadata={"revoked_sessions": exc.revoked})
        raise
    log_activity("AUTH_REFRESH", context=context.with_account(rotated.user))
    return LoginResult(
        user=rotated.user,
        access_token=rotated.access_token,
        refresh_token=rotated.refresh_token,
        password_expired=is_password_expired(rotated.user, clock.utcnow()),
    )


def logout(context, raw_refresh_token: str) -> bool:
    revoked = revoke_token(raw_refresh_token)
    log_activity("AUTH_LOGOUT", context=context, metadata={"revoked": revoked})
    return revoked


def logout_everywhere(context, user_id: int) -> int:
    count = revoke_all_tokens(user_id)
    log_activity("AUTH_LOGOUT_ALL", context=context, user_id=user_id, metadata={"revoked_sessions": count})
    return count


def flag_suspicious_activity(context, user_id: int) -> int:
    """Admin action: kill every session of an account."""
    if db.session.get(User, user_id) is None:
        raise NotFoundFailure("User not found")
    count = revoke_all_tokens(user_id)
    log_security_event("AUTH_SUSPICIOUS_FLAGGED", context=context, severity="CRITICAL",
                       entity="USER", entity_id=user_id, metadata={"revoked_sessions": count})
    return count
