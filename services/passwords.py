"""
Password change and password reset.

Both run the same pipeline once the caller is proven (current password for a
change, a valid reset code for a reset): policy check, reuse check, outgoing
hash into history, new live hash, every refresh token revoked. The whole
pipeline lands in one commit or not at all.
"""
from models.one_time_code import PURPOSE_PASSWORD_RESET
from security import one_time_codes
from security.password import verify_password
from security.password_history import replace_password, was_recently_used
from security.password_policy import validate_password
from security.refresh_tokens import revoke_all_tokens
from services.auth import issue_session
from services.common import LoginResult, commit_or_retry, deliver_code, find_user, load_for_update, require_text
from utils import clock
from utils.audit import log_security_event
from utils.errors import InvalidCredentials, NotFoundFailure, PolicyViolation


def check_new_password(user, new_password: str) -> None:
    result = validate_password(new_password, account_name=user.full_name, email=user.email)
    if not result.valid:
        raise PolicyViolation("Password does not meet policy.", code="WEAK_PASSWORD", details=result.messages)
    if was_recently_used(user, new_password):
        raise PolicyViolation("You cannot reuse a recent password.", code="PASSWORD_REUSED", http_status=409)


def _store_new_password(user, new_password: str, now) -> int:
    replace_password(user, new_password, now)
    return revoke_all_tokens(user.id, commit=False)


def change_password(context, user_id: int, current_password: str, new_password: str) -> LoginResult:
    require_text("Current and new password are required", current_password, new_password)

    user = load_for_update(user_id)
    if user is None:
        raise NotFoundFailure("User not found")

    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentials("Invalid old password", http_status=400)

    check_new_password(user, new_password)
    revoked = _store_new_password(user, new_password, clock.utcnow())
    commit_or_retry()

    log_security_event("AUTH_PASSWORD_CHANGE", context=context.with_account(user),
                       entity="USER", entity_id=user.id, metadata={"revoked_sessions": revoked})
    # the caller keeps a fresh session; every other session is gone
    return issue_session(context, user, action="AUTH_PASSWORD_CHANGE_SESSION")


def forgot_password(context, email: str) -> None:
    require_text("Email is required", email)
    user = find_user(email)
    if user is None:
        raise NotFoundFailure("User not found")

    deliver_code(context, user, PURPOSE_PASSWORD_RESET)
    log_security_event("AUTH_PASSWORD_RESET_REQUEST", context=context.with_account(user))


def _reset_code_row(user, code: str):
    row = one_time_codes.check_code(user, PURPOSE_PASSWORD_RESET, code, clock.utcnow())
    if row is None:
        raise InvalidCredentials("Invalid or Expired OTP", http_status=400)
    return row


def verify_reset_code(context, email: str, code: str) -> None:
    """Checks a reset code without using it up."""
    require_text("Email and OTP are required", email, code)
    user = find_user(email)
    if user is None:
        raise InvalidCredentials("Invalid or Expired OTP", http_status=400)
    _reset_code_row(user, code)


def reset_password(context, email: str, code: str, new_password: str) -> None:
    """
    A rejected new password leaves the reset code usable for another try.
    """
    require_text("All fields are required", email, code, new_password)
    user = find_user(email)
    if user is None:
        raise InvalidCredentials("Invalid or Expired OTP", http_status=400)

    user = load_for_update(user.id)
    row = _reset_code_row(user, code)
    check_new_password(user, new_password)

    now = clock.utcnow()
    one_time_codes.consume_code(row, now)
    revoked = _store_new_password(user, new_password, now)
    commit_or_retry()

    log_security_event("AUTH_PASSWORD_RESET", context=context.with_account(user), severity="WARN",
                       entity="USER", entity_id=user.id, metadata={"revoked_sessions": revoked})
