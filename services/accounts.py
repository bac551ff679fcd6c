from typing import Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db
from models.one_time_code import PURPOSE_EMAIL_VERIFICATION
from models.user import SELF_SERVICE_ROLES, User, normalize_email
from security import one_time_codes, totp
from security.password import verify_password
from security.password_history import replace_password
from security.password_policy import validate_password
from services.common import commit_or_retry, deliver_code, find_user, load_for_update, require_text
from utils import clock
from utils.audit import log_activity, log_security_event
from utils.errors import (
    InvalidCredentials,
    NotFoundFailure,
    PolicyViolation,
    TransientFailure,
    ValidationFailure,
)


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def register(context, full_name: str, email: str, password: str, role: str,
             phone_number: Optional[str] = None) -> Tuple[User, bool]:
    """
    Creates an unverified account and emails a verification code.
    Returns (user, verification_sent); a failed email does not undo the account.
    """
    require_text("All fields are required", full_name, email, password, role)
    if phone_number is not None and not isinstance(phone_number, str):
        raise ValidationFailure("Invalid phone number")
    full_name = full_name.strip()
    email = normalize_email(email)
    if not _is_valid_email(email):
        raise ValidationFailure("Invalid email")
    if len(full_name) > 120:
        raise ValidationFailure("Invalid full name")
    if role not in SELF_SERVICE_ROLES:
        raise ValidationFailure(f"Role must be one of: {', '.join(SELF_SERVICE_ROLES)}")

    result = validate_password(password, account_name=full_name, email=email)
    if not result.valid:
        raise PolicyViolation("Password does not meet policy.", code="WEAK_PASSWORD", details=result.messages)

    if find_user(email) is not None:
        log_activity("AUTH_REGISTER_FAIL", context=context, status="FAIL", severity="WARN",
                     metadata={"email": email, "reason": "exists"})
        raise ValidationFailure("User with this email already exists", code="EMAIL_TAKEN", http_status=409)

    user = User(
        email=email,
        full_name=full_name,
        phone_number=(phone_number or "").strip() or None,
        role=role,
    )
    replace_password(user, password, clock.utcnow())
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with a concurrent registration for the same email
        db.session.rollback()
        raise ValidationFailure("User with this email already exists", code="EMAIL_TAKEN", http_status=409)

    log_activity("AUTH_REGISTER", context=context.with_account(user), entity="USER", entity_id=user.id)

    try:
        deliver_code(context, user, PURPOSE_EMAIL_VERIFICATION)
    except TransientFailure as exc:
        current_app.logger.warning("Verification email for %s not sent: %s", email, exc.message)
        return user, False
    return user, True


def verify_email(context, email: str, code: str) -> User:
    require_text("Email and OTP are required", email, code)
    user = find_user(email)
    if user is None:
        raise NotFoundFailure("User not found")
    if user.email_verified:
        return user

    now = clock.utcnow()
    row = one_time_codes.check_code(user, PURPOSE_EMAIL_VERIFICATION, code, now)
    if row is None:
        raise InvalidCredentials("Invalid or Expired OTP", http_status=400)

    one_time_codes.consume_code(row, now)
    user.email_verified = True
    commit_or_retry()
    log_activity("AUTH_EMAIL_VERIFIED", context=context.with_account(user), entity="USER", entity_id=user.id)
    return user


def resend_verification(context, email: str) -> None:
    require_text("Email is required", email)
    user = find_user(email)
    if user is None:
        raise NotFoundFailure("User not found")
    if user.email_verified:
        raise ValidationFailure("Email is already verified")
    deliver_code(context, user, PURPOSE_EMAIL_VERIFICATION)


def _require_user(user_id: int) -> User:
    user = load_for_update(user_id)
    if user is None:
        raise NotFoundFailure("User not found")
    return user


def set_email_two_factor(context, user_id: int, enabled: bool) -> User:
    """Email-code 2FA on or off. Turning it off also drops any authenticator secret."""
    user = _require_user(user_id)
    user.two_factor_enabled = bool(enabled)
    if not enabled:
        user.totp_secret = None
        user.totp_pending_secret = None
    commit_or_retry()
    log_security_event("AUTH_2FA_TOGGLE", context=context.with_account(user),
                       metadata={"enabled": user.two_factor_enabled, "method": user.second_factor_method})
    return user


def begin_authenticator_setup(context, user_id: int) -> Tuple[str, str]:
    user = _require_user(user_id)
    secret = totp.generate_secret()
    user.totp_pending_secret = secret
    commit_or_retry()
    issuer = current_app.config.get("TOTP_ISSUER", "Jobiyo")
    return secret, totp.provisioning_uri(secret, user.email, issuer)


def confirm_authenticator_setup(context, user_id: int, code: str) -> User:
    require_text("Authenticator code is required", code)
    user = _require_user(user_id)
    if not user.totp_pending_secret:
        raise ValidationFailure("Start authenticator setup first")
    if not totp.verify_code(user.totp_pending_secret, code):
        raise InvalidCredentials("Invalid authenticator code", http_status=400)

    user.totp_secret = user.totp_pending_secret
    user.totp_pending_secret = None
    user.two_factor_enabled = True
    commit_or_retry()
    log_security_event("AUTH_2FA_AUTHENTICATOR_ENABLED", context=context.with_account(user))
    return user


def disable_two_factor(context, user_id: int, password: str) -> User:
    require_text("Password is required", password)
    user = _require_user(user_id)
    if not verify_password(password, user.password_hash):
        raise InvalidCredentials("Invalid password", http_status=400)

    user.two_factor_enabled = False
    user.totp_secret = None
    user.totp_pending_secret = None
    commit_or_retry()
    log_security_event("AUTH_2FA_DISABLED", context=context.with_account(user), severity="WARN")
    return user
