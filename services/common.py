from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.one_time_code import PURPOSE_EMAIL_VERIFICATION, PURPOSE_LOGIN, PURPOSE_PASSWORD_RESET
from models.user import User, normalize_email
from security import one_time_codes
from utils import clock, email_templates, emailer
from utils.errors import TransientFailure, ValidationFailure


@dataclass
class LoginResult:
    """Outcome of a flow that may end in a session."""

    user: User
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    requires_verification: bool = False
    method: Optional[str] = None
    challenge_token: Optional[str] = None
    password_expired: bool = False

    @property
    def authenticated(self) -> bool:
        return self.access_token is not None

    def to_dict(self) -> dict:
        body = {
            "user": self.user.to_public_dict(),
            "requires_verification": self.requires_verification,
            "password_expired": self.password_expired,
        }
        if self.requires_verification:
            body["method"] = self.method
            body["challenge_token"] = self.challenge_token
        if self.authenticated:
            body["access_token"] = self.access_token
            body["refresh_token"] = self.refresh_token
        return body


def require_text(message: str, *values) -> None:
    """Every value must be a non-blank string; anything else is a malformed request."""
    if not all(isinstance(value, str) and value.strip() for value in values):
        raise ValidationFailure(message)


def find_user(email: str) -> Optional[User]:
    email = normalize_email(email)
    if not email:
        return None
    return User.query.filter_by(email=email).first()


def load_for_update(user_id: int) -> Optional[User]:
    """Fresh read of the account row before mutating security fields."""
    return User.query.filter_by(id=user_id).populate_existing().with_for_update().first()


def commit_or_retry(message: str = "Could not save changes, please retry") -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise TransientFailure(message) from exc


_TEMPLATES = {
    PURPOSE_EMAIL_VERIFICATION: lambda user, code, minutes: email_templates.verification_email(code, minutes),
    PURPOSE_LOGIN: lambda user, code, minutes: email_templates.login_code_email(code, minutes),
    PURPOSE_PASSWORD_RESET: lambda user, code, minutes: email_templates.password_reset_email(user.email, code, minutes),
}


def deliver_code(context, user: User, purpose: str) -> None:
    """
    Issues a one-time code and emails it. If delivery fails the code is
    discarded again so the account is not left with an undeliverable code.
    """
    code = one_time_codes.issue_code(user, purpose, clock.utcnow(), context)
    commit_or_retry()

    subject, body, html = _TEMPLATES[purpose](user, code, one_time_codes.ttl_minutes(purpose))
    sent, error = emailer.send_email(user.email, subject, body, html=html)
    if not sent:
        one_time_codes.discard_codes(user, purpose)
        commit_or_retry()
        raise TransientFailure(f"Could not send email: {error or 'delivery failed'}")
