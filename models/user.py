from models.db import db
from utils import clock

ROLE_STUDENT = "student"
ROLE_RECRUITER = "recruiter"
ROLE_ADMIN = "admin"

ROLES = (ROLE_STUDENT, ROLE_RECRUITER, ROLE_ADMIN)
SELF_SERVICE_ROLES = (ROLE_STUDENT, ROLE_RECRUITER)


def normalize_email(value) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    phone_number = db.Column(db.String(30), nullable=True)

    # one of ROLES; only used to pick which session a login produces
    role = db.Column(db.String(20), nullable=False, default=ROLE_STUDENT)

    email_verified = db.Column(db.Boolean, default=False, nullable=False)

    # second factor: totp_secret set -> authenticator app, otherwise email codes
    two_factor_enabled = db.Column(db.Boolean, default=False, nullable=False)
    totp_secret = db.Column(db.String(64), nullable=True)
    totp_pending_secret = db.Column(db.String(64), nullable=True)
    # last accepted authenticator time step; a code is never accepted twice
    totp_last_step = db.Column(db.BigInteger, nullable=True)
    # id of the one open 2FA challenge; cleared when the challenge is completed
    mfa_challenge_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    password_changed_at = db.Column(db.DateTime, nullable=True)
    password_expires_at = db.Column(db.DateTime, nullable=True)

    # most recent first; trimmed by security.password_history
    password_history = db.relationship(
        "PasswordHistory",
        back_populates="user",
        order_by="PasswordHistory.id.desc()",
        cascade="all, delete-orphan",
    )

    @property
    def second_factor_method(self):
        if not self.two_factor_enabled:
            return None
        return "authenticator" if self.totp_secret else "email"

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "role": self.role,
            "email_verified": self.email_verified,
            "two_factor_enabled": self.two_factor_enabled,
            "two_factor_method": self.second_factor_method,
            "password_expires_at": self.password_expires_at.isoformat() if self.password_expires_at else None,
        }
