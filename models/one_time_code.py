from models.db import db
from utils import clock

PURPOSE_EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
PURPOSE_LOGIN = "LOGIN"
PURPOSE_PASSWORD_RESET = "PASSWORD_RESET"

PURPOSES = (PURPOSE_EMAIL_VERIFICATION, PURPOSE_LOGIN, PURPOSE_PASSWORD_RESET)


class OneTimeCode(db.Model):
    __tablename__ = "one_time_codes"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    purpose = db.Column(db.String(32), nullable=False, default=PURPOSE_LOGIN)

    code_hash = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    consumed_at = db.Column(db.DateTime, nullable=True)

    attempts = db.Column(db.Integer, default=0, nullable=False)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
