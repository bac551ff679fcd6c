from models.db import db
from utils import clock

class LoginAttempt(db.Model):
    __tablename__ = "login_attempts"

    id = db.Column(db.Integer, primary_key=True)

    # one row per identifier; concurrent failures upsert on this unique key
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    attempts = db.Column(db.Integer, default=0, nullable=False)
    locked_until = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False, index=True)
