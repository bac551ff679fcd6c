from models.db import db
from utils import clock

class RefreshToken(db.Model):
    __tablename__ = "refresh_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # store only hashed token in DB (never store raw token)
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    # revoked_at set -> never authorizes a refresh again
    revoked_at = db.Column(db.DateTime, nullable=True)
    # audit trail: hash of the token that replaced this one on rotation
    replaced_by_hash = db.Column(db.String(128), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    @property
    def state(self) -> str:
        if self.revoked_at is not None:
            return "ROTATED" if self.replaced_by_hash else "REVOKED"
        if self.expires_at <= clock.utcnow():
            return "EXPIRED"
        return "ACTIVE"
