from models.db import db
from utils import clock

class PasswordHistory(db.Model):
    __tablename__ = "password_history"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # hash that was once the live credential
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)

    user = db.relationship("User", back_populates="password_history")
