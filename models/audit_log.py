from models.db import db
from utils import clock

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)  # nullable for unauth events
    user_email = db.Column(db.String(255), nullable=True)
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. AUTH_LOGIN_FAIL
    status = db.Column(db.String(16), nullable=False, default="SUCCESS")    # SUCCESS | FAIL
    severity = db.Column(db.String(16), nullable=False, default="INFO")     # INFO | WARN | CRITICAL
    category = db.Column(db.String(16), nullable=False, default="ACTIVITY", index=True)  # SECURITY | ACTIVITY | SYSTEM
    entity = db.Column(db.String(80), nullable=True)   # e.g. USER
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    device = db.Column(db.String(64), nullable=True)
    request_id = db.Column(db.String(64), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=lambda: clock.utcnow(), nullable=False)
