import json
import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.audit_log import AuditLog

SENSITIVE_KEYS = ("password", "token", "authorization", "cookie", "otp", "code", "secret")

_LEVELS = {
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "CRITICAL": logging.CRITICAL,
}


def sanitize_metadata(data):
    if isinstance(data, dict):
        clean = {}
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                clean[key] = sanitize_metadata(value)
            elif any(s in str(key).lower() for s in SENSITIVE_KEYS):
                clean[key] = "***SANITIZED***"
            else:
                clean[key] = value
        return clean
    if isinstance(data, list):
        return [sanitize_metadata(item) for item in data]
    return data


def describe_device(user_agent):
    if not user_agent:
        return None
    if "Mobile" in user_agent:
        device = "Mobile"
    elif "Tablet" in user_agent:
        device = "Tablet"
    else:
        device = "Desktop"
    for marker, label in (("Windows", "Windows"), ("Mac", "Mac"), ("Android", "Android"),
                          ("iPhone", "iOS"), ("iPad", "iOS"), ("Linux", "Linux")):
        if marker in user_agent:
            return f"{device} ({label})"
    return device


def _write_row(row: AuditLog) -> None:
    db.session.add(row)
    db.session.commit()


def log_activity(action: str, context=None, user_id=None, user_email=None, status="SUCCESS",
                 severity="INFO", category="ACTIVITY", entity=None, entity_id=None, metadata=None):
    """
    Records an activity row and mirrors it on the app logger.
    Never raises: a broken sink must not interrupt the calling flow.
    """
    metadata = sanitize_metadata(metadata or {})
    ip = context.ip if context else None
    user_agent = context.user_agent if context else None
    request_id = context.correlation_id if context else None
    if user_id is None and context is not None:
        user_id = context.account_id
    if user_email is None and context is not None:
        user_email = context.identifier

    current_app.logger.log(
        _LEVELS.get(severity, logging.INFO),
        "%s %s user=%s ip=%s request_id=%s %s",
        action, status, user_id, ip, request_id, metadata or "",
    )

    try:
        _write_row(AuditLog(
            user_id=user_id,
            user_email=user_email,
            action=action,
            status=status,
            severity=severity,
            category=category,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            ip=ip,
            user_agent=user_agent[:255] if user_agent else None,
            device=describe_device(user_agent),
            request_id=request_id,
            metadata_json=json.dumps(metadata, default=str) if metadata else None,
        ))
    except (SQLAlchemyError, TypeError, ValueError):
        db.session.rollback()
        current_app.logger.exception("Activity logging failed for %s", action)


def log_security_event(action: str, **kwargs):
    kwargs["category"] = "SECURITY"
    log_activity(action, **kwargs)
