from flask import Blueprint, jsonify, request

from models.user import normalize_email
from security.bruteforce import check_lock, reset_attempts
from security.rbac import require_roles
from security.refresh_tokens import active_sessions
from services import auth as auth_service
from utils.audit import log_security_event
from utils.auth_context import context_from_request

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.get("/users/<int:user_id>/sessions")
@require_roles("admin")
def list_sessions(user_id):
    rows = active_sessions(user_id)
    return jsonify(sessions=[
        {
            "id": r.id,
            "created_at": r.created_at.isoformat(),
            "expires_at": r.expires_at.isoformat(),
            "ip": r.ip,
            "user_agent": r.user_agent,
        }
        for r in rows
    ]), 200


@admin_bp.post("/users/<int:user_id>/flag-suspicious")
@require_roles("admin")
def flag_suspicious(user_id):
    count = auth_service.flag_suspicious_activity(context_from_request(), user_id)
    return jsonify(message="All sessions revoked", revoked_sessions=count), 200


@admin_bp.post("/login-attempts/unlock")
@require_roles("admin")
def unlock_login():
    email = normalize_email((request.get_json(silent=True) or {}).get("email"))
    if not email:
        return jsonify(error="Email is required"), 400
    was_locked = check_lock(email).locked
    reset_attempts(email)
    log_security_event("AUTH_LOGIN_UNLOCK", context=context_from_request(), severity="WARN",
                       metadata={"email": email, "was_locked": was_locked})
    return jsonify(message="Login attempts cleared", was_locked=was_locked), 200
