from functools import wraps

from flask import g, jsonify, request

from models.user import ROLES
from utils.audit import log_security_event
from utils.auth_context import context_from_request


def require_roles(*role_names: str):
    """
    Usage: @require_roles("admin")

    Roles come from the account row loaded for this request, never from the
    access token claims, so a demotion takes effect immediately.
    """
    unknown = set(role_names) - set(ROLES)
    if unknown:
        raise ValueError(f"Unknown roles: {', '.join(sorted(unknown))}")

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            if user.role not in role_names:
                log_security_event("AUTH_FORBIDDEN", context=context_from_request(), status="FAIL",
                                   severity="WARN", metadata={"path": request.path, "role": user.role})
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
