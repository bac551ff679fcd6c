import uuid
from dataclasses import dataclass, replace
from functools import wraps
from typing import Optional

from flask import current_app, g, jsonify, request

from models import db
from models.user import User
from security.tokens import decode_access_token


@dataclass(frozen=True)
class AuthContext:
    """Who is calling and from where; passed explicitly into every auth flow."""

    identifier: Optional[str] = None
    account_id: Optional[int] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    declared_role: Optional[str] = None
    correlation_id: Optional[str] = None

    def with_account(self, user: User) -> "AuthContext":
        return replace(self, account_id=user.id, identifier=user.email)


def client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def assign_request_id() -> None:
    g.request_id = (request.headers.get("X-Request-ID") or "")[:64] or uuid.uuid4().hex


def context_from_request(identifier=None, declared_role=None) -> AuthContext:
    user = getattr(g, "user", None)
    return AuthContext(
        identifier=identifier or (user.email if user else None),
        account_id=user.id if user else None,
        ip=client_ip(),
        user_agent=(request.headers.get("User-Agent") or "")[:255] or None,
        declared_role=declared_role,
        correlation_id=getattr(g, "request_id", None),
    )


def _bearer_token():
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return None


def load_current_user():
    cookie_name = current_app.config.get("ACCESS_COOKIE_NAME", "accessToken")
    raw_token = request.cookies.get(cookie_name) or _bearer_token()
    g.user = None
    g.token_claims = None
    if not raw_token:
        return

    claims = decode_access_token(raw_token)
    if not claims:
        return
    user = db.session.get(User, int(claims["sub"]))
    if user is None:
        return
    g.user = user
    g.token_claims = claims


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
