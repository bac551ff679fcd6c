"""
Signed JWTs for the two session credentials.

Access tokens are short-lived and carry the claims request handlers need
(email, role, display name). Refresh tokens carry only the account id plus a
random jti; their server-side state lives in the refresh token ledger.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from flask import current_app

ALGORITHM = "HS256"


def _encode(claims: dict, secret: str, ttl_seconds: int) -> str:
    # wall clock: PyJWT checks exp and iat against real time
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload["iat"] = now
    payload["exp"] = now + timedelta(seconds=ttl_seconds)
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def _decode(token: str, secret: str, token_type: str) -> Optional[dict]:
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM], options={"require": ["exp", "sub"]})
    except jwt.InvalidTokenError:
        return None
    if claims.get("type") != token_type:
        return None
    return claims


def create_access_token(user) -> str:
    return _encode(
        {
            "sub": str(user.id),
            "email": user.email,
            "full_name": user.full_name,
            "role": user.role,
            "type": "access",
        },
        current_app.config["ACCESS_TOKEN_SECRET"],
        int(current_app.config.get("ACCESS_TOKEN_TTL_SECONDS", 900)),
    )


def decode_access_token(token: str) -> Optional[dict]:
    return _decode(token, current_app.config["ACCESS_TOKEN_SECRET"], "access")


def create_refresh_jwt(user_id: int) -> str:
    return _encode(
        {"sub": str(user_id), "jti": secrets.token_urlsafe(32), "type": "refresh"},
        current_app.config["REFRESH_TOKEN_SECRET"],
        int(current_app.config.get("REFRESH_TOKEN_TTL_SECONDS", 7 * 24 * 3600)),
    )


def decode_refresh_jwt(token: str) -> Optional[dict]:
    return _decode(token, current_app.config["REFRESH_TOKEN_SECRET"], "refresh")


def create_challenge_token(user, method: str, challenge_id: str) -> str:
    """
    Proof that the password step passed; required by the second-factor step.
    The jti names the challenge stored on the account, so it completes once.
    """
    ttls = current_app.config.get("OTP_TTL_SECONDS", {})
    return _encode(
        {"sub": str(user.id), "email": user.email, "method": method, "jti": challenge_id,
         "type": "mfa_challenge"},
        current_app.config["SECRET_KEY"],
        int(ttls.get("LOGIN", 300)),
    )


def decode_challenge_token(token: str) -> Optional[dict]:
    return _decode(token, current_app.config["SECRET_KEY"], "mfa_challenge")
