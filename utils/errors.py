"""Typed failures raised by the auth core and rendered by the HTTP layer."""
from typing import List, Optional

from flask import Flask, current_app, g, jsonify


class AuthError(Exception):
    """Base failure: a kind, a user-facing message and optional details."""

    kind = "AUTH_ERROR"
    http_status = 400

    def __init__(self, message: str, *, code: Optional[str] = None,
                 details: Optional[List[str]] = None, http_status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.kind
        self.details = list(details or [])
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailure(AuthError):
    kind = "VALIDATION"
    http_status = 400


class NotFoundFailure(AuthError):
    kind = "NOT_FOUND"
    http_status = 404


class PolicyViolation(AuthError):
    kind = "POLICY_VIOLATION"
    http_status = 400


class AuthorizationMismatch(AuthError):
    kind = "AUTHORIZATION_MISMATCH"
    http_status = 403


class InvalidCredentials(AuthError):
    kind = "INVALID_CREDENTIALS"
    http_status = 401


class RateLimited(AuthError):
    kind = "RATE_LIMITED"
    http_status = 429

    def __init__(self, message: str, *, retry_after_minutes: int, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after_minutes = retry_after_minutes

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retry_after_minutes"] = self.retry_after_minutes
        return body


class SecurityAlert(AuthError):
    kind = "SECURITY_ALERT"
    http_status = 403


class TransientFailure(AuthError):
    kind = "TRANSIENT"
    http_status = 503


# Refresh-token ledger outcomes. Invalid and not-found share one message so the
# caller cannot tell them apart.

class TokenInvalid(InvalidCredentials):
    def __init__(self):
        super().__init__("Invalid refresh token", code="REFRESH_INVALID")


class TokenNotFound(NotFoundFailure):
    http_status = 401

    def __init__(self):
        super().__init__("Invalid refresh token", code="REFRESH_NOT_FOUND")


class TokenReuseDetected(SecurityAlert):
    def __init__(self, user_id: int, revoked: int = 0):
        super().__init__("Security alert: session reuse detected. Please sign in again.",
                         code="REFRESH_REUSE")
        self.user_id = user_id
        self.revoked = revoked


def error_response(exc: AuthError):
    body = exc.to_dict()
    request_id = getattr(g, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    if exc.http_status >= 500:
        current_app.logger.error("auth flow failed: %s", exc.message)
    return jsonify(body), exc.http_status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AuthError)
    def _auth_error(exc: AuthError):
        return error_response(exc)
