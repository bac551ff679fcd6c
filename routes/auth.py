from flask import Blueprint, current_app, g, jsonify, request

from security.password_policy import password_strength
from security.rate_limit import check_and_increment_login_rate
from services import accounts, passwords
from services import auth as auth_service
from utils.audit import log_security_event
from utils.auth_context import client_ip, context_from_request, login_required
from utils.errors import TokenReuseDetected, error_response


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

MFA_COOKIE_NAME = "mfaChallenge"


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _cookie_kwargs(max_age: int) -> dict:
    return dict(
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=max_age,
        path="/",
    )


def _clear_session_cookies(resp):
    for name in (current_app.config["ACCESS_COOKIE_NAME"], current_app.config["REFRESH_COOKIE_NAME"]):
        resp.delete_cookie(name, path="/")
    return resp


def _session_response(result, message: str, status: int = 200):
    """Places a finished login into cookies; a 2FA challenge gets its own cookie."""
    resp = jsonify(message=message, **result.to_dict())
    if result.requires_verification:
        resp.set_cookie(MFA_COOKIE_NAME, result.challenge_token,
                        **_cookie_kwargs(current_app.config["OTP_TTL_SECONDS"]["LOGIN"]))
        return resp, status

    # session fixation: drop whatever pre-login cookies the client had
    _clear_session_cookies(resp)
    resp.set_cookie(current_app.config["ACCESS_COOKIE_NAME"], result.access_token,
                    **_cookie_kwargs(current_app.config["ACCESS_TOKEN_TTL_SECONDS"]))
    resp.set_cookie(current_app.config["REFRESH_COOKIE_NAME"], result.refresh_token,
                    **_cookie_kwargs(current_app.config["REFRESH_TOKEN_TTL_SECONDS"]))
    resp.delete_cookie(MFA_COOKIE_NAME, path="/")
    return resp, status


def _incoming_refresh_token():
    token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"]) or _body().get("refresh_token")
    return token if isinstance(token, str) else None


@auth_bp.post("/register")
def register():
    data = _body()
    ctx = context_from_request(identifier=data.get("email"), declared_role=data.get("role"))
    user, sent = accounts.register(
        ctx,
        full_name=data.get("full_name"),
        email=data.get("email"),
        password=data.get("password") or "",
        role=data.get("role"),
        phone_number=data.get("phone_number"),
    )
    return jsonify(message="User registered successfully", user=user.to_public_dict(),
                   verification_sent=sent), 201


@auth_bp.post("/verify-email")
def verify_email():
    data = _body()
    user = accounts.verify_email(context_from_request(identifier=data.get("email")),
                                 data.get("email"), data.get("otp"))
    return jsonify(message="Email verified successfully", user=user.to_public_dict()), 200


@auth_bp.post("/resend-verification")
def resend_verification():
    data = _body()
    accounts.resend_verification(context_from_request(identifier=data.get("email")), data.get("email"))
    return jsonify(message="Verification code sent"), 200


@auth_bp.post("/login")
def login():
    data = _body()
    ctx = context_from_request(identifier=data.get("email"), declared_role=data.get("role"))

    allowed, retry_after = check_and_increment_login_rate(client_ip())
    if not allowed:
        log_security_event("AUTH_LOGIN_RATE_LIMIT", context=ctx, status="FAIL", severity="WARN",
                           metadata={"retry_after_seconds": retry_after})
        return jsonify(error="Too many requests, please try again later.", retry_after_seconds=retry_after), 429

    result = auth_service.login(ctx, data.get("email"), data.get("password") or "", data.get("role"))
    if result.requires_verification:
        return _session_response(result, "Verification required")
    return _session_response(result, "User logged in successfully")


@auth_bp.post("/verify-login-otp")
def verify_login_otp():
    data = _body()
    challenge = data.get("challenge_token") or request.cookies.get(MFA_COOKIE_NAME)
    result = auth_service.verify_login_code(context_from_request(identifier=data.get("email")),
                                            data.get("email"), data.get("otp"), challenge)
    return _session_response(result, "User logged in successfully")


@auth_bp.post("/refresh-token")
def refresh_token():
    try:
        result = auth_service.refresh_session(context_from_request(), _incoming_refresh_token())
    except TokenReuseDetected as exc:
        # every session of the account is gone, including this one
        resp, status = error_response(exc)
        return _clear_session_cookies(resp), status
    return _session_response(result, "Access token refreshed")


@auth_bp.post("/logout")
def logout():
    auth_service.logout(context_from_request(), _incoming_refresh_token())
    resp = jsonify(message="User logged out")
    return _clear_session_cookies(resp), 200


@auth_bp.post("/logout-all")
@login_required
def logout_all():
    count = auth_service.logout_everywhere(context_from_request(), g.user.id)
    resp = jsonify(message="Logged out everywhere", revoked_sessions=count)
    return _clear_session_cookies(resp), 200


@auth_bp.post("/forgot-password")
def forgot_password():
    data = _body()
    passwords.forgot_password(context_from_request(identifier=data.get("email")), data.get("email"))
    return jsonify(message="Password reset code sent"), 200


@auth_bp.post("/verify-otp")
def verify_otp():
    data = _body()
    passwords.verify_reset_code(context_from_request(identifier=data.get("email")),
                                data.get("email"), data.get("otp"))
    return jsonify(message="OTP verified successfully"), 200


@auth_bp.post("/reset-password")
def reset_password():
    data = _body()
    passwords.reset_password(context_from_request(identifier=data.get("email")),
                             data.get("email"), data.get("otp"), data.get("new_password"))
    return jsonify(message="Password reset successfully"), 200


@auth_bp.post("/change-password")
@login_required
def change_password():
    data = _body()
    result = passwords.change_password(context_from_request(), g.user.id,
                                       data.get("old_password"), data.get("new_password"))
    return _session_response(result, "Password changed successfully")


@auth_bp.post("/toggle-2fa")
@login_required
def toggle_2fa():
    enabled = bool(_body().get("enabled"))
    user = accounts.set_email_two_factor(context_from_request(), g.user.id, enabled)
    return jsonify(message="Two-factor settings updated", user=user.to_public_dict()), 200


@auth_bp.post("/2fa/authenticator/setup")
@login_required
def authenticator_setup():
    secret, uri = accounts.begin_authenticator_setup(context_from_request(), g.user.id)
    return jsonify(secret=secret, otpauth_uri=uri), 200


@auth_bp.post("/2fa/authenticator/confirm")
@login_required
def authenticator_confirm():
    user = accounts.confirm_authenticator_setup(context_from_request(), g.user.id, _body().get("code"))
    return jsonify(message="Authenticator enabled", user=user.to_public_dict()), 200


@auth_bp.post("/2fa/disable")
@login_required
def disable_2fa():
    user = accounts.disable_two_factor(context_from_request(), g.user.id, _body().get("password"))
    return jsonify(message="Two-factor authentication disabled", user=user.to_public_dict()), 200


@auth_bp.post("/password-strength")
def check_password_strength():
    data = _body()
    return jsonify(password_strength(data.get("password") or "",
                                     account_name=data.get("full_name"), email=data.get("email"))), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(user=g.user.to_public_dict()), 200
