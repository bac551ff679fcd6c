from flask import current_app

BRAND = "Jobiyo"


def _html(title: str, intro: str, code: str, footer: str, link: str = None) -> str:
    button = ""
    if link:
        button = f'<p><a href="{link}" style="padding:10px 18px;background:#6A38C2;color:#fff;text-decoration:none;border-radius:6px">Continue</a></p>'
    return (
        f'<div style="font-family:Arial,sans-serif;max-width:480px;margin:auto">'
        f"<h2>{BRAND} {title}</h2><p>{intro}</p>"
        f'<p style="font-size:28px;letter-spacing:6px;font-weight:bold">{code}</p>'
        f"{button}<p style=\"color:#888;font-size:12px\">{footer}</p></div>"
    )


def verification_email(code: str, minutes: int):
    subject = f"{BRAND} email verification"
    body = f"Your verification code is {code}. It expires in {minutes} minutes."
    html = _html("email verification", "Use this code to verify your email address.", code,
                 f"The code expires in {minutes} minutes.")
    return subject, body, html


def login_code_email(code: str, minutes: int):
    subject = f"{BRAND} login verification code"
    body = f"Your login code is {code}. It expires in {minutes} minutes."
    html = _html("sign-in code", "Someone (hopefully you) is signing in. Enter this code to finish.", code,
                 f"The code expires in {minutes} minutes. If this was not you, change your password.")
    return subject, body, html


def password_reset_email(email: str, code: str, minutes: int):
    base = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    link = f"{base}/forgot-password?email={email}"
    subject = f"{BRAND} password recovery"
    body = (f"Your password reset code is {code}. It expires in {minutes} minutes.\n\n"
            f"Continue here: {link}\n\nIf you have not requested this email then, please ignore it.")
    html = _html("password recovery", "Use this code to reset your password.", code,
                 "If you have not requested this email then, please ignore it.", link=link)
    return subject, body, html
