import re
from collections import namedtuple
from datetime import datetime, timedelta
from typing import List, Optional

from flask import current_app

SYMBOLS = '!@#$%^&*(),.?":{}|<>'
COMMON_PASSWORDS = ("password", "12345678", "qwertyuiop", "admin123")

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile("[" + re.escape(SYMBOLS) + "]")
_NAME_SPLIT = re.compile(r"[\s-]+")

_DEFAULTS = {
    "PASSWORD_MIN_LEN": 8,
    "PASSWORD_MAX_AGE_DAYS": 90,
}

Violation = namedtuple("Violation", "rule message")


class PolicyResult(namedtuple("PolicyResult", "valid violations")):
    __slots__ = ()

    @property
    def messages(self) -> List[str]:
        return [v.message for v in self.violations]

    @property
    def rules(self) -> List[str]:
        return [v.rule for v in self.violations]


def _cfg(name: str):
    try:
        return current_app.config.get(name, _DEFAULTS[name])
    except RuntimeError:
        # outside app context (CLI, unit tests)
        return _DEFAULTS[name]


def _email_local_part(email: Optional[str]) -> str:
    if not email:
        return ""
    return email.split("@", 1)[0].strip().lower()


def _name_tokens(account_name: Optional[str]) -> List[str]:
    if not account_name:
        return []
    return [part.lower() for part in _NAME_SPLIT.split(account_name.strip()) if len(part) >= 3]


def validate_password(pw: str, account_name: str = None, email: str = None) -> PolicyResult:
    """
    Checks every rule and reports all unmet ones, so a form can show them together.
    Pure: no I/O, no side effects.
    """
    if not isinstance(pw, str):
        return PolicyResult(False, [Violation("type", "Password must be a string")])

    violations: List[Violation] = []
    min_len = int(_cfg("PASSWORD_MIN_LEN"))
    lowered = pw.lower()

    if len(pw) < min_len:
        violations.append(Violation("length", f"Password must be at least {min_len} characters long."))
    if not _UPPER.search(pw):
        violations.append(Violation("uppercase", "Password must contain at least one uppercase letter."))
    if not _LOWER.search(pw):
        violations.append(Violation("lowercase", "Password must contain at least one lowercase letter."))
    if not _DIGIT.search(pw):
        violations.append(Violation("digit", "Password must contain at least one number."))
    if not _SYMBOL.search(pw):
        violations.append(Violation("symbol", "Password must contain at least one special character."))

    if any(common in lowered for common in COMMON_PASSWORDS):
        violations.append(Violation("common", "Password is too common or easily guessable."))

    local_part = _email_local_part(email)
    if len(local_part) >= 3 and local_part in lowered:
        violations.append(Violation("email", "Password cannot contain your email address."))

    if any(token in lowered for token in _name_tokens(account_name)):
        violations.append(Violation("name", "Password cannot contain parts of your name."))

    return PolicyResult(not violations, violations)


def compute_password_expiry(changed_at: datetime) -> datetime:
    return changed_at + timedelta(days=int(_cfg("PASSWORD_MAX_AGE_DAYS")))


def is_password_expired(user, now: datetime) -> bool:
    """
    Explicit expiry wins; otherwise changed-at plus the max age.
    Accounts with neither timestamp are never treated as expired.
    """
    if user.password_expires_at is not None:
        return user.password_expires_at < now
    if user.password_changed_at is not None:
        return compute_password_expiry(user.password_changed_at) < now
    return False


def password_strength(pw: str, account_name: str = None, email: str = None) -> dict:
    if not isinstance(pw, str):
        return {
            "score": 0,
            "valid": False,
            "feedback": ["Password must be a string"],
        }

    result = validate_password(pw, account_name=account_name, email=email)
    length = len(pw)
    min_len = int(_cfg("PASSWORD_MIN_LEN"))

    checks = (_UPPER, _LOWER, _DIGIT, _SYMBOL)
    variety = sum(1 for pat in checks if pat.search(pw))

    score = 0
    if length >= min_len:
        score += 1
    if length >= min_len + 4:
        score += 1
    if variety >= 3:
        score += 1
    if variety == len(checks) and length >= min_len:
        score += 1
    if not result.valid:
        score = min(score, 2)

    feedback: List[str] = []
    if not result.valid:
        feedback = result.messages
    else:
        if length < min_len + 4:
            feedback.append("Use a longer passphrase for extra strength")

    return {
        "score": min(score, 4),
        "valid": result.valid,
        "feedback": feedback,
    }
