from datetime import datetime

from flask import current_app

from models.password_history import PasswordHistory
from security.password import hash_password, verify_password
from security.password_policy import compute_password_expiry


def _history_count() -> int:
    return int(current_app.config.get("PASSWORD_HISTORY_COUNT", 5))


def was_recently_used(user, candidate: str) -> bool:
    """
    True if candidate matches the live hash or any kept history hash.
    The live hash is checked too since history holds only outgoing hashes.
    """
    if verify_password(candidate, user.password_hash):
        return True
    return any(verify_password(candidate, row.password_hash) for row in user.password_history)


def record_password_history(user, outgoing_hash: str) -> None:
    """
    Prepends a hash that was live until now and trims to the configured count.
    Mutates the ORM collection only; the caller commits.
    """
    user.password_history.insert(0, PasswordHistory(password_hash=outgoing_hash))
    del user.password_history[_history_count():]


def replace_password(user, new_password: str, now: datetime) -> None:
    """
    The only place the live hash is overwritten: outgoing hash to history
    first, then the new hash and its expiry.
    """
    if user.password_hash:
        record_password_history(user, user.password_hash)
    user.password_hash = hash_password(new_password)
    user.password_changed_at = now
    user.password_expires_at = compute_password_expiry(now)
