"""RFC 6238 time-based one-time passwords for authenticator apps."""
import base64
import hashlib
import hmac
import secrets
import struct
import time
from typing import Optional
from urllib.parse import quote, urlencode

INTERVAL = 30
DIGITS = 6


def generate_secret() -> str:
    # 160-bit secret, base32 without padding, as authenticator apps expect
    return base64.b32encode(secrets.token_bytes(20)).decode("ascii").rstrip("=")


def _decode_secret(secret: str) -> Optional[bytes]:
    padded = secret.upper() + "=" * ((8 - len(secret) % 8) % 8)
    try:
        return base64.b32decode(padded, casefold=True)
    except (ValueError, TypeError):
        return None


def generate_code(secret: str, timestamp: float = None) -> str:
    key = _decode_secret(secret)
    if key is None:
        return ""
    counter = int((timestamp if timestamp is not None else time.time()) // INTERVAL)
    digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    value = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(value % (10 ** DIGITS)).zfill(DIGITS)


def match_step(secret: str, code: str, timestamp: float = None, window: int = 1) -> Optional[int]:
    """
    Returns the time step the code belongs to, or None. Accepts the current
    step or one step either side (clock skew).
    """
    if not secret or not isinstance(code, str) or not code:
        return None
    code = code.strip()
    now = timestamp if timestamp is not None else time.time()
    for offset in range(-window, window + 1):
        at = now + offset * INTERVAL
        generated = generate_code(secret, at)
        if generated and hmac.compare_digest(generated, code):
            return int(at // INTERVAL)
    return None


def verify_code(secret: str, code: str, timestamp: float = None, window: int = 1) -> bool:
    return match_step(secret, code, timestamp, window) is not None


def provisioning_uri(secret: str, account: str, issuer: str) -> str:
    label = quote(f"{issuer}:{account}")
    query = urlencode({"secret": secret, "issuer": issuer, "algorithm": "SHA1",
                       "digits": DIGITS, "period": INTERVAL})
    return f"otpauth://totp/{label}?{query}"
