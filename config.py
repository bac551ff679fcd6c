import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")
    ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", "dev-only-access-secret")
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", "dev-only-refresh-secret")

    # SQLite database file stored next to this file as jobiyo_auth.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "jobiyo_auth.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Token cookies
    ACCESS_COOKIE_NAME = "accessToken"
    REFRESH_COOKIE_NAME = "refreshToken"

    # Access token 15 minutes (idle timeout), refresh token 7 days (absolute timeout)
    ACCESS_TOKEN_TTL_SECONDS = int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", str(15 * 60)))
    REFRESH_TOKEN_TTL_SECONDS = int(os.getenv("REFRESH_TOKEN_TTL_SECONDS", str(7 * 24 * 60 * 60)))

    # Cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Hashing cost
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS = 5
    LOCKOUT_MINUTES = 10
    LOGIN_ATTEMPT_IDLE_SECONDS = 20 * 60   # attempt rows expire after 20 idle minutes

    # Simple IP rate limit for login endpoint
    LOGIN_RATE_WINDOW_SECONDS = 60      # window size
    LOGIN_RATE_MAX_REQUESTS = 30        # max login requests per IP per window

    # Password policy
    PASSWORD_MIN_LEN = 8
    PASSWORD_HISTORY_COUNT = 5          # block last 5 passwords (plus the live one)
    PASSWORD_MAX_AGE_DAYS = 90          # password expires after 90 days

    # One-time codes
    OTP_LENGTH = int(os.getenv("OTP_LENGTH", "6"))
    OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "5"))
    OTP_TTL_SECONDS = {
        "EMAIL_VERIFICATION": 10 * 60,
        "LOGIN": 5 * 60,
        "PASSWORD_RESET": 10 * 60,
    }

    # Authenticator apps
    TOTP_ISSUER = os.getenv("TOTP_ISSUER", "Jobiyo")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Used in password reset links
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json")

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    BCRYPT_ROUNDS = 4
    LOG_FORMAT = "plain"
    SMTP_HOST = "smtp.test"
    SMTP_FROM_EMAIL = "no-reply@jobiyo.test"
