from .db import db
from .user import User
from .password_history import PasswordHistory
from .login_attempt import LoginAttempt
from .refresh_token import RefreshToken
from .one_time_code import OneTimeCode
from .audit_log import AuditLog
from .ip_rate_limit import IpRateLimit
