# grrrignote/models/__init__.py
from grrrignote.models.base import Base
from grrrignote.models.users import User, UserStatus
from grrrignote.models.one_time_tokens import EmailVerificationToken, PasswordResetToken
from grrrignote.models.auth_attempts import LoginAttempt, PasswordResetAttempt, SignupAttempt

__all__ = [
    "Base",
    "User",
    "UserStatus",
    "PasswordResetToken",
    "EmailVerificationToken",
    "LoginAttempt",
    "SignupAttempt",
    "PasswordResetAttempt",
]
