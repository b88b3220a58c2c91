# grrrignote/core/security.py
from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from passlib.context import CryptContext
from pydantic import EmailStr, TypeAdapter, ValidationError

# === Password Hashing ===
# Argon2id（記憶體困難）；參數固定，單次雜湊約數百毫秒內
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__type="ID",
    argon2__memory_cost=19_456,
    argon2__time_cost=2,
    argon2__parallelism=1,
)

PASSWORD_MIN_LENGTH = 8
EMAIL_MAX_LENGTH = 254
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_EMAIL_ADAPTER = TypeAdapter(EmailStr)


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, password_hash: Optional[str]) -> bool:
    if not plain or not password_hash:
        return False
    try:
        return pwd_context.verify(plain, password_hash)
    except (ValueError, TypeError):
        # 格式錯誤的雜湊一律視為驗證失敗
        return False


# 帳號不存在時也跑一次 verify，讓兩條路徑的耗時同一量級
_DUMMY_HASH: Optional[str] = None


def verify_password_dummy(plain: str) -> bool:
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_password(secrets.token_urlsafe(16))
    verify_password(plain or "x", _DUMMY_HASH)
    return False


def validate_password_policy(value: str) -> Optional[str]:
    """回傳錯誤碼；通過則回傳 None。"""
    if len(value or "") < PASSWORD_MIN_LENGTH:
        return "weak_password"
    return None


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def validate_email(value: str) -> Optional[str]:
    email = normalize_email(value)
    if not email or len(email) > EMAIL_MAX_LENGTH or not _EMAIL_RE.match(email):
        return "invalid_email"
    try:
        # email-validator 的語法檢查（不查 DNS）
        _EMAIL_ADAPTER.validate_python(email)
    except ValidationError:
        return "invalid_email"
    return None


# === Time Helpers ===
def now_utc() -> datetime:
    """DB 欄位一律存 naive UTC。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def now_ms() -> int:
    return int(time.time() * 1000)


# === Session Token Codec ===
@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    session_version: int
    issued_at_ms: int


class SessionCodec:
    """
    Session cookie 的簽章與驗證：
      token = "{user_id}:{session_version}:{issued_at_ms}" + "." + hex(HMAC-SHA256)
    - 第一把 secret 用來簽章；其餘僅用來驗證（金鑰輪替期間舊 cookie 仍有效）
    - validate 任何失敗都回傳 None，不拋例外
    - session_version 與 DB 比對由呼叫端負責（見 core/deps.py）
    """

    SEPARATOR = "."

    def __init__(self, secrets_: Sequence[str], ttl_seconds: int):
        keys = [s for s in secrets_ if s]
        if not keys:
            raise ValueError("SessionCodec requires at least one secret")
        self._secrets: List[bytes] = [s.encode("utf-8") for s in keys]
        self.ttl_ms = int(ttl_seconds) * 1000

    def _sign(self, payload: str, key: bytes) -> str:
        return hmac.new(key, payload.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self, user_id: int, session_version: int, issued_at_ms: Optional[int] = None) -> str:
        issued = now_ms() if issued_at_ms is None else int(issued_at_ms)
        payload = f"{int(user_id)}:{int(session_version)}:{issued}"
        return f"{payload}{self.SEPARATOR}{self._sign(payload, self._secrets[0])}"

    def validate(self, token: Optional[str], at_ms: Optional[int] = None) -> Optional[SessionClaims]:
        if not token or not isinstance(token, str):
            return None

        parts = token.split(self.SEPARATOR)
        if len(parts) != 2:
            return None
        payload, signature = parts

        supplied = signature.encode("ascii", "replace")
        has_valid_signature = False
        for key in self._secrets:
            # 逐把比對，不提早結束
            if hmac.compare_digest(self._sign(payload, key).encode("ascii"), supplied):
                has_valid_signature = True
        if not has_valid_signature:
            return None

        fields = payload.split(":")
        if len(fields) != 3 or not all(f.isascii() and f.isdigit() for f in fields):
            return None
        user_id, session_version, issued_at_ms = (int(f) for f in fields)
        if user_id <= 0 or issued_at_ms <= 0:
            return None

        current = now_ms() if at_ms is None else int(at_ms)
        if issued_at_ms > current or current - issued_at_ms >= self.ttl_ms:
            return None

        return SessionClaims(user_id=user_id, session_version=session_version, issued_at_ms=issued_at_ms)

    def needs_renewal(self, claims: SessionClaims, at_ms: Optional[int] = None) -> bool:
        """已用超過一半 TTL 的 session 重新簽發。"""
        current = now_ms() if at_ms is None else int(at_ms)
        return current - claims.issued_at_ms > self.ttl_ms // 2


# === One-time Token Helpers ===
def generate_one_time_token() -> str:
    # 32 bytes = 256 bits
    return secrets.token_urlsafe(32)


def hash_one_time_token(raw: str, purpose: str, secret: str) -> str:
    """只存雜湊；purpose 參與雜湊，避免重設連結被拿去驗證 email。"""
    return hashlib.sha256(f"{purpose}:{raw}:{secret}".encode("utf-8")).hexdigest()
