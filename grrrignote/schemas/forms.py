# grrrignote/schemas/forms.py
"""
每個 form action 一個型別化的表單。
parse_form 是唯一的解析入口：回傳驗證過的表單，或拋出帶錯誤碼的 FormValidationError。
"""
from __future__ import annotations

from typing import Any, ClassVar, Mapping, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_core import PydanticCustomError

from grrrignote.core.security import normalize_email, validate_email, validate_password_policy

# 驗證器直接用錯誤碼當 PydanticCustomError 的 type
FORM_ERROR_CODES = {
    "invalid_credentials",
    "invalid_email",
    "weak_password",
    "password_mismatch",
    "missing_fields",
    "invalid_token",
}


class FormValidationError(Exception):
    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class _Form(BaseModel):
    # 缺欄位時以預設值 "" 進入驗證器
    model_config = ConfigDict(extra="ignore", populate_by_name=True, validate_default=True)

    # 無法對應到特定錯誤碼時使用（例如欄位型別錯誤）
    DEFAULT_ERROR: ClassVar[str] = "unknown"


F = TypeVar("F", bound=_Form)


def _first_error_code(model: Type[_Form], exc: ValidationError) -> str:
    for err in exc.errors():
        if err.get("type") in FORM_ERROR_CODES:
            return str(err["type"])
    return model.DEFAULT_ERROR


def parse_form(model: Type[F], data: Mapping[str, Any]) -> F:
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        raise FormValidationError(_first_error_code(model, exc)) from None


def _check_email(value: str) -> str:
    if validate_email(value):
        raise PydanticCustomError("invalid_email", "Invalid email address")
    return normalize_email(value)


def _check_password(value: str) -> str:
    if validate_password_policy(value):
        raise PydanticCustomError("weak_password", "Password must contain at least 8 characters")
    return value


class LoginForm(_Form):
    DEFAULT_ERROR: ClassVar[str] = "invalid_credentials"

    email: str = ""
    password: str = ""

    @field_validator("email", mode="after")
    @classmethod
    def normalize_email_field(cls, v: str) -> str:
        return normalize_email(v)

    @model_validator(mode="after")
    def require_credentials(self) -> "LoginForm":
        if not self.email or not self.password:
            raise PydanticCustomError("invalid_credentials", "Email and password are required")
        return self


class SignupForm(_Form):
    email: str = ""
    password: str = ""
    confirm_password: str = Field(default="", alias="confirmPassword")

    @field_validator("email", mode="after")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("password", mode="after")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _check_password(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "SignupForm":
        if self.password != self.confirm_password:
            raise PydanticCustomError("password_mismatch", "Passwords do not match")
        return self


class ForgotPasswordForm(_Form):
    # 空白 email 也照樣回「已寄出」，不在這裡報錯
    email: str = ""

    @field_validator("email", mode="after")
    @classmethod
    def normalize_email_field(cls, v: str) -> str:
        return normalize_email(v)


class ResetPasswordForm(_Form):
    DEFAULT_ERROR: ClassVar[str] = "invalid_token"

    token: str = ""
    password: str = ""
    confirm_password: str = Field(default="", alias="confirmPassword")

    @field_validator("token", mode="after")
    @classmethod
    def require_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise PydanticCustomError("invalid_token", "Missing token")
        return v

    @field_validator("password", mode="after")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _check_password(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordForm":
        if self.password != self.confirm_password:
            raise PydanticCustomError("password_mismatch", "Passwords do not match")
        return self


class VerifyEmailForm(_Form):
    token: str = ""

    @field_validator("token", mode="after")
    @classmethod
    def require_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise PydanticCustomError("invalid_token", "Missing token")
        return v


class ChangePasswordForm(_Form):
    current_password: str = Field(default="", alias="currentPassword")
    password: str = ""
    confirm_password: str = Field(default="", alias="confirmPassword")

    @model_validator(mode="after")
    def ordered_checks(self) -> "ChangePasswordForm":
        # 順序固定：缺欄位 → 密碼強度 → 兩次輸入不一致
        if not self.current_password or not self.password or not self.confirm_password:
            raise PydanticCustomError("missing_fields", "All fields are required")
        _check_password(self.password)
        if self.password != self.confirm_password:
            raise PydanticCustomError("password_mismatch", "Passwords do not match")
        return self

