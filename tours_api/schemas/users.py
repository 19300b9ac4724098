from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tours_api.core.config import settings
from tours_api.models.user import Role


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_password_pair(password: str, password_confirm: str) -> None:
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must have at least {settings.PASSWORD_MIN_LENGTH} characters")
    if password != password_confirm:
        raise ValueError("Passwords are not the same!")


class SignupIn(_CamelModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str
    password_confirm: str

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("Please tell us your name!")
        return text

    @model_validator(mode="after")
    def passwords_match(self):
        _check_password_pair(self.password, self.password_confirm)
        return self


class LoginIn(_CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordIn(_CamelModel):
    email: str


class ResetPasswordIn(_CamelModel):
    password: str
    password_confirm: str

    @model_validator(mode="after")
    def passwords_match(self):
        _check_password_pair(self.password, self.password_confirm)
        return self


class UpdatePasswordIn(_CamelModel):
    password_current: str
    password: str
    password_confirm: str

    @model_validator(mode="after")
    def passwords_match(self):
        _check_password_pair(self.password, self.password_confirm)
        return self


class UpdateMeIn(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    photo: Optional[str] = None


class UserAdminPatch(_CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    photo: Optional[str] = None
    role: Optional[Role] = None
    active: Optional[bool] = None
