"""
Request bodies.

Every field is optional at the schema level so missing input surfaces as the
flow's own ValidationError message rather than a generic schema error.
Aliases accept the field names older clients send.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class SendOtpRequest(_Body):
    email: Optional[str] = None


class VerifyOtpRequest(_Body):
    email: Optional[str] = None
    otp: Optional[str] = Field(default=None, validation_alias=AliasChoices("otp", "code"))


class RegisterRequest(_Body):
    temporary_user_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("temporaryUserId", "userId")
    )
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None


class LoginRequest(_Body):
    identifier: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("identifier", "userId", "email")
    )
    password: Optional[str] = None


class SendUserIdRequest(_Body):
    email: Optional[str] = None
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    user_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("userName", "user_name"))
