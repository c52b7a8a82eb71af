import re
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, field_validator

MOBILE_PATTERN = re.compile(r"^\d{10}$")
GST_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$")
MIN_PASSWORD_LENGTH = 6


def _required_text(value: str, label: str, max_length: int) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{label} is required")
    if len(value) > max_length:
        raise ValueError(f"{label} cannot be more than {max_length} characters")
    return value


class AccountBase(BaseModel):
    firstName: str
    lastName: str
    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("firstName")
    @classmethod
    def check_first_name(cls, v: str) -> str:
        return _required_text(v, "First name", 50)

    @field_validator("lastName")
    @classmethod
    def check_last_name(cls, v: str) -> str:
        return _required_text(v, "Last name", 50)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v


class BuyerCreate(AccountBase):
    pass


class SellerCreate(AccountBase):
    mobileNumber: str
    shopName: str
    shopAddress: str
    gstNumber: Optional[str] = None

    @field_validator("mobileNumber")
    @classmethod
    def check_mobile(cls, v: str) -> str:
        v = v.strip()
        if not MOBILE_PATTERN.match(v):
            raise ValueError("Mobile number is required and must be 10 digits")
        return v

    @field_validator("shopName")
    @classmethod
    def check_shop_name(cls, v: str) -> str:
        return _required_text(v, "Shop name", 100)

    @field_validator("shopAddress")
    @classmethod
    def check_shop_address(cls, v: str) -> str:
        return _required_text(v, "Shop address", 200)

    @field_validator("gstNumber")
    @classmethod
    def check_gst(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip().upper()
        if not GST_PATTERN.match(v):
            raise ValueError("Please enter a valid GST number")
        return v


class AdminCreate(AccountBase):
    role: Literal["admin", "superadmin"] = "admin"


class RoleChange(BaseModel):
    role: Literal["admin", "superadmin"]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class UserInfo(BaseModel):
    id: str
    email: EmailStr
    role: str
    firstName: str
    lastName: str
    shopName: Optional[str] = None
    isApproved: Optional[bool] = None
