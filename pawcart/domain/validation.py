"""
Field-level validation for checkout and payment forms.

Each form is a strict pydantic model; instead of letting pydantic errors
escape, `collect_errors` flattens every failure into a FieldError so the
caller can surface all of them at once.
"""

import re
from datetime import date

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from pawcart.domain.errors import FieldError

NAME_RE = re.compile(r"^[A-Za-z]+(?:\s+[A-Za-z]+)*$")
PHONE_RE = re.compile(r"^\d{10}$")
POSTAL_CODE_RE = re.compile(r"^\d{5,6}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CARD_NUMBER_RE = re.compile(r"^\d{12,16}$")
CVV_RE = re.compile(r"^\d{3}$")
OTP_RE = re.compile(r"^\d{6}$")

NAME_MAX = 30
STREET_MAX = 50


def _letters_only(value: str, max_len: int | None = NAME_MAX) -> str:
    value = value.strip()
    if not value:
        raise ValueError("is required")
    if not NAME_RE.match(value):
        raise ValueError("only letters allowed")
    if max_len is not None and len(value) > max_len:
        raise ValueError(f"max {max_len} characters")
    return value


class AddressForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str
    phone: str
    street: str
    city: str
    postal_code: str
    country: str = ""

    @field_validator("full_name", "city")
    @classmethod
    def _name_like(cls, v: str) -> str:
        return _letters_only(v)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        if not PHONE_RE.match(v):
            raise ValueError("must be 10 digits")
        return v

    @field_validator("street")
    @classmethod
    def _street(cls, v: str) -> str:
        if not v:
            raise ValueError("is required")
        if len(v) > STREET_MAX:
            raise ValueError(f"max {STREET_MAX} characters")
        return v

    @field_validator("postal_code")
    @classmethod
    def _postal_code(cls, v: str) -> str:
        if not POSTAL_CODE_RE.match(v):
            raise ValueError("must be 5-6 digits")
        return v


class ContactForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        if not EMAIL_RE.match(v):
            raise ValueError("invalid email address")
        return v


class CardForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str
    number: str
    expiry: date
    cvv: str

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _letters_only(v, max_len=None)

    @field_validator("number")
    @classmethod
    def _number(cls, v: str) -> str:
        if not CARD_NUMBER_RE.match(v):
            raise ValueError("must be 12-16 digits")
        return v

    @field_validator("expiry")
    @classmethod
    def _expiry(cls, v: date) -> date:
        #card is usable through its expiry day
        if v < date.today():
            raise ValueError("must be a future date")
        return v

    @field_validator("cvv")
    @classmethod
    def _cvv(cls, v: str) -> str:
        if not CVV_RE.match(v):
            raise ValueError("must be 3 digits")
        return v


def _message(err: dict) -> str:
    if err["type"] == "missing":
        return "is required"
    ctx = err.get("ctx") or {}
    if isinstance(ctx.get("error"), ValueError):
        return str(ctx["error"])
    if err["type"].startswith("date"):
        return "must be a valid date"
    return err["msg"]


def collect_errors(model: type[BaseModel], data: dict, section: str) -> list[FieldError]:
    try:
        model.model_validate(data)
    except PydanticValidationError as exc:
        return [
            FieldError(section, str(err["loc"][0]) if err["loc"] else section, _message(err))
            for err in exc.errors()
        ]
    return []


def is_well_formed_otp(code) -> bool:
    return isinstance(code, str) and bool(OTP_RE.fullmatch(code))
