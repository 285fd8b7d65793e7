from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


Gender = Literal["male", "female", "other"]
Category = Literal["Open", "OBC", "SC", "ST", "VJNT", "SEBC", "SBC"]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class FlowState(str, Enum):
    STEP1 = "step1"
    STEP2 = "step2"
    REVIEW = "review"
    SUBMITTED = "submitted"


def _required_text(value: Any, message: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValueError(message)
    return text


class Step1Form(BaseModel):
    # Unknown keys (role, pass_id, ...) are rejected rather than dropped.
    model_config = ConfigDict(extra="forbid")

    email: str
    name: str
    contact: str
    gender: Gender
    date_of_birth: date = Field(validation_alias=AliasChoices("date_of_birth", "dob"))

    @field_validator("email")
    @classmethod
    def _validate_email(cls, v: str) -> str:
        value = (v or "").strip()
        if not _EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        value = (v or "").strip()
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters")
        return value

    @field_validator("contact")
    @classmethod
    def _validate_contact(cls, v: str) -> str:
        value = (v or "").strip()
        if len(value) < 10:
            raise ValueError("Contact must be at least 10 digits")
        return value

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def _require_dob(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("Date of birth is required")
        return v


class Step2Form(BaseModel):
    model_config = ConfigDict(extra="forbid")

    age: int
    district: str
    category: Category
    highest_qualification: str
    photo_reference: str | None = None

    @field_validator("age")
    @classmethod
    def _validate_age(cls, v: int) -> int:
        if v < 18:
            raise ValueError("Age must be at least 18")
        if v > 100:
            raise ValueError("Age must be at most 100")
        return v

    @field_validator("district")
    @classmethod
    def _validate_district(cls, v: str) -> str:
        return _required_text(v, "District is required")

    @field_validator("highest_qualification")
    @classmethod
    def _validate_qualification(cls, v: str) -> str:
        return _required_text(v, "Highest qualification is required")

    @field_validator("photo_reference", mode="before")
    @classmethod
    def _blank_photo_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class SubmitRequest(BaseModel):
    confirm: bool = False


class BackRequest(BaseModel):
    current: FlowState


class ProfileRead(BaseModel):
    user_id: int
    email: str | None = None
    name: str | None = None
    contact: str | None = None
    gender: str | None = None
    date_of_birth: date | None = None
    age: int | None = None
    district: str | None = None
    category: str | None = None
    highest_qualification: str | None = None
    photo_reference: str | None = None
    pass_id: str | None = None
    form_step: int = 0
    is_submitted: bool = False
    role: str = "user"
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FlowResponse(BaseModel):
    state: FlowState
    read_only: bool = False
    download_available: bool = False
    profile: ProfileRead
    message: str | None = None


class PhotoUploadResponse(BaseModel):
    photo_reference: str
