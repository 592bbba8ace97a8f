"""
Database Schemas

MongoDB collection schemas and request payloads as Pydantic models.

Each collection model maps to a collection named after the lowercased model
name:
- User -> "user" collection
- Meeting -> "meeting" collection
"""

import re
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

MEETING_SCHEMA_VERSION = 2

Weekday = Literal["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
MeetingStatus = Literal["pending", "accepted", "rejected", "ignored"]
StoredCategory = Literal["upcoming", "pending", "canceled"]

LINK_PATTERN = re.compile(r"^https?://[^\s/$.?#].[^\s]*$")
HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def to_utc_naive(value: datetime) -> datetime:
    """Store times as naive UTC; naive input is taken to be UTC already."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Availability(BaseModel):
    day: Weekday
    start_time: str = Field(..., pattern=HHMM_PATTERN, description="e.g. 09:00")
    end_time: str = Field(..., pattern=HHMM_PATTERN, description="e.g. 17:00")


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    username: str = Field(..., description="Unique username")
    email: EmailStr = Field(..., description="Unique, lowercased email address")
    password_hash: str = Field(..., description="Hashed password")
    category: str = Field("", description="Free-form category label")
    meetings: List[str] = Field(default_factory=list, description="Ids of owned meetings")
    availability: List[Availability] = Field(default_factory=list)


class Meeting(BaseModel):
    """
    Meetings collection schema
    Collection name: "meeting"
    """
    schema_version: int = MEETING_SCHEMA_VERSION
    title: str = Field(..., description="Meeting title")
    description: str = ""
    link: str = Field(..., description="Join link (http/https)")
    password_hash: Optional[str] = Field(None, description="Hashed join password")
    date_time: datetime = Field(..., description="Start time, naive UTC")
    owner_id: str = Field(..., description="User id of owner")
    banner_image: str = ""
    background_color: str = "#ffffff"
    reminder: Optional[int] = None
    status: MeetingStatus = "pending"
    status_before_ignore: Optional[MeetingStatus] = None
    category: StoredCategory = "upcoming"
    emails: List[str] = Field(default_factory=list, description="Confirmed participant emails")
    pending_participants: List[str] = Field(default_factory=list, description="Emails awaiting approval")


# Request payloads

class Token(BaseModel):
    access_token: str
    token_type: str


class SignupPayload(BaseModel):
    username: str = Field(..., min_length=3)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


class AvailabilityPayload(BaseModel):
    availability: List[Availability]


class SettingsPayload(BaseModel):
    username: Optional[str] = Field(None, min_length=3)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower() if v else v

    @model_validator(mode="after")
    def at_least_one(self):
        if not (self.username or self.email or self.password):
            raise ValueError("At least one field (username, email, or password) must be provided")
        return self


class PreferencesPayload(BaseModel):
    username: str = Field(..., min_length=3)
    category: str = Field(..., min_length=1)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, v):
        return v.strip() if isinstance(v, str) else v


class MeetingFields(BaseModel):
    """Validation shared by create and update."""

    @field_validator("title", mode="before", check_fields=False)
    @classmethod
    def check_title(cls, v):
        if v is None:
            return v
        if not isinstance(v, str) or len(v.strip()) < 3:
            raise ValueError("Title is required and must be at least 3 characters")
        return v.strip()

    @field_validator("link", check_fields=False)
    @classmethod
    def check_link(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not LINK_PATTERN.match(v):
            raise ValueError("Valid meeting link (http/https) is required")
        return v

    @field_validator("emails", check_fields=False)
    @classmethod
    def lower_emails(cls, v):
        if v is None:
            return v
        return list(dict.fromkeys(e.lower() for e in v))

    @field_validator("date_time", check_fields=False)
    @classmethod
    def normalize_date_time(cls, v):
        return to_utc_naive(v) if v is not None else v


class MeetingCreate(MeetingFields):
    title: str
    description: str = ""
    link: str
    password: Optional[str] = None
    emails: List[EmailStr] = Field(default_factory=list)
    date_time: datetime
    background_color: Optional[str] = None
    reminder: Optional[int] = Field(None, ge=0, description="Minutes before start")
    category: StoredCategory = "upcoming"


class MeetingUpdate(MeetingFields):
    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    password: Optional[str] = None
    emails: Optional[List[EmailStr]] = None
    status: Optional[Literal["pending", "accepted", "rejected"]] = None
    date_time: Optional[datetime] = None
    background_color: Optional[str] = None
    reminder: Optional[int] = Field(None, ge=0)
    category: Optional[StoredCategory] = None


class JoinMeetingPayload(BaseModel):
    email: EmailStr
    password: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


class ApprovalPayload(BaseModel):
    email: EmailStr
    action: Literal["approve", "reject"]

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


class StatusPayload(BaseModel):
    status: Literal["accepted", "rejected"]


# Response shaping

def public_meeting(doc: dict) -> dict:
    """Meeting document as returned to clients: string ids, no password hash."""
    out = {k: v for k, v in doc.items() if k not in ("_id", "password_hash")}
    out["id"] = str(doc["_id"])
    out["has_password"] = bool(doc.get("password_hash"))
    return out


def join_receipt(doc: dict) -> dict:
    """What a requester who is not yet confirmed may see: no link, no participant lists."""
    return {
        "id": str(doc["_id"]),
        "title": doc.get("title"),
        "date_time": doc.get("date_time"),
        "participation": "pending",
    }


def public_user(doc: dict) -> dict:
    out = {k: v for k, v in doc.items() if k not in ("_id", "password_hash")}
    out["id"] = str(doc["_id"])
    out["meetings"] = [str(m) for m in doc.get("meetings", [])]
    return out
