from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

from config import settings

URGENCY_LEVELS = ("low", "medium", "high", "urgent")
URGENCY_ALIASES = {"normal": "medium", "critical": "urgent"}

# Values that front-end dropdowns submit when nothing was chosen.
PLACEHOLDERS = {"", "select", "choose", "none", "n/a", "-", "--"}


def is_placeholder(value: str) -> bool:
    lowered = value.strip().lower()
    return (
        lowered in PLACEHOLDERS
        or lowered.startswith("select ")
        or lowered.startswith("choose ")
    )


def normalize_urgency(value: str) -> Optional[str]:
    """Map free-form urgency input onto URGENCY_LEVELS, or None."""
    lowered = value.strip().lower()
    lowered = URGENCY_ALIASES.get(lowered, lowered)
    return lowered if lowered in URGENCY_LEVELS else None


class RequestCreate(BaseModel):
    """Editable request fields; also used for full updates."""

    title: str
    description: str
    category: str
    urgency_level: str = Field(validation_alias=AliasChoices("urgency_level", "urgency"))
    location: str

    @field_validator("title")
    @classmethod
    def _check_title(cls, value: str) -> str:
        value = value.strip()
        if not settings.title_min_length <= len(value) <= settings.title_max_length:
            raise ValueError(
                f"Title must be between {settings.title_min_length} and "
                f"{settings.title_max_length} characters"
            )
        return value

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str) -> str:
        value = value.strip()
        if len(value) < settings.description_min_length:
            raise ValueError(
                f"Description must be at least {settings.description_min_length} characters"
            )
        return value

    @field_validator("category", "location")
    @classmethod
    def _check_choice(cls, value: str) -> str:
        if is_placeholder(value):
            raise ValueError("A value must be selected")
        return value.strip()

    @field_validator("urgency_level")
    @classmethod
    def _check_urgency(cls, value: str) -> str:
        level = normalize_urgency(value)
        if level is None:
            raise ValueError(f"Urgency must be one of: {', '.join(URGENCY_LEVELS)}")
        return level


class ApprovalUpdate(BaseModel):
    approved: bool


class RequestRow(BaseModel):
    id: int
    requester_id: int
    title: str
    description: str
    category: str
    urgency_level: str
    location: str
    status: str
    created_at: datetime
    requester_name: Optional[str] = None
    requester_email: Optional[str] = None
    pending_offers: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class OfferRow(BaseModel):
    id: int
    volunteer_id: int
    request_id: int
    status: str
    created_at: datetime
    volunteer_name: Optional[str] = None
    volunteer_email: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    request_status: Optional[str] = None
    requester_name: Optional[str] = None
    requester_email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Stats(BaseModel):
    total_users: int
    active_requests: int
    completed_today: int


class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: Literal["requester", "volunteer"]
    location: Optional[str] = None


class UserRead(BaseModel):
    id: int
    email: EmailStr
    name: str
    role: str
    location: Optional[str] = None
    verified: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LoginData(BaseModel):
    email: EmailStr
    password: str
