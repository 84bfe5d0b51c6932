from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

ROLE_REQUESTER = "requester"
ROLE_VOLUNTEER = "volunteer"
ROLE_ADMIN = "admin"
ROLES = (ROLE_REQUESTER, ROLE_VOLUNTEER, ROLE_ADMIN)

REQUEST_OPEN = "open"
REQUEST_HELP_OFFERED = "help_offered"
REQUEST_CLOSED = "closed"

OFFER_PENDING = "pending"
OFFER_ACCEPTED = "accepted"
OFFER_DECLINED = "declined"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    password_hash: str
    role: str  # requester | volunteer | admin
    location: Optional[str] = None
    verified: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Request(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    requester_id: int = Field(foreign_key="user.id", index=True)

    title: str
    description: str
    category: str
    urgency_level: str
    location: str
    status: str = REQUEST_OPEN  # open | help_offered | closed
    created_at: datetime = Field(default_factory=utcnow)


class Offer(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("volunteer_id", "request_id", name="uq_offer_volunteer_request"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    volunteer_id: int = Field(foreign_key="user.id", index=True)
    request_id: int = Field(foreign_key="request.id", index=True)

    status: str = OFFER_PENDING  # pending | accepted | declined
    created_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    recipient_id: int = Field(foreign_key="user.id", index=True)

    message: str
    is_read: bool = False
    sent_at: datetime = Field(default_factory=utcnow)
