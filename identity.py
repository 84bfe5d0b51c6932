from dataclasses import dataclass
from typing import Optional

from errors import AuthorizationError
from models import ROLE_ADMIN, Request, User


@dataclass(frozen=True)
class Identity:
    """An already-authenticated caller."""

    id: int
    role: str
    display_name: str

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        if user.id is None:
            raise ValueError("User has no id")
        return cls(id=user.id, role=user.role, display_name=user.name)


def require_role(identity: Optional[Identity], *roles: str) -> Identity:
    if identity is None:
        raise AuthorizationError("Not authenticated")
    if identity.role not in roles:
        raise AuthorizationError(f"Only {' or '.join(roles)} users can do this")
    return identity


def can_modify(identity: Optional[Identity], request: Request) -> bool:
    """Owner of the request, or any admin."""
    if identity is None:
        return False
    return identity.role == ROLE_ADMIN or identity.id == request.requester_id


def require_can_modify(identity: Optional[Identity], request: Request) -> Identity:
    if identity is None:
        raise AuthorizationError("Not authenticated")
    if not can_modify(identity, request):
        raise AuthorizationError("You can only manage your own requests.")
    return identity
