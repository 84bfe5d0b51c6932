from typing import List

from fastapi import APIRouter, Request
from pydantic import ValidationError as PydanticValidationError

import lifecycle
from db import SessionDep
from errors import ValidationError
from schemas import ApprovalUpdate, RequestRow, Stats, UserRead
from .auth import IdentityDep, read_payload

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users")
def list_users(session: SessionDep, identity: IdentityDep):
    """
    All users, newest first. Password hashes are never returned.
    """
    users: List[UserRead] = [
        UserRead.model_validate(user) for user in lifecycle.admin_list_users(session, identity)
    ]
    return {"users": users}


@router.get("/stats", response_model=Stats)
def stats(session: SessionDep, identity: IdentityDep):
    return lifecycle.admin_stats(session, identity)


@router.patch("/requests/{request_id}/approval")
async def approve_request(
    request_id: int,
    request: Request,
    session: SessionDep,
    identity: IdentityDep,
):
    data = await read_payload(request)
    try:
        update = ApprovalUpdate(**data)
    except PydanticValidationError as exc:
        raise ValidationError("approved must be true or false") from exc

    req = lifecycle.admin_approve_request(session, identity, request_id, update.approved)
    return {"message": "Request status updated", "request": RequestRow.model_validate(req)}
