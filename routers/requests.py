from typing import Optional

from fastapi import APIRouter, Request, Response

import lifecycle
from db import SessionDep
from schemas import RequestRow
from .auth import IdentityDep, read_payload

router = APIRouter(tags=["requests"])


@router.get("/requests")
def list_requests(
    session: SessionDep,
    category: Optional[str] = None,
    urgency: Optional[str] = None,
    location: Optional[str] = None,
    search: Optional[str] = None,
):
    """
    Public listing of open requests, newest first.
    """
    rows = lifecycle.list_requests(
        session, category=category, urgency=urgency, location=location, search=search
    )
    return {"requests": rows}


@router.get("/requests/{request_id}")
def get_request(request_id: int, session: SessionDep):
    return {"request": lifecycle.get_request(session, request_id)}


@router.post("/requests", status_code=201)
async def create_request(request: Request, session: SessionDep, identity: IdentityDep):
    fields = await read_payload(request)
    req = lifecycle.create_request(session, identity, fields)
    return {"message": "Request created successfully", "request_id": req.id}


@router.put("/requests/{request_id}")
async def update_request(
    request_id: int,
    request: Request,
    session: SessionDep,
    identity: IdentityDep,
):
    fields = await read_payload(request)
    req = lifecycle.update_request(session, identity, request_id, fields)
    return {
        "message": "Request updated successfully",
        "request": RequestRow.model_validate(req),
    }


@router.patch("/requests/{request_id}/close")
def close_request(request_id: int, session: SessionDep, identity: IdentityDep):
    req = lifecycle.close_request(session, identity, request_id)
    return {"message": "Request closed successfully", "status": req.status}


@router.delete("/requests/{request_id}", status_code=204)
def delete_request(request_id: int, session: SessionDep, identity: IdentityDep):
    lifecycle.delete_request(session, identity, request_id)
    return Response(status_code=204)


@router.get("/requests/{request_id}/offers")
def list_request_offers(request_id: int, session: SessionDep, identity: IdentityDep):
    return {"offers": lifecycle.list_request_offers(session, identity, request_id)}


@router.get("/requester/requests")
def my_requests(session: SessionDep, identity: IdentityDep):
    return {"requests": lifecycle.list_own_requests(session, identity)}
