from typing import Any

from fastapi import APIRouter, Request

import lifecycle
from db import SessionDep
from errors import ValidationError
from schemas import OfferRow
from .auth import IdentityDep, read_payload

router = APIRouter(tags=["offers"])


def _parse_request_id(value: Any) -> int:
    # JSON gives ints, form bodies give digit strings; bools and floats are refused.
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isascii() and value.strip().isdecimal():
        return int(value.strip())
    raise ValidationError("Request ID is required")


@router.post("/offers", status_code=201)
async def create_offer(request: Request, session: SessionDep, identity: IdentityDep):
    data = await read_payload(request)
    request_id = _parse_request_id(data.get("request_id"))

    offer = lifecycle.create_offer(session, identity, request_id)
    return {"message": "Offer submitted successfully", "offer_id": offer.id}


@router.patch("/offers/{offer_id}/{action}")
def decide_offer(offer_id: int, action: str, session: SessionDep, identity: IdentityDep):
    """
    Accept or decline a pending offer on one of the caller's requests.
    """
    offer = lifecycle.decide_offer(session, identity, offer_id, action)
    return {
        "message": f"Offer {offer.status} successfully",
        "offer": OfferRow.model_validate(offer),
    }


@router.get("/volunteer/offers")
def my_offers(session: SessionDep, identity: IdentityDep):
    return {"offers": lifecycle.list_own_offers(session, identity)}
