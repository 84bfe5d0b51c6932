"""
Request:  open -(offer accepted)-> help_offered
          open | help_offered -(owner/admin close)-> closed
          closed -(admin approval)-> open
Offer:    pending -(accept)-> accepted
          pending -(decline)-> declined
"""

import logging
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

import store
from errors import AuthorizationError, ConflictError, ValidationError
from identity import Identity, require_can_modify, require_role
from models import (
    OFFER_ACCEPTED,
    OFFER_DECLINED,
    OFFER_PENDING,
    REQUEST_CLOSED,
    REQUEST_HELP_OFFERED,
    REQUEST_OPEN,
    ROLE_ADMIN,
    ROLE_REQUESTER,
    ROLE_VOLUNTEER,
    Offer,
    Request,
    User,
)
from notifications import (
    notify,
    offer_accepted_message,
    offer_created_message,
    offer_declined_message,
)
from schemas import OfferRow, RequestCreate, RequestRow, Stats, normalize_urgency

logger = logging.getLogger(__name__)

DECISIONS = ("accept", "decline")

RequestFields = Union[RequestCreate, Mapping[str, Any]]


def _describe(exc: PydanticValidationError) -> str:
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"])
        msg = err["msg"].removeprefix("Value error, ")
        messages.append(f"{field}: {msg}" if field else msg)
    return "; ".join(messages)


def parse_request_fields(fields: RequestFields) -> RequestCreate:
    if isinstance(fields, RequestCreate):
        return fields
    if not isinstance(fields, Mapping):
        raise ValidationError("Request fields must be an object")
    try:
        return RequestCreate.model_validate(dict(fields))
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc)) from exc


def _request_row(req: Request, owner: User, **extra) -> RequestRow:
    return RequestRow(
        **req.model_dump(), requester_name=owner.name, requester_email=owner.email, **extra
    )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def create_request(session: Session, identity: Optional[Identity], fields: RequestFields) -> Request:
    identity = require_role(identity, ROLE_REQUESTER)
    data = parse_request_fields(fields)
    with store.atomic(session):
        req = store.insert(
            session,
            Request(requester_id=identity.id, status=REQUEST_OPEN, **data.model_dump()),
        )
    req = store.reload(session, req)
    logger.info("Request %s created by user %s", req.id, identity.id)
    return req


def update_request(
    session: Session, identity: Optional[Identity], request_id: int, fields: RequestFields
) -> Request:
    """Overwrite the editable fields of an open request.

    Status and owner are never touched.  Requests that already left
    ``open`` are frozen and the call fails with ConflictError.
    """
    with store.atomic(session):
        req = store.get_request(session, request_id)
        identity = require_can_modify(identity, req)
        data = parse_request_fields(fields)
        if req.status != REQUEST_OPEN or not store.update_open_request(
            session, request_id, data.model_dump()
        ):
            raise ConflictError("Only open requests can be edited")
    logger.info("Request %s updated by user %s", request_id, identity.id)
    return store.reload(session, req)


def close_request(session: Session, identity: Optional[Identity], request_id: int) -> Request:
    """Close a request.  Closing an already closed request is a no-op."""
    with store.atomic(session):
        req = store.get_request(session, request_id)
        identity = require_can_modify(identity, req)
        changed = store.transition_request(
            session, request_id, [REQUEST_OPEN, REQUEST_HELP_OFFERED], REQUEST_CLOSED
        )
    if changed:
        logger.info("Request %s closed by user %s", request_id, identity.id)
    return store.reload(session, req)


def delete_request(session: Session, identity: Optional[Identity], request_id: int) -> None:
    """Delete a request together with all of its offers."""
    with store.atomic(session):
        req = store.get_request(session, request_id)
        identity = require_can_modify(identity, req)
        removed = store.delete_request_cascade(session, request_id)
        session.expunge(req)
    logger.info(
        "Request %s deleted by user %s (%d offers removed)", request_id, identity.id, removed
    )


def list_requests(
    session: Session,
    category: Optional[str] = None,
    urgency: Optional[str] = None,
    location: Optional[str] = None,
    search: Optional[str] = None,
) -> List[RequestRow]:
    """Public listing: open requests only, newest first."""
    if urgency:
        level = normalize_urgency(urgency)
        if level is None:
            raise ValidationError(f"Unknown urgency level: {urgency}")
        urgency = level
    with store.atomic(session, commit=False):
        rows = store.query_requests(
            session,
            status=REQUEST_OPEN,
            category=category,
            urgency=urgency,
            location=location,
            search=search,
        )
        return [_request_row(req, owner) for req, owner in rows]


def get_request(session: Session, request_id: int) -> RequestRow:
    with store.atomic(session, commit=False):
        req, owner = store.get_request_with_owner(session, request_id)
        return _request_row(req, owner)


def list_own_requests(session: Session, identity: Optional[Identity]) -> List[RequestRow]:
    identity = require_role(identity, ROLE_REQUESTER)
    with store.atomic(session, commit=False):
        rows = store.query_requests(session, requester_id=identity.id)
        counts = store.pending_offer_counts(session, [req.id for req, _ in rows])
        return [
            _request_row(req, owner, pending_offers=counts.get(req.id, 0)) for req, owner in rows
        ]


# ---------------------------------------------------------------------------
# Offers
# ---------------------------------------------------------------------------


def create_offer(session: Session, identity: Optional[Identity], request_id: int) -> Offer:
    """Offer help on an open request and notify its owner."""
    identity = require_role(identity, ROLE_VOLUNTEER)
    with store.atomic(session):
        req = store.get_request(session, request_id)
        if req.status != REQUEST_OPEN:
            raise ConflictError("request not available")
        if store.find_offer(session, identity.id, request_id) is not None:
            raise ConflictError("duplicate offer")
        if not store.claim_open_request(session, request_id):
            raise ConflictError("request not available")
        try:
            offer = store.insert(session, Offer(volunteer_id=identity.id, request_id=request_id))
        except IntegrityError as exc:
            raise ConflictError("duplicate offer") from exc
        notify(session, req.requester_id, offer_created_message(identity.display_name, req.title))
    offer = store.reload(session, offer)
    logger.info("Offer %s on request %s created by user %s", offer.id, request_id, identity.id)
    return offer


def decide_offer(
    session: Session, identity: Optional[Identity], offer_id: int, decision: str
) -> Offer:
    """Accept or decline a pending offer; only the request owner may decide.

    Accepting moves the request to ``help_offered`` in the same
    transaction, so at most one offer per request is ever accepted.
    """
    if identity is None:
        raise AuthorizationError("Not authenticated")
    if decision not in DECISIONS:
        raise ValidationError("Invalid action")

    with store.atomic(session):
        offer = store.get_offer(session, offer_id)
        req = store.get_request(session, offer.request_id)
        if req.requester_id != identity.id:
            raise AuthorizationError("Only the request owner can decide on offers")
        if offer.status != OFFER_PENDING:
            raise ConflictError("offer already decided")

        if decision == "accept":
            if not store.transition_request(
                session, req.id, [REQUEST_OPEN], REQUEST_HELP_OFFERED
            ):
                raise ConflictError("request not available")
            new_status = OFFER_ACCEPTED
            message = offer_accepted_message(identity.display_name)
        else:
            new_status = OFFER_DECLINED
            message = offer_declined_message()

        if not store.transition_offer(session, offer_id, [OFFER_PENDING], new_status):
            raise ConflictError("offer already decided")
        notify(session, offer.volunteer_id, message)

    logger.info("Offer %s %s by user %s", offer_id, new_status, identity.id)
    return store.reload(session, offer)


def list_own_offers(session: Session, identity: Optional[Identity]) -> List[OfferRow]:
    identity = require_role(identity, ROLE_VOLUNTEER)
    with store.atomic(session, commit=False):
        rows = store.offers_by_volunteer(session, identity.id)
        return [
            OfferRow(
                **offer.model_dump(),
                title=req.title,
                description=req.description,
                location=req.location,
                request_status=req.status,
                requester_name=requester.name,
                requester_email=requester.email,
            )
            for offer, req, requester in rows
        ]


def list_request_offers(
    session: Session, identity: Optional[Identity], request_id: int
) -> List[OfferRow]:
    with store.atomic(session, commit=False):
        req = store.get_request(session, request_id)
        require_can_modify(identity, req)
        rows = store.offers_for_request(session, request_id)
        return [
            OfferRow(
                **offer.model_dump(),
                volunteer_name=volunteer.name,
                volunteer_email=volunteer.email,
            )
            for offer, volunteer in rows
        ]


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


def admin_approve_request(
    session: Session, identity: Optional[Identity], request_id: int, approved: bool
) -> Request:
    """Reopen (approved) or close (rejected) any request.

    This is the only way back from ``closed`` to ``open``.  A request
    with an accepted offer cannot be reopened.
    """
    identity = require_role(identity, ROLE_ADMIN)
    with store.atomic(session):
        req = store.get_request(session, request_id)
        if approved:
            if store.has_accepted_offer(session, request_id):
                raise ConflictError("Request already has an accepted offer")
            changed = store.transition_request(
                session, request_id, [REQUEST_CLOSED, REQUEST_OPEN], REQUEST_OPEN
            )
        else:
            changed = store.transition_request(
                session,
                request_id,
                [REQUEST_OPEN, REQUEST_HELP_OFFERED, REQUEST_CLOSED],
                REQUEST_CLOSED,
            )
        if not changed:
            raise ConflictError("Request state changed, try again")
    logger.info(
        "Request %s %s by admin %s",
        request_id,
        "approved" if approved else "rejected",
        identity.id,
    )
    return store.reload(session, req)


def admin_list_users(session: Session, identity: Optional[Identity]) -> List[User]:
    require_role(identity, ROLE_ADMIN)
    with store.atomic(session, commit=False):
        return store.list_users(session)


def admin_stats(session: Session, identity: Optional[Identity]) -> Stats:
    require_role(identity, ROLE_ADMIN)
    with store.atomic(session, commit=False):
        return Stats(
            total_users=store.count_users(session),
            active_requests=store.count_requests(session, REQUEST_OPEN),
            completed_today=store.count_closed_today(session),
        )
