import logging
from contextlib import contextmanager
from datetime import datetime, time, timezone
from typing import Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from errors import ConflictError, LifecycleError, NotFoundError, TransientError
from models import (
    OFFER_ACCEPTED,
    OFFER_PENDING,
    REQUEST_CLOSED,
    REQUEST_OPEN,
    Offer,
    Request,
    User,
)

logger = logging.getLogger(__name__)


@contextmanager
def atomic(session: Session, commit: bool = True) -> Iterator[Session]:
    """Run a unit of work; commit on success, roll back on any failure.

    Store exceptions are re-raised as typed errors: an integrity
    violation becomes ConflictError, anything else TransientError.
    """
    try:
        yield session
        if commit:
            session.commit()
    except LifecycleError:
        session.rollback()
        raise
    except IntegrityError as exc:
        session.rollback()
        logger.info("Integrity violation: %s", exc.orig)
        raise ConflictError("Conflicting change, state was modified") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Store failure")
        raise TransientError("Store unavailable, try again later") from exc


def get_request(session: Session, request_id: int) -> Request:
    req = session.get(Request, request_id)
    if req is None:
        raise NotFoundError("Request not found")
    return req


def get_offer(session: Session, offer_id: int) -> Offer:
    offer = session.get(Offer, offer_id)
    if offer is None:
        raise NotFoundError("Offer not found")
    return offer


def get_user(session: Session, user_id: int) -> Optional[User]:
    return session.get(User, user_id)


def insert(session: Session, entity):
    """Add an entity and flush so its primary key is assigned."""
    session.add(entity)
    session.flush()
    return entity


def transition_request(
    session: Session, request_id: int, expected: Iterable[str], new_status: str
) -> bool:
    stmt = (
        update(Request)
        .where(col(Request.id) == request_id, col(Request.status).in_(list(expected)))
        .values(status=new_status)
    )
    return session.connection().execute(stmt).rowcount == 1


def transition_offer(
    session: Session, offer_id: int, expected: Iterable[str], new_status: str
) -> bool:
    stmt = (
        update(Offer)
        .where(col(Offer.id) == offer_id, col(Offer.status).in_(list(expected)))
        .values(status=new_status)
    )
    return session.connection().execute(stmt).rowcount == 1


def claim_open_request(session: Session, request_id: int) -> bool:
    """Lock the request row for this transaction if it is still open."""
    return transition_request(session, request_id, [REQUEST_OPEN], REQUEST_OPEN)


def find_offer(session: Session, volunteer_id: int, request_id: int) -> Optional[Offer]:
    return session.exec(
        select(Offer).where(
            Offer.volunteer_id == volunteer_id,
            Offer.request_id == request_id,
        )
    ).first()


def has_accepted_offer(session: Session, request_id: int) -> bool:
    found = session.exec(
        select(Offer.id).where(
            Offer.request_id == request_id,
            Offer.status == OFFER_ACCEPTED,
        )
    ).first()
    return found is not None


def delete_request_cascade(session: Session, request_id: int) -> int:
    """Delete a request and its offers; returns the number of offers removed."""
    conn = session.connection()
    removed = conn.execute(delete(Offer).where(col(Offer.request_id) == request_id)).rowcount
    conn.execute(delete(Request).where(col(Request.id) == request_id))
    return removed


def query_requests(
    session: Session,
    status: Optional[str] = None,
    requester_id: Optional[int] = None,
    category: Optional[str] = None,
    urgency: Optional[str] = None,
    location: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Tuple[Request, User]]:
    """Requests joined with their requester, newest first."""
    query = select(Request, User).join(User, col(User.id) == Request.requester_id)
    if status is not None:
        query = query.where(Request.status == status)
    if requester_id is not None:
        query = query.where(Request.requester_id == requester_id)
    if category:
        query = query.where(Request.category == category)
    if urgency:
        query = query.where(Request.urgency_level == urgency)
    if location:
        query = query.where(col(Request.location).icontains(location))
    if search:
        query = query.where(
            or_(col(Request.title).icontains(search), col(Request.description).icontains(search))
        )
    query = query.order_by(col(Request.created_at).desc(), col(Request.id).desc())
    return list(session.exec(query).all())


def get_request_with_owner(session: Session, request_id: int) -> Tuple[Request, User]:
    row = session.exec(
        select(Request, User)
        .join(User, col(User.id) == Request.requester_id)
        .where(Request.id == request_id)
    ).first()
    if row is None:
        raise NotFoundError("Request not found")
    return row


def pending_offer_counts(session: Session, request_ids: List[int]) -> dict:
    if not request_ids:
        return {}
    rows = session.exec(
        select(Offer.request_id, func.count(col(Offer.id)))
        .where(col(Offer.request_id).in_(request_ids), Offer.status == OFFER_PENDING)
        .group_by(col(Offer.request_id))
    ).all()
    return {request_id: count for request_id, count in rows}


def offers_for_request(session: Session, request_id: int) -> List[Tuple[Offer, User]]:
    query = (
        select(Offer, User)
        .join(User, col(User.id) == Offer.volunteer_id)
        .where(Offer.request_id == request_id)
        .order_by(col(Offer.created_at).desc(), col(Offer.id).desc())
    )
    return list(session.exec(query).all())


def offers_by_volunteer(
    session: Session, volunteer_id: int
) -> List[Tuple[Offer, Request, User]]:
    query = (
        select(Offer, Request, User)
        .join(Request, col(Request.id) == Offer.request_id)
        .join(User, col(User.id) == Request.requester_id)
        .where(Offer.volunteer_id == volunteer_id)
        .order_by(col(Offer.created_at).desc(), col(Offer.id).desc())
    )
    return list(session.exec(query).all())


def list_users(session: Session) -> List[User]:
    query = select(User).order_by(col(User.created_at).desc(), col(User.id).desc())
    return list(session.exec(query).all())


def count_users(session: Session) -> int:
    return session.exec(select(func.count(col(User.id)))).one()


def count_requests(
    session: Session, status: str, created_since: Optional[datetime] = None
) -> int:
    query = select(func.count(col(Request.id))).where(Request.status == status)
    if created_since is not None:
        query = query.where(col(Request.created_at) >= created_since)
    return session.exec(query).one()


def start_of_today() -> datetime:
    return datetime.combine(datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc)


def count_closed_today(session: Session) -> int:
    return count_requests(session, REQUEST_CLOSED, created_since=start_of_today())


def reload(session: Session, entity):
    """Refresh an entity after commit, mapping store failures like ``atomic``."""
    with atomic(session, commit=False):
        session.refresh(entity)
    return entity


def update_open_request(session: Session, request_id: int, values: dict) -> bool:
    """Overwrite editable fields, but only while the request is still open."""
    stmt = (
        update(Request)
        .where(col(Request.id) == request_id, col(Request.status) == REQUEST_OPEN)
        .values(**values)
    )
    return session.connection().execute(stmt).rowcount == 1
