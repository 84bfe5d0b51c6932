import logging
from typing import List, Optional

from sqlmodel import Session, col, select

from config import settings
from errors import AuthorizationError, NotFoundError
from identity import Identity
from models import Notification
from store import atomic, insert, reload

logger = logging.getLogger(__name__)


def offer_created_message(volunteer_name: str, title: str) -> str:
    return f'{volunteer_name} offered help with "{title}"'


def offer_accepted_message(owner_name: str) -> str:
    return f"Your offer was accepted by {owner_name}!"


def offer_declined_message() -> str:
    return "Your offer was declined."


def notify(session: Session, recipient_id: int, message: str) -> Notification:
    """Append a notification; the caller commits."""
    note = insert(session, Notification(recipient_id=recipient_id, message=message))
    logger.debug("Queued notification %s for user %s", note.id, recipient_id)
    return note


def list_notifications(
    session: Session, identity: Optional[Identity], limit: Optional[int] = None
) -> List[Notification]:
    if identity is None:
        raise AuthorizationError("Not authenticated")
    query = (
        select(Notification)
        .where(Notification.recipient_id == identity.id)
        .order_by(col(Notification.sent_at).desc(), col(Notification.id).desc())
        .limit(limit or settings.notification_page_size)
    )
    with atomic(session, commit=False):
        return list(session.exec(query).all())


def mark_read(session: Session, identity: Optional[Identity], notification_id: int) -> Notification:
    """Acknowledge a notification addressed to the caller."""
    if identity is None:
        raise AuthorizationError("Not authenticated")
    with atomic(session):
        note = session.get(Notification, notification_id)
        if note is None or note.recipient_id != identity.id:
            raise NotFoundError("Notification not found")
        note.is_read = True
        session.add(note)
    return reload(session, note)
