from fastapi import APIRouter

import notifications
from db import SessionDep
from .auth import IdentityDep

router = APIRouter(tags=["notifications"])


@router.get("/notifications")
def list_notifications(session: SessionDep, identity: IdentityDep):
    """
    Most recent notifications for the caller, newest first.
    """
    return {"notifications": notifications.list_notifications(session, identity)}


@router.patch("/notifications/{notification_id}/read")
def mark_notification_read(notification_id: int, session: SessionDep, identity: IdentityDep):
    note = notifications.mark_read(session, identity, notification_id)
    return {"notification": note}
