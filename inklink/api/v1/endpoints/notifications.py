# inklink/api/v1/endpoints/notifications.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from inklink import crud
from inklink.api import deps
from inklink.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from inklink.schemas.notification import (
    Notification,
    NotificationBulkResult,
    NotificationBulkUpdate,
    NotificationList,
    NotificationUpdate,
)
from inklink.schemas.token import TokenPayload

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationList)
def list_notifications(
    unread_only: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    The caller's notifications, newest first.
    """
    items = crud.notification.get_multi_for_recipient(
        db,
        recipient_id=current_user.sub,
        unread_only=unread_only,
        skip=skip,
        limit=limit,
    )
    return NotificationList(
        items=[Notification.model_validate(item) for item in items],
        unread_count=crud.notification.count_unread(db, recipient_id=current_user.sub),
        skip=skip,
        limit=limit,
    )


@router.put("/read", response_model=NotificationBulkResult)
def mark_notifications(
    bulk_in: NotificationBulkUpdate,
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Mark several notifications read (or unread) at once. Without
    `notification_ids` every unread notification of the caller is marked read.
    """
    if bulk_in.notification_ids is None and not bulk_in.is_read:
        raise ValidationError("notification_ids is required to mark notifications unread")
    updated = crud.notification.set_read_many(
        db,
        recipient_id=current_user.sub,
        ids=bulk_in.notification_ids,
        is_read=bulk_in.is_read,
    )
    return NotificationBulkResult(updated_count=updated)


@router.put("/{notification_id}", response_model=Notification)
def mark_notification(
    notification_id: str,
    notification_in: NotificationUpdate,
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Mark a notification read (or unread). Recipient only.
    """
    notification = crud.notification.get(db, id=notification_id)
    if not notification:
        raise NotFoundError("Notification", notification_id)
    if notification.recipient_id != current_user.sub:
        raise AuthorizationError("You can only update your own notifications")
    return crud.notification.set_read(db, db_obj=notification, is_read=notification_in.is_read)
