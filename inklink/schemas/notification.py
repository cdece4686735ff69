# inklink/schemas/notification.py
from pydantic import BaseModel
from typing import Optional, Dict, Any, List
from datetime import datetime

from inklink.constants.statuses import NotificationType


class Notification(BaseModel):
    id: str
    recipient_id: str
    sender_id: Optional[str] = None
    type: NotificationType
    title: str
    message: str
    payload: Optional[Dict[str, Any]] = None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationUpdate(BaseModel):
    # The read flag is the only thing a recipient may change
    is_read: bool = True


class NotificationBulkUpdate(BaseModel):
    """Without ids every notification of the caller is updated."""
    notification_ids: Optional[List[str]] = None
    is_read: bool = True


class NotificationBulkResult(BaseModel):
    updated_count: int


class NotificationList(BaseModel):
    items: List[Notification]
    unread_count: int
    skip: int
    limit: int
