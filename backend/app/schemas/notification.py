from datetime import datetime

from pydantic import BaseModel

from app.models.notification import NotificationType


class NotificationOut(BaseModel):
    id: str
    request_id: str
    target_department_id: str | None = None
    user_id: str | None = None
    title: str
    message: str
    notification_type: NotificationType
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
