from typing import Any, Dict, List, Optional
from fastapi.logger import logger
from sqlmodel import Session, select
from src.api.notifications.models.notification import Notification
from src.api.notifications.utils.error_logger import log_delivery_error


class NotificationService:
    """Writes provider notifications to the outbox"""

    def __init__(self, db: Session):
        self.db = db

    def notify(self, event: str, payload: Dict[str, Any], provider_id: Optional[int] = None) -> Optional[Notification]:
        """
        Queue a notification. Best effort: failures are logged and never
        raised to the caller.
        """
        try:
            notification = Notification(provider_id=provider_id, event=event, payload=payload)
            self.db.add(notification)
            self.db.commit()
            self.db.refresh(notification)
            logger.info(f"Notification {event} queued for provider {provider_id}")
            return notification
        except Exception as e:
            self.db.rollback()
            log_delivery_error(
                self.db,
                channel="notification",
                operation_type=event,
                entity_type="provider",
                entity_id=provider_id,
                error_message=str(e),
                error_details={"payload": payload},
            )
            return None

    def get_notifications(self, provider_id: int, unread_only: bool = False,
                          skip: int = 0, limit: int = 100) -> List[Notification]:
        query = select(Notification).where(Notification.provider_id == provider_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
        return list(self.db.exec(query.offset(skip).limit(limit)).all())

    def mark_as_read(self, provider_id: int, notification_id: int) -> Optional[Notification]:
        notification = self.db.get(Notification, notification_id)
        if not notification or notification.provider_id != provider_id:
            return None
        notification.is_read = True
        notification.touch()
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification
