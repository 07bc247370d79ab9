from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session
from src.api.common.dependencies import get_provider_id
from src.api.common.utils.database import get_db
from src.api.notifications.schemas.notification import DeliveryErrorRead, NotificationRead
from src.api.notifications.services.delivery_error_service import DeliveryErrorService
from src.api.notifications.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_delivery_error_service(db: Session = Depends(get_db)) -> DeliveryErrorService:
    """Dependency to get delivery error service"""
    return DeliveryErrorService(db)


@router.get("/", response_model=List[NotificationRead])
def get_notifications(
    unread_only: bool = Query(False, description="Only unread notifications"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    provider_id: int = Depends(get_provider_id),
    service: NotificationService = Depends(get_notification_service)
):
    """Get the provider's notifications, newest first"""
    return service.get_notifications(provider_id, unread_only, skip, limit)


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_notification_as_read(
    notification_id: int,
    provider_id: int = Depends(get_provider_id),
    service: NotificationService = Depends(get_notification_service)
):
    """Mark a notification as read"""
    notification = service.mark_as_read(provider_id, notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.get("/errors", response_model=List[DeliveryErrorRead])
def get_delivery_errors(
    is_resolved: Optional[bool] = Query(None, description="Filter by resolution status"),
    contract_id: Optional[int] = Query(None, description="Filter by contract ID"),
    skip: int = Query(0, ge=0, description="Number of results to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of results"),
    service: DeliveryErrorService = Depends(get_delivery_error_service)
):
    """Get failed side effects (text messages, notifications, billing runs)"""
    return service.get_errors(is_resolved, contract_id, skip, limit)


@router.post("/errors/{error_id}/resolve", response_model=DeliveryErrorRead)
def resolve_delivery_error(
    error_id: int,
    service: DeliveryErrorService = Depends(get_delivery_error_service)
):
    """Mark a delivery error as resolved"""
    error = service.resolve_error(error_id)
    if not error:
        raise HTTPException(status_code=404, detail="Delivery error not found")
    return error
