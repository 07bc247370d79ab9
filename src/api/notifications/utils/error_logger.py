from typing import Optional, Dict, Any
from fastapi.logger import logger
from sqlmodel import Session
from src.api.notifications.services.delivery_error_service import DeliveryErrorService
from src.api.notifications.schemas.notification import DeliveryErrorCreate


def log_delivery_error(
    db: Session,
    channel: str,
    operation_type: str,
    entity_type: str,
    error_message: str,
    entity_id: Optional[int] = None,
    error_details: Optional[Dict[str, Any]] = None,
    contract_id: Optional[int] = None,
    commit: bool = True,
) -> None:
    """
    Log a failed best-effort side effect to the database

    Args:
        db: Database session
        channel: Side channel that failed (e.g., 'sms', 'notification')
        operation_type: Operation that failed (e.g., 'send_invoice')
        entity_type: Type of entity (e.g., 'invoice', 'contract')
        error_message: Human-readable error message
        entity_id: Related entity ID (optional)
        error_details: Additional error details as JSON
        contract_id: Related contract ID (optional)
        commit: Commit immediately; otherwise the row joins the caller's transaction
    """
    logger.warning(
        f"{channel} {operation_type} failed for {entity_type} {entity_id}: {error_message}")
    try:
        DeliveryErrorService(db).create_error(
            DeliveryErrorCreate(
                channel=channel,
                operation_type=operation_type,
                entity_type=entity_type,
                entity_id=entity_id,
                error_message=error_message,
                error_details=error_details or {},
                contract_id=contract_id,
            ),
            commit=commit,
        )
    except Exception as e:
        # If we can't log the error, at least keep it in the application log
        logger.error(f"Failed to log delivery error: {e}")
