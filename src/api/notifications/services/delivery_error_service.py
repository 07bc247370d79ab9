from typing import List, Optional
from sqlmodel import Session, select
from src.api.notifications.models.notification import DeliveryError
from src.api.notifications.schemas.notification import DeliveryErrorCreate


class DeliveryErrorService:
    """Service class for managing delivery errors"""

    def __init__(self, db: Session):
        self.db = db

    def create_error(self, error_data: DeliveryErrorCreate, commit: bool = True) -> DeliveryError:
        """
        Record a failed side effect. An unresolved error for the same entity
        and operation is updated instead of duplicated.
        """
        existing_error = self.db.exec(
            select(DeliveryError).where(
                DeliveryError.channel == error_data.channel,
                DeliveryError.operation_type == error_data.operation_type,
                DeliveryError.entity_type == error_data.entity_type,
                DeliveryError.entity_id == error_data.entity_id,
                DeliveryError.is_resolved == False,  # noqa: E712
            )
        ).first()

        if existing_error:
            existing_error.error_message = error_data.error_message
            existing_error.error_details = error_data.error_details or {}
            existing_error.touch()
            error = existing_error
        else:
            error = DeliveryError(**error_data.model_dump())

        self.db.add(error)
        if commit:
            self.db.commit()
            self.db.refresh(error)
        else:
            self.db.flush()
        return error

    def get_errors(self, is_resolved: Optional[bool] = None, contract_id: Optional[int] = None,
                   skip: int = 0, limit: int = 100) -> List[DeliveryError]:
        query = select(DeliveryError)
        if is_resolved is not None:
            query = query.where(DeliveryError.is_resolved == is_resolved)
        if contract_id is not None:
            query = query.where(DeliveryError.contract_id == contract_id)
        query = query.order_by(DeliveryError.created_at.desc()).offset(skip).limit(limit)
        return list(self.db.exec(query).all())

    def resolve_error(self, error_id: int) -> Optional[DeliveryError]:
        error = self.db.get(DeliveryError, error_id)
        if not error:
            return None
        error.is_resolved = True
        error.touch()
        self.db.add(error)
        self.db.commit()
        self.db.refresh(error)
        return error
