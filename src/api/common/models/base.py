from datetime import datetime
from decimal import Decimal
from typing import Any
from sqlmodel import Field, SQLModel, DateTime
from sqlalchemy.ext.declarative import declared_attr
from src.api.common.utils.datetime import get_current_datetime

# Money columns: whole currency units with room for fractional corrections
MONEY_DIGITS = 14
MONEY_DECIMALS = 2


class TimestampMixin:
    """Mixin to add created_at and updated_at fields to models"""
    created_at: datetime = Field(
        default_factory=get_current_datetime,
        sa_type=DateTime(timezone=True), nullable=False)
    updated_at: datetime = Field(
        default_factory=get_current_datetime,
        sa_type=DateTime(timezone=True), nullable=False)


class BaseModel(SQLModel):
    """Base model for all models in the application"""
    @declared_attr
    def __tablename__(cls) -> str:
        return cls.__name__.lower()

    def touch(self) -> None:
        """Refresh updated_at before a write"""
        self.updated_at = get_current_datetime()


def money_field(default: Any = Decimal("0"), **kwargs) -> Any:
    """Numeric column for monetary amounts"""
    return Field(default=default, max_digits=MONEY_DIGITS,
                 decimal_places=MONEY_DECIMALS, **kwargs)
