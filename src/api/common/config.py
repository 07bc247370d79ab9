import os
from decimal import Decimal
from functools import lru_cache
from typing import Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class BillingConfig(BaseModel):
    """Billing engine settings read from the environment"""
    currency: str = Field(default_factory=lambda: os.getenv("BILLING_CURRENCY", "KRW"))
    currency_quantum: Decimal = Field(
        default_factory=lambda: Decimal(os.getenv("BILLING_CURRENCY_QUANTUM", "1")))
    timezone: str = Field(
        default_factory=lambda: os.getenv("BILLING_TIMEZONE", "Asia/Seoul"))
    public_base_url: str = Field(
        default_factory=lambda: os.getenv("PUBLIC_BASE_URL", "http://localhost:3001"))
    history_months: int = Field(
        default_factory=lambda: int(os.getenv("BILLING_HISTORY_MONTHS", "3")))


class SmsConfig(BaseModel):
    api_key: Optional[str] = Field(default_factory=lambda: os.getenv("SMS_API_KEY"))
    user_id: Optional[str] = Field(default_factory=lambda: os.getenv("SMS_USER_ID"))
    sender_number: Optional[str] = Field(
        default_factory=lambda: os.getenv("SMS_SENDER_NUMBER"))
    base_url: str = Field(
        default_factory=lambda: os.getenv("SMS_API_URL", "https://apis.aligo.in/send/"))
    timeout_seconds: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.user_id and self.sender_number)


@lru_cache()
def get_billing_config() -> BillingConfig:
    return BillingConfig()
