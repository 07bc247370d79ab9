import re
import httpx
from typing import Dict, Optional
from fastapi.logger import logger
from src.api.common.config import SmsConfig
from src.api.common.utils.encryption import normalize_phone, mask_value

# Korean mobile numbers, digits only
MOBILE_PHONE_PATTERN = re.compile(r"^010\d{8}$")


class SmsDeliveryError(Exception):
    """Raised when a text message could not be delivered"""


class SmsClient:
    """Aligo text message API client"""

    def __init__(self, config: Optional[SmsConfig] = None):
        self.config = config or SmsConfig()

    def send_sms(self, phone: str, message: str) -> Dict:
        """
        Send a text message.

        Args:
            phone: Recipient number; hyphens and spaces are ignored
            message: Message body

        Returns:
            Dict with the provider's message id

        Raises:
            SmsDeliveryError: credentials missing, invalid number or the
                provider rejected the message
        """
        if not self.config.is_configured:
            raise SmsDeliveryError("SMS credentials not configured")

        receiver = normalize_phone(phone)
        if not MOBILE_PHONE_PATTERN.match(receiver):
            raise SmsDeliveryError(f"Invalid phone number format: {mask_value(receiver)}")

        form = {
            "key": self.config.api_key,
            "user_id": self.config.user_id,
            "sender": self.config.sender_number,
            "receiver": receiver,
            "msg": message,
            "testmode_yn": "N",
        }
        try:
            with httpx.Client(timeout=self.config.timeout_seconds) as client:
                response = client.post(self.config.base_url, data=form)
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as e:
            logger.error(f"HTTP error occurred in SmsClient send_sms: {e}")
            raise SmsDeliveryError(f"SMS request failed: {e}") from e
        except ValueError as e:
            raise SmsDeliveryError(f"Invalid SMS API response: {e}") from e

        if str(result.get("result_code")) != "1":
            raise SmsDeliveryError(
                result.get("message") or f"SMS send failed: {result.get('result_code')}")

        logger.info(f"SMS sent to {mask_value(receiver)}")
        return {"message_id": result.get("msg_id")}
